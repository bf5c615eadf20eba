"""SQLite-backed authoritative store of artifacts and their approval state.

Every artifact is keyed by ``(kind, hash)`` where the hash is derived from
its payload, so resubmitting the same content always lands on one row.
Denied artifacts are deleted; approved and pending rows are the only states
kept.  All mutations run under one lock and one transaction each, a batch
included.

Dependencies: hashing, models, signatures, store.schema
Wired in: server/app.py → create_app(), store/conversion.py
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterable, Mapping
from contextlib import closing
from dataclasses import dataclass, field
from pathlib import Path

from scriptapproval.hashing import (
    CURRENT_HASHER,
    ArtifactHash,
    ArtifactKind,
    Hasher,
    compute_hash,
    is_current,
)
from scriptapproval.models import (
    ApprovalContext,
    ApprovalState,
    Artifact,
    BatchAction,
    Snapshot,
)
from scriptapproval.signatures import is_dangerous
from scriptapproval.store.schema import init_schema, utc_now_epoch

_log = logging.getLogger(__name__)

_BUSY_TIMEOUT_SECONDS = 5.0
_SELECT = "SELECT kind, hash, payload, language, state, user, item, acl FROM artifacts"


@dataclass(frozen=True)
class StoredArtifact:
    """A row as the store sees it, including what rehashing needs."""

    kind: ArtifactKind
    hash: ArtifactHash
    payload: str
    language: str | None
    state: ApprovalState
    context: ApprovalContext = field(default_factory=ApprovalContext)
    acl: bool = False

    @property
    def dangerous(self) -> bool:
        return self.kind is ArtifactKind.SIGNATURE and is_dangerous(self.payload)

    def to_artifact(self) -> Artifact:
        return Artifact(
            hash=self.hash,
            payload=self.payload,
            state=self.state,
            language=self.language,
            context=self.context,
            dangerous=self.dangerous,
            acl=self.acl,
        )


def _row_to_stored(row: sqlite3.Row) -> StoredArtifact:
    return StoredArtifact(
        kind=ArtifactKind(str(row["kind"])),
        hash=ArtifactHash(str(row["hash"])),
        payload=str(row["payload"]),
        language=row["language"],
        state=ApprovalState(str(row["state"])),
        context=ApprovalContext(user=row["user"], item=row["item"]),
        acl=bool(row["acl"]),
    )


def _require_signature(kind: ArtifactKind, operation: str) -> None:
    if kind is not ArtifactKind.SIGNATURE:
        raise ValueError(f"{operation} only applies to signatures, not {kind}.")


class ApprovalStore:
    """Persistent pending/approved registry for scripts, signatures and classpath entries."""

    def __init__(self, *, db_path: Path) -> None:
        self._db_path = db_path
        self._lock = threading.RLock()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with closing(self._connect()) as conn, conn:
            init_schema(conn)
        deprecated = {kind: self.count_deprecated(kind) for kind in ArtifactKind}
        if any(deprecated.values()):
            _log.warning(
                "There are deprecated approved hashes (%s). They will be rehashed upon next "
                "use, which may be slow until all of them are converted or removed.",
                ", ".join(f"{kind}={count}" for kind, count in deprecated.items() if count),
            )

    # --- creation ---

    def submit(
        self,
        kind: ArtifactKind,
        payload: str,
        *,
        language: str | None = None,
        context: ApprovalContext | None = None,
    ) -> Artifact:
        """Record an artifact someone tried to run.

        Already-approved content is returned as approved (converting a legacy
        hash on the way); anything else is pending.  Identical content maps to
        the same row, so resubmission never duplicates and keeps the context
        of the first request.
        """
        artifact_hash = self._hash_for_submission(kind, payload, language)
        context = context or ApprovalContext()
        with self._lock:
            if self._check_and_convert(kind, payload, language, artifact_hash):
                return Artifact(artifact_hash, payload, ApprovalState.APPROVED, language=language)
            now = utc_now_epoch()
            with closing(self._connect()) as conn, conn:
                inserted = conn.execute(
                    """
                    INSERT INTO artifacts (
                        kind, hash, payload, language, state, user, item, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, 'pending', ?, ?, ?, ?)
                    ON CONFLICT (kind, hash) DO NOTHING
                    """,
                    (
                        kind.value,
                        artifact_hash,
                        payload,
                        language,
                        context.user,
                        context.item,
                        now,
                        now,
                    ),
                ).rowcount
                stored = self._fetch(conn, kind, artifact_hash)
        if stored is None:
            raise RuntimeError(f"Submitted {kind} {artifact_hash} was not stored")
        if inserted and stored.dangerous:
            _log.warning("Dangerous signature pending approval: %s", payload)
        return stored.to_artifact()

    def add_legacy_approval(
        self,
        kind: ArtifactKind,
        payload: str,
        *,
        language: str | None = None,
    ) -> ArtifactHash:
        """Import an approval recorded under the deprecated hasher."""
        legacy_hash = compute_hash(kind, payload, language=language, hasher=Hasher.SHA1)
        now = utc_now_epoch()
        with self._lock, closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO artifacts (
                    kind, hash, payload, language, state, created_at, updated_at
                ) VALUES (?, ?, ?, ?, 'approved', ?, ?)
                ON CONFLICT (kind, hash) DO UPDATE SET state = 'approved', updated_at = ?
                """,
                (kind.value, legacy_hash, payload, language, now, now, now),
            )
        return legacy_hash

    # --- transitions ---

    def approve(self, kind: ArtifactKind, artifact_hash: str) -> bool:
        """Move a pending hash to approved.

        Returns ``True`` when the hash is approved afterwards; approving an
        approved hash is a no-op and an unknown hash is ignored.
        """
        with self._lock, closing(self._connect()) as conn, conn:
            return self._approve_in(conn, kind, artifact_hash)

    def acl_approve(self, kind: ArtifactKind, artifact_hash: str) -> bool:
        """Approve a pending signature for callers holding the needed permissions only."""
        _require_signature(kind, "ACL approval")
        with self._lock, closing(self._connect()) as conn, conn:
            return self._approve_in(conn, kind, artifact_hash, acl=True)

    def approve_hash(self, artifact_hash: str) -> None:
        """Pre-approve a script by hash, whether or not it is pending."""
        if self.approve(ArtifactKind.SCRIPT, artifact_hash):
            return
        now = utc_now_epoch()
        with self._lock, closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO artifacts (
                    kind, hash, payload, language, state, created_at, updated_at
                ) VALUES (?, ?, '', NULL, 'approved', ?, ?)
                ON CONFLICT (kind, hash) DO UPDATE SET state = 'approved', updated_at = ?
                """,
                (ArtifactKind.SCRIPT.value, artifact_hash, now, now, now),
            )
        _log.info("Pre-approved script hash %s", artifact_hash)

    def deny(self, kind: ArtifactKind, artifact_hash: str) -> bool:
        """Remove a hash from every bucket."""
        with self._lock, closing(self._connect()) as conn, conn:
            return self._deny_in(conn, kind, artifact_hash)

    def revoke(self, kind: ArtifactKind, artifact_hash: str) -> bool:
        """Delete an approved entry; pending entries are left alone."""
        with self._lock, closing(self._connect()) as conn, conn:
            return self._revoke_in(conn, kind, artifact_hash)

    def clear_approved(self, kind: ArtifactKind) -> int:
        with self._lock, closing(self._connect()) as conn, conn:
            removed = conn.execute(
                "DELETE FROM artifacts WHERE kind = ? AND state = 'approved'",
                (kind.value,),
            ).rowcount
        _log.info("Cleared %d approved %s entries", removed, kind)
        return removed

    def clear_dangerous(self, kind: ArtifactKind) -> int:
        """Delete every approved signature that grants unrestricted access."""
        _require_signature(kind, "Clearing dangerous approvals")
        with self._lock, closing(self._connect()) as conn, conn:
            rows = conn.execute(
                f"{_SELECT} WHERE kind = ? AND state = 'approved'", (kind.value,)
            ).fetchall()
            dangerous = [s.hash for s in map(_row_to_stored, rows) if s.dangerous]
            conn.executemany(
                "DELETE FROM artifacts WHERE kind = ? AND hash = ?",
                [(kind.value, h) for h in dangerous],
            )
        _log.info("Cleared %d dangerous approved %s entries", len(dangerous), kind)
        return len(dangerous)

    def apply_batch(self, kind: ArtifactKind, action: BatchAction, hashes: Iterable[str]) -> int:
        """Apply *action* to each hash in one transaction; returns how many rows changed."""
        transition = {
            BatchAction.APPROVE: self._approve_in,
            BatchAction.DENY: self._deny_in,
            BatchAction.REVOKE: self._revoke_in,
        }[action]
        with self._lock, closing(self._connect()) as conn, conn:
            changed = sum(1 for h in dict.fromkeys(hashes) if transition(conn, kind, h))
        _log.info("Batch %s on %s changed %d entries", action, kind, changed)
        return changed

    # --- queries ---

    def snapshot(self, kind: ArtifactKind) -> Snapshot:
        """Pending and approved lists for *kind*, ordered by payload."""
        with self._lock, closing(self._connect()) as conn:
            rows = conn.execute(
                f"{_SELECT} WHERE kind = ? ORDER BY payload, hash", (kind.value,)
            ).fetchall()
        stored = [_row_to_stored(row) for row in rows]
        return Snapshot(
            kind=kind,
            pending=tuple(
                s.to_artifact() for s in stored if s.state is ApprovalState.PENDING
            ),
            approved=tuple(
                s.to_artifact() for s in stored if s.state is ApprovalState.APPROVED
            ),
        )

    def get(self, kind: ArtifactKind, artifact_hash: str) -> StoredArtifact | None:
        with self._lock, closing(self._connect()) as conn:
            return self._fetch(conn, kind, artifact_hash)

    def is_approved(
        self,
        kind: ArtifactKind,
        payload: str,
        *,
        language: str | None = None,
    ) -> bool:
        """Check approval of *payload*, converting a legacy-hash approval if found."""
        artifact_hash = compute_hash(kind, payload, language=language)
        with self._lock:
            return self._check_and_convert(kind, payload, language, artifact_hash)

    # --- legacy hashes ---

    def deprecated_approvals(self, kind: ArtifactKind) -> list[StoredArtifact]:
        with self._lock, closing(self._connect()) as conn:
            rows = conn.execute(
                f"{_SELECT} WHERE kind = ? AND state = 'approved' ORDER BY payload, hash",
                (kind.value,),
            ).fetchall()
        return [s for s in map(_row_to_stored, rows) if not is_current(s.hash)]

    def count_deprecated(self, kind: ArtifactKind) -> int:
        return len(self.deprecated_approvals(kind))

    def clear_deprecated(self, kind: ArtifactKind) -> int:
        """Delete every approval not produced by the current hasher."""
        with self._lock:
            stale = [s.hash for s in self.deprecated_approvals(kind)]
            with closing(self._connect()) as conn, conn:
                conn.executemany(
                    "DELETE FROM artifacts WHERE kind = ? AND hash = ?",
                    [(kind.value, h) for h in stale],
                )
        _log.info("Cleared %d deprecated approved %s hashes", len(stale), kind)
        return len(stale)

    def replace_hashes(self, kind: ArtifactKind, mapping: Mapping[str, str]) -> int:
        """Swap old approved hashes for new ones in a single transaction.

        Old hashes that are no longer approved are skipped; returns how many
        were swapped.
        """
        now = utc_now_epoch()
        with self._lock, closing(self._connect()) as conn, conn:
            replaced = sum(
                1
                for old_hash, new_hash in mapping.items()
                if self._rekey(conn, kind, old_hash, new_hash, now)
            )
        skipped = len(mapping) - replaced
        if skipped:
            _log.info("Skipped %d %s hashes no longer approved", skipped, kind)
        return replaced

    # --- internals ---

    def _approve_in(
        self,
        conn: sqlite3.Connection,
        kind: ArtifactKind,
        artifact_hash: str,
        *,
        acl: bool = False,
    ) -> bool:
        row = self._fetch(conn, kind, artifact_hash)
        if row is None:
            _log.info("Ignoring approval of unknown %s hash %s", kind, artifact_hash)
            return False
        if row.state is ApprovalState.APPROVED:
            return True
        conn.execute(
            """
            UPDATE artifacts SET state = 'approved', acl = ?, updated_at = ?
            WHERE kind = ? AND hash = ?
            """,
            (int(acl), utc_now_epoch(), kind.value, artifact_hash),
        )
        _log.info("Approved %s %s%s", kind, artifact_hash, " (ACL)" if acl else "")
        return True

    def _deny_in(self, conn: sqlite3.Connection, kind: ArtifactKind, artifact_hash: str) -> bool:
        removed = conn.execute(
            "DELETE FROM artifacts WHERE kind = ? AND hash = ?",
            (kind.value, artifact_hash),
        ).rowcount
        if removed:
            _log.info("Denied %s %s", kind, artifact_hash)
        return removed > 0

    def _revoke_in(self, conn: sqlite3.Connection, kind: ArtifactKind, artifact_hash: str) -> bool:
        removed = conn.execute(
            "DELETE FROM artifacts WHERE kind = ? AND hash = ? AND state = 'approved'",
            (kind.value, artifact_hash),
        ).rowcount
        if removed:
            _log.info("Revoked %s %s", kind, artifact_hash)
        return removed > 0

    def _hash_for_submission(
        self,
        kind: ArtifactKind,
        payload: str,
        language: str | None,
    ) -> ArtifactHash:
        if kind is ArtifactKind.CLASSPATH:
            path = Path(payload)
            if path.is_dir():
                raise ValueError(
                    f"Classpath entry {payload} is a class directory, which is not allowed."
                )
            try:
                return compute_hash(kind, payload)
            except OSError as exc:
                raise ValueError(f"Classpath entry {payload} cannot be read: {exc}") from exc
        return compute_hash(kind, payload, language=language)

    def _check_and_convert(
        self,
        kind: ArtifactKind,
        payload: str,
        language: str | None,
        artifact_hash: ArtifactHash,
    ) -> bool:
        with closing(self._connect()) as conn, conn:
            current = self._fetch(conn, kind, artifact_hash)
            if current is not None and current.state is ApprovalState.APPROVED:
                return True
            for hasher in Hasher:
                if hasher is CURRENT_HASHER:
                    continue
                old_hash = compute_hash(kind, payload, language=language, hasher=hasher)
                old = self._fetch(conn, kind, old_hash)
                if old is not None and old.state is ApprovalState.APPROVED:
                    _log.info(
                        "A %s is approved with an old hash algorithm; converting %s now",
                        kind,
                        old_hash,
                    )
                    self._rekey(conn, kind, old_hash, artifact_hash, utc_now_epoch())
                    return True
        return False

    def _rekey(
        self,
        conn: sqlite3.Connection,
        kind: ArtifactKind,
        old_hash: str,
        new_hash: str,
        now: int,
    ) -> bool:
        """Move the approval at *old_hash* to *new_hash*.

        A pending row at *new_hash* is absorbed only when the old approval
        still exists; otherwise nothing changes and ``False`` is returned.
        """
        old = self._fetch(conn, kind, old_hash)
        if old is None or old.state is not ApprovalState.APPROVED:
            return False
        conn.execute(
            "DELETE FROM artifacts WHERE kind = ? AND hash = ? AND state = 'pending'",
            (kind.value, new_hash),
        )
        conn.execute(
            """
            UPDATE OR REPLACE artifacts SET hash = ?, state = 'approved', updated_at = ?
            WHERE kind = ? AND hash = ?
            """,
            (new_hash, now, kind.value, old_hash),
        )
        return True

    def _fetch(
        self,
        conn: sqlite3.Connection,
        kind: ArtifactKind,
        artifact_hash: str,
    ) -> StoredArtifact | None:
        row = conn.execute(
            f"{_SELECT} WHERE kind = ? AND hash = ?", (kind.value, artifact_hash)
        ).fetchone()
        return None if row is None else _row_to_stored(row)

    def _connect(self) -> sqlite3.Connection:
        # shared by request threads and the conversion thread, serialized by _lock
        conn = sqlite3.connect(
            self._db_path, timeout=_BUSY_TIMEOUT_SECONDS, check_same_thread=False
        )
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        return conn
