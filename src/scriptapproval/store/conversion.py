"""Background rehashing of approvals stored under the deprecated hasher.

Conversion can take a long time (classpath entries are re-read from disk),
so it runs on a daemon thread and reports only through the log.  Scheduling
while a conversion is already running does nothing.

Dependencies: hashing, store.approvals
Wired in: server/app.py → create_app(), server/routes.py → migrate
"""

from __future__ import annotations

import logging
import threading

from scriptapproval.hashing import ArtifactHash, ArtifactKind, compute_hash
from scriptapproval.store.approvals import ApprovalStore, StoredArtifact

_log = logging.getLogger(__name__)


class LegacyConverter:
    """Schedules at most one rehashing thread at a time."""

    def __init__(self, store: ApprovalStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None

    @property
    def converting(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def schedule(self, kind: ArtifactKind) -> bool:
        """Start converting *kind*'s deprecated approvals.

        Returns ``True`` when a new conversion thread was started.
        """
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                _log.info("Background conversion task already running.")
                return False
            entries = self._store.deprecated_approvals(kind)
            if not entries:
                _log.info("Nothing to convert for %s.", kind)
                return False
            _log.info(
                "Scheduling conversion of %d deprecated approved %s hashes.",
                len(entries),
                kind,
            )
            self._thread = threading.Thread(
                target=self._convert,
                args=(kind, entries),
                name=f"Approved {kind} rehasher",
                daemon=True,
            )
            self._thread.start()
            return True

    def join(self, timeout: float | None = None) -> None:
        """Wait for the running conversion, if any."""
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _convert(self, kind: ArtifactKind, entries: list[StoredArtifact]) -> None:
        converted: dict[str, ArtifactHash] = {}
        total = len(entries)
        for index, entry in enumerate(entries, start=1):
            _log.info("Converting %s\t(%d/%d)", entry.payload or entry.hash, index, total)
            if not entry.payload:
                _log.warning(
                    "Cannot convert %s %s: the original content is unknown", kind, entry.hash
                )
                continue
            try:
                converted[entry.hash] = compute_hash(kind, entry.payload, language=entry.language)
            except (OSError, ValueError):
                _log.warning("Failed to convert %s", entry.payload, exc_info=True)
        try:
            replaced = self._store.replace_hashes(kind, converted)
        except Exception:
            _log.exception("Failed to store conversion result.")
        else:
            _log.info("Conversion done: %d of %d %s hashes converted.", replaced, total, kind)
