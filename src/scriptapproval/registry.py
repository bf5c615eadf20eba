"""In-memory view of the three artifact collections.

Each kind holds a pending and an approved ``ArtifactSet``.  Buckets are only
ever replaced wholesale from a fresh ``Snapshot``; nothing patches them in
place.  Checkbox containers are declared against one kind and bucket so a
``BatchSelection`` can be computed without a rendered page.

Dependencies: hashing, models
Wired in: view.py → ViewReconciler, panel.py → ApprovalPanel
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from scriptapproval.hashing import ArtifactHash, ArtifactKind
from scriptapproval.models import ApprovalState, Artifact, Snapshot

_log = logging.getLogger(__name__)

_BUCKET_STATES = (ApprovalState.PENDING, ApprovalState.APPROVED)


class ArtifactSet(Mapping[ArtifactHash, Artifact]):
    """Immutable hash → artifact mapping for one kind and one bucket.

    Repeated hashes collapse onto the first occurrence.
    """

    def __init__(
        self,
        kind: ArtifactKind,
        state: ApprovalState,
        artifacts: Iterable[Artifact] = (),
    ) -> None:
        entries: dict[ArtifactHash, Artifact] = {}
        for artifact in artifacts:
            if artifact.hash in entries:
                _log.debug("Collapsing duplicate %s hash %s", kind, artifact.hash)
                continue
            entries[artifact.hash] = artifact
        self.kind = kind
        self.state = state
        self._entries = MappingProxyType(entries)

    def __getitem__(self, key: ArtifactHash) -> Artifact:
        return self._entries[key]

    def __iter__(self) -> Iterator[ArtifactHash]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def artifacts(self) -> list[Artifact]:
        return list(self._entries.values())


@dataclass(frozen=True)
class BatchSelection:
    """Hashes checked in one container at the moment it was read."""

    kind: ArtifactKind
    state: ApprovalState
    container_id: str
    hashes: frozenset[ArtifactHash] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.hashes


@dataclass
class _Container:
    kind: ArtifactKind
    state: ApprovalState
    has_warning: bool = False
    checked: dict[ArtifactHash, bool] = field(default_factory=dict)


class ArtifactRegistry:
    """Pending/approved buckets per kind plus declared selection containers."""

    def __init__(self) -> None:
        self._buckets: dict[ArtifactKind, dict[ApprovalState, ArtifactSet]] = {
            kind: {state: ArtifactSet(kind, state) for state in _BUCKET_STATES}
            for kind in ArtifactKind
        }
        self._containers: dict[str, _Container] = {}

    # --- snapshots ---

    def upsert_snapshot(self, kind: ArtifactKind, snapshot: Snapshot) -> None:
        """Replace both buckets of *kind* with the contents of *snapshot*.

        Prior state is discarded, never merged.  A hash reported as both
        pending and approved is kept in the approved bucket only.
        """
        if snapshot.kind is not kind:
            raise ValueError(f"Snapshot for {snapshot.kind} cannot replace {kind} buckets.")
        approved = ArtifactSet(kind, ApprovalState.APPROVED, snapshot.approved)
        overlap = [a.hash for a in snapshot.pending if a.hash in approved]
        if overlap:
            _log.warning(
                "Snapshot for %s lists %d hash(es) as both pending and approved: %s",
                kind,
                len(overlap),
                overlap,
            )
        pending = ArtifactSet(
            kind,
            ApprovalState.PENDING,
            (a for a in snapshot.pending if a.hash not in approved),
        )
        self._buckets[kind] = {
            ApprovalState.PENDING: pending,
            ApprovalState.APPROVED: approved,
        }
        for container in self._containers.values():
            if container.kind is kind:
                container.checked = dict.fromkeys(self._buckets[kind][container.state], False)

    def bucket(self, kind: ArtifactKind, state: ApprovalState) -> ArtifactSet:
        if state not in _BUCKET_STATES:
            # denied artifacts are not tracked
            return ArtifactSet(kind, state)
        return self._buckets[kind][state]

    def state_of(self, kind: ArtifactKind, artifact_hash: str) -> ApprovalState | None:
        for state in _BUCKET_STATES:
            if artifact_hash in self._buckets[kind][state]:
                return state
        return None

    def contains(self, kind: ArtifactKind, artifact_hash: str) -> bool:
        return self.state_of(kind, artifact_hash) is not None

    # --- selection ---

    def bind_container(
        self,
        container_id: str,
        kind: ArtifactKind,
        state: ApprovalState,
        *,
        has_warning: bool = False,
    ) -> None:
        """Declare a checkbox container listing one bucket of *kind*.

        *has_warning* marks containers that carry an inline "nothing selected"
        element.
        """
        if state not in _BUCKET_STATES:
            raise ValueError(f"Cannot select from the {state} bucket.")
        self._containers[container_id] = _Container(
            kind=kind,
            state=state,
            has_warning=has_warning,
            checked=dict.fromkeys(self._buckets[kind][state], False),
        )

    def set_checked(self, container_id: str, artifact_hash: str, checked: bool = True) -> None:
        container = self._container(container_id)
        key = ArtifactHash(artifact_hash)
        if key not in container.checked:
            raise KeyError(f"No checkbox for {artifact_hash!r} in container {container_id!r}")
        container.checked[key] = checked

    def has_warning(self, container_id: str) -> bool:
        return self._container(container_id).has_warning

    def checkboxes(self, container_id: str) -> Mapping[ArtifactHash, bool]:
        return MappingProxyType(dict(self._container(container_id).checked))

    def selection(self, container_id: str) -> BatchSelection:
        """Read the currently checked hashes of *container_id*."""
        container = self._container(container_id)
        return BatchSelection(
            kind=container.kind,
            state=container.state,
            container_id=container_id,
            hashes=frozenset(h for h, checked in container.checked.items() if checked),
        )

    def _container(self, container_id: str) -> _Container:
        try:
            return self._containers[container_id]
        except KeyError:
            raise KeyError(f"Unknown selection container: {container_id!r}") from None
