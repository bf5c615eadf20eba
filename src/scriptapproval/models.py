"""Shared data models for artifacts, snapshots and batch actions.

Dependencies: hashing
Wired in: registry.py, service.py, view.py, store/approvals.py
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from scriptapproval.errors import SnapshotFormatError
from scriptapproval.hashing import ArtifactHash, ArtifactKind


class ApprovalState(StrEnum):
    """Lifecycle states of an artifact."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class BatchAction(StrEnum):
    """Actions a single batch request can apply to many hashes."""

    APPROVE = "approve"
    DENY = "deny"
    REVOKE = "revoke"

    @property
    def source_state(self) -> ApprovalState:
        """Bucket the selected hashes are expected to come from."""
        return ApprovalState.APPROVED if self is BatchAction.REVOKE else ApprovalState.PENDING


@dataclass(frozen=True)
class ApprovalContext:
    """Who asked for an approval and on behalf of which item; display only."""

    user: str | None = None
    item: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.user is None and self.item is None


@dataclass(frozen=True)
class Artifact:
    """One approvable script, signature, or classpath entry.

    ``language`` and ``context`` describe pending submissions.  ``dangerous``
    marks signatures that grant unrestricted access and ``acl`` marks
    signatures approved to run only with the caller's own permissions.
    """

    hash: ArtifactHash
    payload: str
    state: ApprovalState
    language: str | None = None
    context: ApprovalContext = field(default_factory=ApprovalContext)
    dangerous: bool = False
    acl: bool = False

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"hash": self.hash, "payload": self.payload}
        if self.language is not None:
            wire["language"] = self.language
        if self.context.user is not None:
            wire["user"] = self.context.user
        if self.context.item is not None:
            wire["item"] = self.context.item
        if self.dangerous:
            wire["dangerous"] = True
        if self.acl:
            wire["acl"] = True
        return wire


def _artifact_tuple() -> tuple[Artifact, ...]:
    return ()


@dataclass(frozen=True)
class Snapshot:
    """Server-reported pending and approved lists for one kind.

    The only trusted source of truth for rendering.
    """

    kind: ArtifactKind
    pending: tuple[Artifact, ...] = field(default_factory=_artifact_tuple)
    approved: tuple[Artifact, ...] = field(default_factory=_artifact_tuple)

    @classmethod
    def build(
        cls,
        kind: ArtifactKind,
        pending: Iterable[tuple[str, str]],
        approved: Iterable[tuple[str, str]],
    ) -> Snapshot:
        """Build from ``(hash, payload)`` pairs."""
        return cls(
            kind=kind,
            pending=tuple(
                Artifact(ArtifactHash(h), p, ApprovalState.PENDING) for h, p in pending
            ),
            approved=tuple(
                Artifact(ArtifactHash(h), p, ApprovalState.APPROVED) for h, p in approved
            ),
        )

    @classmethod
    def from_wire(cls, kind: ArtifactKind, body: Any) -> Snapshot:
        """Parse the ``[pendingList, approvedList]`` response shape."""
        if not isinstance(body, Sequence) or isinstance(body, str | bytes) or len(body) != 2:
            raise SnapshotFormatError("Expected a [pending, approved] pair.")
        return cls(
            kind=kind,
            pending=_parse_items(body[0], ApprovalState.PENDING),
            approved=_parse_items(body[1], ApprovalState.APPROVED),
        )

    def to_wire(self) -> list[list[dict[str, Any]]]:
        return [
            [a.to_wire() for a in self.pending],
            [a.to_wire() for a in self.approved],
        ]

    def hashes(self, state: ApprovalState) -> frozenset[ArtifactHash]:
        if state is ApprovalState.PENDING:
            return frozenset(a.hash for a in self.pending)
        if state is ApprovalState.APPROVED:
            return frozenset(a.hash for a in self.approved)
        return frozenset()


def _optional_str(entry: dict[str, Any], key: str) -> str | None:
    value = entry.get(key)
    return value if isinstance(value, str) else None


def _parse_items(raw: Any, state: ApprovalState) -> tuple[Artifact, ...]:
    if not isinstance(raw, list):
        raise SnapshotFormatError("Snapshot bucket must be a list.")
    items: list[Artifact] = []
    for entry in raw:
        if not isinstance(entry, dict) or not isinstance(entry.get("hash"), str):
            raise SnapshotFormatError("Snapshot entries need a string 'hash'.")
        items.append(
            Artifact(
                hash=ArtifactHash(entry["hash"]),
                payload=str(entry.get("payload", "")),
                state=state,
                language=_optional_str(entry, "language"),
                context=ApprovalContext(
                    user=_optional_str(entry, "user"),
                    item=_optional_str(entry, "item"),
                ),
                dangerous=entry.get("dangerous") is True,
                acl=entry.get("acl") is True,
            )
        )
    return tuple(items)
