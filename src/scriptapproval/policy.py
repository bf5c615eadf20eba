"""Confirmation policy for destructive approval actions."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from enum import StrEnum
from types import MappingProxyType

from scriptapproval.hashing import ArtifactKind

Confirmer = Callable[[str], bool]
"""Ask the operator a yes/no question; ``True`` means proceed."""


class Operation(StrEnum):
    """Every operator-triggered operation on one kind."""

    APPROVE = "approve"
    DENY = "deny"
    REVOKE = "revoke"
    CLEAR = "clear"
    BATCH = "batch"
    MIGRATE = "migrate"
    ACL_APPROVE = "aclApprove"
    CLEAR_DANGEROUS = "clearDangerous"


REVOKE_CLASSPATH_MESSAGE = (
    "Really delete this approved classpath entry? Any existing scripts using it "
    "will need to be rerun and the entry reapproved."
)
MIGRATE_MESSAGE = (
    "This will be scheduled on a background thread. "
    "You can follow the progress in the system log"
)

_CLEAR_MESSAGES: Mapping[ArtifactKind, str] = MappingProxyType(
    {
        ArtifactKind.SCRIPT: (
            "Really delete all approvals? Any existing scripts will need to be "
            "requeued and reapproved."
        ),
        ArtifactKind.SIGNATURE: (
            "Really delete all approvals? Any existing scripts will need to be "
            "rerun and signatures reapproved."
        ),
        ArtifactKind.CLASSPATH: (
            "Really delete all approvals? Any existing scripts using a classpath "
            "will need to be rerun and entries reapproved."
        ),
    }
)


def confirmation_message(
    operation: Operation,
    kind: ArtifactKind,
    *,
    supplied: str | None = None,
) -> str | None:
    """Return the question to ask before *operation*, or ``None`` to skip it.

    Batch actions confirm with the caller's per-screen text and skip the
    prompt when none is supplied.
    """
    if operation is Operation.BATCH:
        return supplied or None
    if operation is Operation.CLEAR:
        return _CLEAR_MESSAGES[kind]
    if operation is Operation.REVOKE and kind is ArtifactKind.CLASSPATH:
        return REVOKE_CLASSPATH_MESSAGE
    if operation is Operation.MIGRATE:
        return MIGRATE_MESSAGE
    return None


def always_confirm(_message: str) -> bool:
    return True
