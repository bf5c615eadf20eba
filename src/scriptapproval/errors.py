"""Error taxonomy for approval management."""

from __future__ import annotations


class ApprovalError(Exception):
    """Base class for every approval-management failure."""

    code = "approval_error"


class UnknownKindError(ApprovalError, ValueError):
    """Raised for an artifact kind that has no endpoints."""

    code = "unknown_kind"

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown artifact kind: {kind!r}")
        self.kind = kind


class EmptySelectionError(ApprovalError):
    """A batch action was requested with nothing selected.

    Raised before any network call is attempted.
    """

    code = "empty_selection"

    def __init__(self, container_id: str | None = None) -> None:
        super().__init__("There is no selected item, cannot proceed with the action.")
        self.container_id = container_id


class ApprovalRequestError(ApprovalError):
    """A backend call failed; the caller surfaces a generic error."""

    code = "request_failed"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthorizationLapseError(ApprovalRequestError):
    """The backend rejected the call as unauthorized (HTTP 403).

    Usually a stale session or token: the operator should refresh rather
    than retry.
    """

    code = "authorization_lapse"

    def __init__(self, message: str = "Request was rejected as unauthorized.") -> None:
        super().__init__(message, status_code=403)


class SnapshotFormatError(ApprovalRequestError):
    """The backend answered with a body that is not a snapshot."""

    code = "snapshot_format"
