"""Per-kind panel state machine and its projection to visible elements.

A panel moves ``LOADING → LOADED → LOADING`` on each mutation, or to
``FAILED`` when a call errors.  Only ``loaded`` writes to the registry, and
it always replaces the kind's buckets from server truth.  ``project`` is a
pure function of ``PanelState``.

Dependencies: errors, models, registry
Wired in: panel.py → ApprovalPanel, display.py, cli.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum

from scriptapproval.errors import AuthorizationLapseError
from scriptapproval.hashing import ArtifactKind
from scriptapproval.models import ApprovalState, Artifact, Snapshot
from scriptapproval.registry import ArtifactRegistry

_log = logging.getLogger(__name__)

NONE_PLACEHOLDER = "-none-"


class PanelPhase(StrEnum):
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class ErrorKind(StrEnum):
    """Inline error element to show after a failed call."""

    AUTHORIZATION = "authorization"
    GENERIC = "generic"


@dataclass(frozen=True)
class PanelState:
    """Explicit state of one artifact-kind panel.

    ``snapshot`` is the last snapshot applied successfully; it survives
    ``LOADING`` and ``FAILED`` so the previous lists stay on screen.
    """

    kind: ArtifactKind
    phase: PanelPhase = PanelPhase.LOADING
    snapshot: Snapshot | None = None
    error: ErrorKind | None = None
    selection_warnings: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ListView:
    """Visible elements for one bucket."""

    state: ApprovalState
    items: tuple[Artifact, ...]
    placeholder_visible: bool
    list_visible: bool
    bulk_actions_visible: bool

    @property
    def placeholder(self) -> str | None:
        return NONE_PLACEHOLDER if self.placeholder_visible else None


@dataclass(frozen=True)
class PanelView:
    """Everything a renderer needs for one kind's panel."""

    kind: ArtifactKind
    loading_visible: bool
    pending: ListView | None
    approved: ListView | None
    error: ErrorKind | None
    selection_warnings: frozenset[str]


def _list_view(state: ApprovalState, items: tuple[Artifact, ...]) -> ListView:
    has_items = bool(items)
    return ListView(
        state=state,
        items=items,
        placeholder_visible=not has_items,
        list_visible=has_items,
        bulk_actions_visible=has_items,
    )


def project(state: PanelState) -> PanelView:
    """Map a panel state to its visible elements.

    Before the first successful load there are no lists at all, which keeps
    "nothing loaded yet" apart from the "-none-" placeholder of an empty bucket.
    """
    snapshot = state.snapshot
    return PanelView(
        kind=state.kind,
        loading_visible=state.phase is PanelPhase.LOADING,
        pending=_list_view(ApprovalState.PENDING, snapshot.pending) if snapshot else None,
        approved=_list_view(ApprovalState.APPROVED, snapshot.approved) if snapshot else None,
        error=state.error if state.phase is PanelPhase.FAILED else None,
        selection_warnings=state.selection_warnings,
    )


def classify_error(exc: BaseException) -> ErrorKind:
    if isinstance(exc, AuthorizationLapseError):
        return ErrorKind.AUTHORIZATION
    return ErrorKind.GENERIC


class ViewReconciler:
    """Owns the panel states and applies snapshots to the registry."""

    def __init__(self, registry: ArtifactRegistry) -> None:
        self.registry = registry
        self._states: dict[ArtifactKind, PanelState] = {
            kind: PanelState(kind=kind) for kind in ArtifactKind
        }

    def state(self, kind: ArtifactKind) -> PanelState:
        return self._states[kind]

    def begin(self, kind: ArtifactKind) -> PanelState:
        """Enter ``LOADING`` ahead of a call; clears errors and warnings."""
        current = self._states[kind]
        self._states[kind] = replace(
            current,
            phase=PanelPhase.LOADING,
            error=None,
            selection_warnings=frozenset(),
        )
        return self._states[kind]

    def loaded(self, kind: ArtifactKind, snapshot: Snapshot) -> PanelState:
        """Replace the registry buckets from *snapshot* and enter ``LOADED``."""
        self.registry.upsert_snapshot(kind, snapshot)
        self._states[kind] = PanelState(kind=kind, phase=PanelPhase.LOADED, snapshot=snapshot)
        return self._states[kind]

    def failed(self, kind: ArtifactKind, exc: BaseException) -> PanelState:
        """Enter ``FAILED``; the registry keeps its last good contents."""
        error = classify_error(exc)
        _log.warning("%s panel call failed (%s): %s", kind, error, exc)
        self._states[kind] = replace(self._states[kind], phase=PanelPhase.FAILED, error=error)
        return self._states[kind]

    def warn_empty_selection(self, kind: ArtifactKind, container_id: str) -> PanelState:
        current = self._states[kind]
        self._states[kind] = replace(
            current,
            selection_warnings=current.selection_warnings | {container_id},
        )
        return self._states[kind]

    def restore(self, kind: ArtifactKind, previous: PanelState) -> PanelState:
        """Return to *previous* after a call that was never issued."""
        self._states[kind] = previous
        return previous

    def render(self, kind: ArtifactKind) -> PanelView:
        return project(self._states[kind])
