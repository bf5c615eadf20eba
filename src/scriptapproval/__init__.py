"""Approval management for scripts, method signatures and classpath entries.

Public API: ApprovalPanel, ApprovalService, ArtifactRegistry, LegacyMigrator,
ViewReconciler, HttpTransport, ArtifactKind, ApprovalState, ApprovalContext, Snapshot
Internal: hashing, policy, signatures, view, store, server
"""

__version__ = "0.1.0"

from scriptapproval.hashing import ArtifactKind
from scriptapproval.migration import LegacyMigrator
from scriptapproval.models import ApprovalContext, ApprovalState, Artifact, BatchAction, Snapshot
from scriptapproval.panel import ApprovalPanel, Control
from scriptapproval.registry import ArtifactRegistry
from scriptapproval.service import ApprovalService, services_for
from scriptapproval.transport import HttpTransport
from scriptapproval.view import ViewReconciler

__all__ = [
    "ApprovalContext",
    "ApprovalPanel",
    "ApprovalService",
    "ApprovalState",
    "Artifact",
    "ArtifactKind",
    "ArtifactRegistry",
    "BatchAction",
    "Control",
    "HttpTransport",
    "LegacyMigrator",
    "Snapshot",
    "ViewReconciler",
    "__version__",
    "services_for",
]
