"""Authoritative approval storage.

Public API: ApprovalStore, LegacyConverter, StoredArtifact
Internal: schema
"""

from scriptapproval.store.approvals import ApprovalStore, StoredArtifact
from scriptapproval.store.conversion import LegacyConverter

__all__ = [
    "ApprovalStore",
    "LegacyConverter",
    "StoredArtifact",
]
