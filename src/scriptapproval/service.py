"""Per-kind gateway to the approval backend.

Every successful mutation is followed by exactly one resynchronization fetch,
issued only after the mutation call has completed, and the resulting
``Snapshot`` is what callers render.  Batch requests go out as one call.
Declined confirmations return ``None`` without touching the network.

Dependencies: errors, models, policy, transport
Wired in: panel.py → ApprovalPanel, migration.py → LegacyMigrator, cli.py
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from scriptapproval.errors import EmptySelectionError
from scriptapproval.hashing import ArtifactKind
from scriptapproval.models import BatchAction, Snapshot
from scriptapproval.policy import Confirmer, Operation, confirmation_message
from scriptapproval.transport import ApprovalTransport

_log = logging.getLogger(__name__)

API_PREFIX = "/api"
APPROVE_SCRIPT_HASH_PATH = f"{API_PREFIX}/approveScriptHash"


class ApprovalService:
    """Approve, deny, revoke and resync one artifact kind."""

    def __init__(
        self,
        transport: ApprovalTransport,
        kind: ArtifactKind,
        *,
        confirm: Confirmer,
    ) -> None:
        self._transport = transport
        self._confirm = confirm
        self.kind = kind

    def action_url(self, operation: Operation | str | None = None) -> str:
        """Endpoint path for *operation*, or the snapshot path when omitted."""
        base = f"{API_PREFIX}/{self.kind}"
        return f"{base}/{operation}" if operation else base

    async def fetch_snapshot(self) -> Snapshot:
        """Read-only resync of the full pending/approved state."""
        body = await self._transport.get(self.action_url())
        return Snapshot.from_wire(self.kind, body)

    async def approve(self, artifact_hash: str) -> Snapshot:
        return await self._mutate(Operation.APPROVE, {"hash": artifact_hash})

    async def deny(self, artifact_hash: str) -> Snapshot:
        return await self._mutate(Operation.DENY, {"hash": artifact_hash})

    async def revoke(self, artifact_hash: str) -> Snapshot | None:
        """Remove an approved entry; classpath entries ask first."""
        if not self._confirmed(Operation.REVOKE):
            return None
        return await self._mutate(Operation.REVOKE, {"hash": artifact_hash})

    async def clear_all(self) -> Snapshot | None:
        if not self._confirmed(Operation.CLEAR):
            return None
        return await self._mutate(Operation.CLEAR, None)

    async def acl_approve(self, artifact_hash: str) -> Snapshot:
        """Approve a signature only for callers holding the needed permissions."""
        self._require_signatures(Operation.ACL_APPROVE)
        return await self._mutate(Operation.ACL_APPROVE, {"hash": artifact_hash})

    async def clear_dangerous(self) -> Snapshot:
        """Drop every approved signature that grants unrestricted access."""
        self._require_signatures(Operation.CLEAR_DANGEROUS)
        return await self._mutate(Operation.CLEAR_DANGEROUS, None)

    async def batch(
        self,
        action: BatchAction,
        hashes: Iterable[str],
        *,
        confirm_message: str | None = None,
        container_id: str | None = None,
    ) -> Snapshot | None:
        """Apply *action* to every hash with a single request.

        Raises ``EmptySelectionError`` before any call when *hashes* is empty.
        """
        selected = list(dict.fromkeys(hashes))
        if not selected:
            raise EmptySelectionError(container_id)
        if not self._confirmed(Operation.BATCH, supplied=confirm_message):
            return None
        return await self._mutate(f"{Operation.BATCH}/{action}", {"hashes": selected})

    async def migrate_legacy(self) -> None:
        """Trigger the backend legacy-hash conversion and return.

        Completion is only visible in the server log; no resync follows.
        """
        await self._transport.post(self.action_url(Operation.MIGRATE))
        _log.info("Scheduled legacy %s approval conversion", self.kind)

    async def approve_script_hash(self, artifact_hash: str) -> None:
        """Pre-approve a script by hash; acknowledged without a snapshot."""
        if self.kind is not ArtifactKind.SCRIPT:
            raise ValueError("Only script hashes can be pre-approved.")
        await self._transport.post(APPROVE_SCRIPT_HASH_PATH, {"hash": artifact_hash})

    def _require_signatures(self, operation: Operation) -> None:
        if self.kind is not ArtifactKind.SIGNATURE:
            raise ValueError(f"{operation} only applies to signatures, not {self.kind}.")

    def _confirmed(self, operation: Operation, *, supplied: str | None = None) -> bool:
        message = confirmation_message(operation, self.kind, supplied=supplied)
        if message is None:
            return True
        if self._confirm(message):
            return True
        _log.info("%s %s cancelled by operator", self.kind, operation)
        return False

    async def _mutate(self, operation: Operation | str, body: dict[str, Any] | None) -> Snapshot:
        await self._transport.post(self.action_url(operation), body)
        _log.debug("%s %s applied, resynchronizing", self.kind, operation)
        return await self.fetch_snapshot()


def services_for(
    transport: ApprovalTransport,
    *,
    confirm: Confirmer,
) -> dict[ArtifactKind, ApprovalService]:
    """One service per kind, sharing a transport."""
    return {kind: ApprovalService(transport, kind, confirm=confirm) for kind in ArtifactKind}
