"""Panel controller binding declarative controls to approval operations.

Each interactive control carries everything needed to resolve its operation:
the action URL, the target hash, the checkbox container, and an optional
confirmation message.  A panel serves one kind and runs at most one call at a
time; activations that arrive while a call is outstanding are ignored.

Dependencies: errors, migration, models, service, view
Wired in: cli.py → build_panel, run_panel_command
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass

from scriptapproval.errors import ApprovalRequestError
from scriptapproval.hashing import ArtifactKind
from scriptapproval.migration import LegacyMigrator
from scriptapproval.models import BatchAction, Snapshot
from scriptapproval.policy import Operation
from scriptapproval.registry import ArtifactRegistry
from scriptapproval.service import API_PREFIX, ApprovalService
from scriptapproval.view import PanelState, PanelView, ViewReconciler

_log = logging.getLogger(__name__)

_ATTR_ACTION_URL = "data-action-url"
_ATTR_HASH = "data-hash"
_ATTR_CONTAINER_ID = "data-container-id"
_ATTR_CONFIRM_MESSAGE = "data-action-confirm-message"


@dataclass(frozen=True)
class Control:
    """One interactive element and the data attributes it carries."""

    action_url: str
    hash: str | None = None
    container_id: str | None = None
    confirm_message: str | None = None

    @classmethod
    def from_attributes(cls, attributes: Mapping[str, str]) -> Control:
        try:
            action_url = attributes[_ATTR_ACTION_URL]
        except KeyError:
            raise ValueError(f"Control is missing {_ATTR_ACTION_URL}") from None
        return cls(
            action_url=action_url,
            hash=attributes.get(_ATTR_HASH) or None,
            container_id=attributes.get(_ATTR_CONTAINER_ID) or None,
            confirm_message=attributes.get(_ATTR_CONFIRM_MESSAGE) or None,
        )

    def to_attributes(self) -> dict[str, str]:
        attributes = {_ATTR_ACTION_URL: self.action_url}
        if self.hash:
            attributes[_ATTR_HASH] = self.hash
        if self.container_id:
            attributes[_ATTR_CONTAINER_ID] = self.container_id
        if self.confirm_message:
            attributes[_ATTR_CONFIRM_MESSAGE] = self.confirm_message
        return attributes


@dataclass(frozen=True)
class ResolvedAction:
    kind: ArtifactKind
    operation: Operation
    batch_action: BatchAction | None = None


def resolve_action_url(action_url: str) -> ResolvedAction:
    """Parse ``/api/{kind}/{operation}[/{batch action}]``."""
    prefix = f"{API_PREFIX}/"
    if not action_url.startswith(prefix):
        raise ValueError(f"Not an approval action URL: {action_url!r}")
    parts = action_url[len(prefix) :].strip("/").split("/")
    try:
        kind = ArtifactKind(parts[0])
        operation = Operation(parts[1])
        batch_action = BatchAction(parts[2]) if operation is Operation.BATCH else None
    except (IndexError, ValueError):
        raise ValueError(f"Not an approval action URL: {action_url!r}") from None
    if len(parts) != (3 if batch_action else 2):
        raise ValueError(f"Not an approval action URL: {action_url!r}")
    return ResolvedAction(kind=kind, operation=operation, batch_action=batch_action)


class ApprovalPanel:
    """Drive one kind's service and reconcile the panel after every call."""

    def __init__(
        self,
        service: ApprovalService,
        reconciler: ViewReconciler,
        *,
        migrator: LegacyMigrator | None = None,
    ) -> None:
        self._service = service
        self._reconciler = reconciler
        self._migrator = migrator
        self._busy = False
        self.kind = service.kind

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def registry(self) -> ArtifactRegistry:
        return self._reconciler.registry

    @property
    def migrator(self) -> LegacyMigrator | None:
        return self._migrator

    def view(self) -> PanelView:
        return self._reconciler.render(self.kind)

    def control(
        self,
        operation: Operation,
        *,
        artifact_hash: str | None = None,
        batch_action: BatchAction | None = None,
        container_id: str | None = None,
        confirm_message: str | None = None,
    ) -> Control:
        """Build the control for *operation* on this panel."""
        target = f"{operation}/{batch_action}" if batch_action else operation
        return Control(
            action_url=self._service.action_url(target),
            hash=artifact_hash,
            container_id=container_id,
            confirm_message=confirm_message,
        )

    async def load(self) -> PanelState | None:
        """Initial fetch; also used to resync after an external change."""
        return await self._run("load", self._service.fetch_snapshot)

    async def approve(self, artifact_hash: str) -> PanelState | None:
        return await self._run("approve", lambda: self._service.approve(artifact_hash))

    async def deny(self, artifact_hash: str) -> PanelState | None:
        return await self._run("deny", lambda: self._service.deny(artifact_hash))

    async def revoke(self, artifact_hash: str) -> PanelState | None:
        return await self._run("revoke", lambda: self._service.revoke(artifact_hash))

    async def clear_all(self) -> PanelState | None:
        return await self._run("clear", self._service.clear_all)

    async def acl_approve(self, artifact_hash: str) -> PanelState | None:
        self._require_signatures(Operation.ACL_APPROVE)
        return await self._run("aclApprove", lambda: self._service.acl_approve(artifact_hash))

    async def clear_dangerous(self) -> PanelState | None:
        self._require_signatures(Operation.CLEAR_DANGEROUS)
        return await self._run("clearDangerous", self._service.clear_dangerous)

    async def batch(
        self,
        action: BatchAction,
        container_id: str,
        *,
        confirm_message: str | None = None,
    ) -> PanelState | None:
        """Apply *action* to whatever is checked in *container_id* right now."""
        registry = self.registry
        selection = registry.selection(container_id)
        if selection.kind is not self.kind or selection.state is not action.source_state:
            raise ValueError(
                f"Container {container_id!r} lists {selection.kind} {selection.state} items, "
                f"not {self.kind} {action.source_state} items."
            )
        if selection.is_empty:
            if registry.has_warning(container_id):
                return self._reconciler.warn_empty_selection(self.kind, container_id)
            _log.warning("Nothing selected in %s, cannot proceed with the action.", container_id)
            return None
        hashes = sorted(selection.hashes)
        return await self._run(
            "batch",
            lambda: self._service.batch(
                action,
                hashes,
                confirm_message=confirm_message,
                container_id=container_id,
            ),
        )

    async def migrate(self) -> bool:
        if self._migrator is None:
            raise ValueError(f"No legacy migration control on the {self.kind} panel.")
        return await self._migrator.trigger()

    async def activate(self, control: Control) -> PanelState | bool | None:
        """Run the operation a control's data attributes describe."""
        resolved = resolve_action_url(control.action_url)
        if resolved.kind is not self.kind:
            raise ValueError(f"Control targets {resolved.kind}, panel serves {self.kind}.")
        operation = resolved.operation
        if operation is Operation.BATCH:
            if resolved.batch_action is None or control.container_id is None:
                raise ValueError("Batch controls need an action and a container id.")
            return await self.batch(
                resolved.batch_action,
                control.container_id,
                confirm_message=control.confirm_message,
            )
        if operation is Operation.CLEAR:
            return await self.clear_all()
        if operation is Operation.CLEAR_DANGEROUS:
            return await self.clear_dangerous()
        if operation is Operation.MIGRATE:
            return await self.migrate()
        if control.hash is None:
            raise ValueError(f"{operation} controls need a target hash.")
        if operation is Operation.APPROVE:
            return await self.approve(control.hash)
        if operation is Operation.DENY:
            return await self.deny(control.hash)
        if operation is Operation.ACL_APPROVE:
            return await self.acl_approve(control.hash)
        return await self.revoke(control.hash)

    def _require_signatures(self, operation: Operation) -> None:
        # checked before LOADING so a misdirected control leaves the panel as it was
        if self.kind is not ArtifactKind.SIGNATURE:
            raise ValueError(f"{operation} only applies to signatures, not {self.kind}.")

    async def _run(
        self,
        name: str,
        call: Callable[[], Awaitable[Snapshot | None]],
    ) -> PanelState | None:
        if self._busy:
            _log.info("Ignoring %s on %s panel: a call is already in flight", name, self.kind)
            return None
        self._busy = True
        previous = self._reconciler.state(self.kind)
        self._reconciler.begin(self.kind)
        try:
            snapshot = await call()
        except ApprovalRequestError as exc:
            return self._reconciler.failed(self.kind, exc)
        finally:
            self._busy = False
        if snapshot is None:
            # confirmation declined, nothing was sent
            return self._reconciler.restore(self.kind, previous)
        return self._reconciler.loaded(self.kind, snapshot)
