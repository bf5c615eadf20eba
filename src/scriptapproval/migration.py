"""Operator control for the one-shot legacy hash conversion.

The conversion may run for a long time on the server, so the control fires
the request and stops there: it hides its trigger, shows a progress
indicator, and never polls or resyncs.  The operator follows progress in the
server log or reloads later.

Dependencies: errors, policy, service, view
Wired in: panel.py → ApprovalPanel, cli.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from scriptapproval.errors import ApprovalRequestError
from scriptapproval.policy import Confirmer, Operation, confirmation_message
from scriptapproval.service import ApprovalService
from scriptapproval.view import ErrorKind, classify_error

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MigrationView:
    trigger_visible: bool
    progress_visible: bool
    error: ErrorKind | None = None


class LegacyMigrator:
    """Trigger control for one kind's legacy conversion."""

    def __init__(self, service: ApprovalService, *, confirm: Confirmer) -> None:
        self._service = service
        self._confirm = confirm
        self._trigger_visible = True
        self._progress_visible = False
        self._error: ErrorKind | None = None

    def view(self) -> MigrationView:
        return MigrationView(
            trigger_visible=self._trigger_visible,
            progress_visible=self._progress_visible,
            error=self._error,
        )

    async def trigger(self) -> bool:
        """Ask, then fire the conversion request.

        Returns ``True`` once the request was accepted.  The trigger stays
        hidden afterwards; a second activation is ignored.
        """
        if not self._trigger_visible:
            _log.debug("Legacy %s conversion already triggered", self._service.kind)
            return False
        message = confirmation_message(Operation.MIGRATE, self._service.kind)
        if message is not None and not self._confirm(message):
            return False
        self._trigger_visible = False
        self._progress_visible = True
        self._error = None
        try:
            await self._service.migrate_legacy()
        except ApprovalRequestError as exc:
            _log.warning("Could not schedule legacy %s conversion: %s", self._service.kind, exc)
            self._trigger_visible = True
            self._progress_visible = False
            self._error = classify_error(exc)
            return False
        return True
