"""Shared test fixtures for script approval."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from scriptapproval.errors import ApprovalRequestError
from scriptapproval.hashing import ArtifactKind
from scriptapproval.registry import ArtifactRegistry
from scriptapproval.service import ApprovalService
from scriptapproval.store import ApprovalStore
from scriptapproval.view import ViewReconciler

SnapshotBody = list[list[dict[str, str]]]


def snapshot_body(
    pending: list[tuple[str, str]] | None = None,
    approved: list[tuple[str, str]] | None = None,
) -> SnapshotBody:
    """Wire-format ``[pendingList, approvedList]`` from ``(hash, payload)`` pairs."""
    return [
        [{"hash": h, "payload": p} for h, p in pending or []],
        [{"hash": h, "payload": p} for h, p in approved or []],
    ]


class FakeTransport:
    """Records every call and serves a scripted snapshot.

    ``after_post`` becomes the served snapshot once a POST lands, which is
    how tests model the server applying a mutation.  Setting ``gate`` holds
    every POST until the event is set.
    """

    def __init__(self, body: SnapshotBody | None = None) -> None:
        self.body: Any = body if body is not None else snapshot_body()
        self.after_post: Any = None
        self.calls: list[tuple[str, str, dict[str, Any] | None]] = []
        self.failures: dict[tuple[str, str], Exception] = {}
        self.gate: asyncio.Event | None = None

    def fail(self, method: str, path: str, exc: Exception) -> None:
        self.failures[(method, path)] = exc

    async def get(self, path: str) -> Any:
        self.calls.append(("GET", path, None))
        self._raise_if_scripted("GET", path)
        return self.body

    async def post(self, path: str, body: dict[str, Any] | None = None) -> Any:
        self.calls.append(("POST", path, body))
        if self.gate is not None:
            await self.gate.wait()
        self._raise_if_scripted("POST", path)
        if self.after_post is not None:
            self.body = self.after_post
        return None

    @property
    def posts(self) -> list[tuple[str, dict[str, Any] | None]]:
        return [(path, body) for method, path, body in self.calls if method == "POST"]

    @property
    def gets(self) -> list[str]:
        return [path for method, path, _ in self.calls if method == "GET"]

    def _raise_if_scripted(self, method: str, path: str) -> None:
        exc = self.failures.get((method, path))
        if exc is not None:
            raise exc


class ScriptedConfirm:
    """Confirmer that answers from a fixed reply and records each question."""

    def __init__(self, reply: bool = True) -> None:
        self.reply = reply
        self.questions: list[str] = []

    def __call__(self, message: str) -> bool:
        self.questions.append(message)
        return self.reply


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def confirm() -> ScriptedConfirm:
    return ScriptedConfirm()


@pytest.fixture()
def reconciler() -> ViewReconciler:
    return ViewReconciler(ArtifactRegistry())


@pytest.fixture()
def signature_service(transport: FakeTransport, confirm: ScriptedConfirm) -> ApprovalService:
    return ApprovalService(transport, ArtifactKind.SIGNATURE, confirm=confirm)


@pytest.fixture()
def approval_store(tmp_path: Path) -> ApprovalStore:
    """ApprovalStore backed by a temporary SQLite database."""
    return ApprovalStore(db_path=tmp_path / "approvals.sqlite")


def request_error(status_code: int = 500) -> ApprovalRequestError:
    return ApprovalRequestError(f"HTTP {status_code}", status_code=status_code)
