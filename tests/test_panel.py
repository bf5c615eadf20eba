"""Tests for the panel controller and declarative controls."""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeTransport, ScriptedConfirm, request_error, snapshot_body
from scriptapproval.errors import AuthorizationLapseError
from scriptapproval.hashing import ArtifactKind
from scriptapproval.migration import LegacyMigrator
from scriptapproval.models import ApprovalState, BatchAction
from scriptapproval.panel import ApprovalPanel, Control, resolve_action_url
from scriptapproval.policy import Operation
from scriptapproval.service import ApprovalService
from scriptapproval.view import ErrorKind, PanelPhase, ViewReconciler

SIG = ArtifactKind.SIGNATURE


def _panel(
    transport: FakeTransport,
    reconciler: ViewReconciler,
    confirm: ScriptedConfirm,
    kind: ArtifactKind = SIG,
) -> ApprovalPanel:
    service = ApprovalService(transport, kind, confirm=confirm)
    reconciler.registry.bind_container(f"{kind}-pending", kind, ApprovalState.PENDING)
    reconciler.registry.bind_container(
        f"{kind}-approved", kind, ApprovalState.APPROVED, has_warning=True
    )
    return ApprovalPanel(
        service, reconciler, migrator=LegacyMigrator(service, confirm=confirm)
    )


class TestResolveActionUrl:
    def test_single_item(self) -> None:
        resolved = resolve_action_url("/api/classpath/revoke")
        assert resolved.kind is ArtifactKind.CLASSPATH
        assert resolved.operation is Operation.REVOKE
        assert resolved.batch_action is None

    def test_batch(self) -> None:
        resolved = resolve_action_url("/api/script/batch/deny")
        assert resolved.operation is Operation.BATCH
        assert resolved.batch_action is BatchAction.DENY

    @pytest.mark.parametrize(
        "url",
        [
            "/other/script/approve",
            "/api/plugin/approve",
            "/api/script/explode",
            "/api/script/batch",
            "/api/script/batch/clear",
            "/api/script/approve/extra",
        ],
    )
    def test_rejects_unknown_urls(self, url: str) -> None:
        with pytest.raises(ValueError):
            resolve_action_url(url)


def test_control_attributes_round_trip() -> None:
    attrs = {
        "data-action-url": "/api/signature/batch/revoke",
        "data-container-id": "signature-approved",
        "data-action-confirm-message": "Revoke selected?",
    }
    control = Control.from_attributes(attrs)
    assert control.hash is None
    assert control.container_id == "signature-approved"
    assert control.to_attributes() == attrs


def test_control_without_action_url_is_rejected() -> None:
    with pytest.raises(ValueError):
        Control.from_attributes({"data-hash": "h1"})


class TestPanelCalls:
    @pytest.mark.asyncio()
    async def test_load_renders_server_snapshot(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "a()")], [])
        panel = _panel(transport, reconciler, confirm)

        state = await panel.load()

        assert state is not None and state.phase is PanelPhase.LOADED
        view = panel.view()
        assert view.pending is not None and view.approved is not None
        assert [a.hash for a in view.pending.items] == ["h1"]
        assert view.approved.placeholder == "-none-"
        assert not panel.busy

    @pytest.mark.asyncio()
    async def test_approve_moves_item_between_lists(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "a()")], [])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()
        transport.after_post = snapshot_body([], [("h1", "a()")])

        await panel.approve("h1")

        view = panel.view()
        assert view.pending is not None and view.approved is not None
        assert view.pending.placeholder == "-none-"
        assert [a.hash for a in view.approved.items] == ["h1"]
        assert reconciler.registry.state_of(SIG, "h1") is ApprovalState.APPROVED

    @pytest.mark.asyncio()
    async def test_activation_while_busy_is_ignored(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "a"), ("h2", "b")], [])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()
        transport.gate = asyncio.Event()

        first = asyncio.create_task(panel.approve("h1"))
        await asyncio.sleep(0)
        assert panel.busy
        assert panel.view().loading_visible
        assert await panel.deny("h2") is None
        transport.gate.set()
        await first

        assert transport.posts == [("/api/signature/approve", {"hash": "h1"})]
        assert not panel.busy

    @pytest.mark.asyncio()
    async def test_authorization_lapse_keeps_lists(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "a")], [])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()
        transport.fail("POST", "/api/signature/approve", AuthorizationLapseError())

        state = await panel.approve("h1")

        assert state is not None and state.phase is PanelPhase.FAILED
        view = panel.view()
        assert view.error is ErrorKind.AUTHORIZATION
        assert not view.loading_visible
        assert view.pending is not None
        assert [a.hash for a in view.pending.items] == ["h1"]
        assert transport.gets == ["/api/signature"]
        assert not panel.busy

    @pytest.mark.asyncio()
    async def test_failed_load_shows_generic_error(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.fail("GET", "/api/signature", request_error(502))
        panel = _panel(transport, reconciler, confirm)
        await panel.load()
        view = panel.view()
        assert view.error is ErrorKind.GENERIC
        assert view.pending is None

    @pytest.mark.asyncio()
    async def test_declined_clear_restores_loaded_state(
        self, transport: FakeTransport, reconciler: ViewReconciler
    ) -> None:
        transport.body = snapshot_body([], [("h1", "a")])
        panel = _panel(transport, reconciler, ScriptedConfirm(reply=False))
        await panel.load()

        await panel.clear_all()

        assert reconciler.state(SIG).phase is PanelPhase.LOADED
        assert not panel.view().loading_visible
        assert transport.posts == []


class TestPanelBatch:
    @pytest.mark.asyncio()
    async def test_batch_sends_checked_hashes(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "a"), ("h2", "b"), ("h3", "c")], [])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()
        panel.registry.set_checked("signature-pending", "h3")
        panel.registry.set_checked("signature-pending", "h1")
        transport.after_post = snapshot_body([("h2", "b")], [("h1", "a"), ("h3", "c")])

        await panel.batch(BatchAction.APPROVE, "signature-pending")

        assert transport.posts == [
            ("/api/signature/batch/approve", {"hashes": ["h1", "h3"]})
        ]
        assert panel.registry.selection("signature-pending").is_empty
        assert reconciler.registry.state_of(SIG, "h3") is ApprovalState.APPROVED

    @pytest.mark.asyncio()
    async def test_empty_selection_with_warning_element(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([], [("h1", "a")])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()

        state = await panel.batch(BatchAction.REVOKE, "signature-approved")

        assert state is not None
        assert state.selection_warnings == {"signature-approved"}
        assert panel.view().selection_warnings == {"signature-approved"}
        assert transport.posts == []

    @pytest.mark.asyncio()
    async def test_empty_selection_without_warning_element(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "a")], [])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()

        assert await panel.batch(BatchAction.DENY, "signature-pending") is None
        assert transport.posts == []

    @pytest.mark.asyncio()
    async def test_container_must_match_action(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        panel = _panel(transport, reconciler, confirm)
        with pytest.raises(ValueError):
            await panel.batch(BatchAction.REVOKE, "signature-pending")

    @pytest.mark.asyncio()
    async def test_next_call_clears_warning(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([], [("h1", "a")])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()
        await panel.batch(BatchAction.REVOKE, "signature-approved")
        await panel.load()
        assert panel.view().selection_warnings == frozenset()


class TestActivate:
    @pytest.mark.asyncio()
    async def test_single_item_control(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "a")], [])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()
        control = panel.control(Operation.DENY, artifact_hash="h1")
        assert control.action_url == "/api/signature/deny"

        await panel.activate(Control.from_attributes(control.to_attributes()))

        assert transport.posts == [("/api/signature/deny", {"hash": "h1"})]

    @pytest.mark.asyncio()
    async def test_batch_control_carries_confirm_message(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([], [("h1", "a")])
        panel = _panel(transport, reconciler, confirm)
        await panel.load()
        panel.registry.set_checked("signature-approved", "h1")
        control = panel.control(
            Operation.BATCH,
            batch_action=BatchAction.REVOKE,
            container_id="signature-approved",
            confirm_message="Revoke selected?",
        )

        await panel.activate(control)

        assert confirm.questions == ["Revoke selected?"]
        assert transport.posts == [("/api/signature/batch/revoke", {"hashes": ["h1"]})]

    @pytest.mark.asyncio()
    async def test_migrate_control(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        panel = _panel(transport, reconciler, confirm)
        assert await panel.activate(panel.control(Operation.MIGRATE)) is True
        assert panel.migrator is not None
        assert not panel.migrator.view().trigger_visible
        assert transport.gets == []

    @pytest.mark.asyncio()
    async def test_acl_approve_control(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "a")], [])
        transport.after_post = [[], [{"hash": "h1", "payload": "a", "acl": True}]]
        panel = _panel(transport, reconciler, confirm)
        await panel.load()

        await panel.activate(panel.control(Operation.ACL_APPROVE, artifact_hash="h1"))

        assert transport.posts == [("/api/signature/aclApprove", {"hash": "h1"})]
        view = panel.view()
        assert view.approved is not None
        assert view.approved.items[0].acl

    @pytest.mark.asyncio()
    async def test_clear_dangerous_control(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        panel = _panel(transport, reconciler, confirm)
        await panel.activate(panel.control(Operation.CLEAR_DANGEROUS))
        assert transport.posts == [("/api/signature/clearDangerous", None)]

    @pytest.mark.asyncio()
    async def test_signature_only_control_on_script_panel_changes_nothing(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        panel = _panel(transport, reconciler, confirm, kind=ArtifactKind.SCRIPT)
        await panel.load()
        before = reconciler.state(ArtifactKind.SCRIPT)

        with pytest.raises(ValueError):
            await panel.activate(panel.control(Operation.CLEAR_DANGEROUS))

        assert reconciler.state(ArtifactKind.SCRIPT) == before
        assert not panel.busy
        assert transport.posts == []

    @pytest.mark.asyncio()
    async def test_control_for_other_kind_is_rejected(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        panel = _panel(transport, reconciler, confirm)
        with pytest.raises(ValueError):
            await panel.activate(Control(action_url="/api/script/approve", hash="h1"))

    @pytest.mark.asyncio()
    async def test_single_item_control_needs_hash(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        panel = _panel(transport, reconciler, confirm)
        with pytest.raises(ValueError):
            await panel.activate(Control(action_url="/api/signature/approve"))


class TestScenarios:
    @pytest.mark.asyncio()
    async def test_approve_selected_with_confirmation(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        transport.body = snapshot_body([("h1", "echo 1")], [])
        panel = _panel(transport, reconciler, confirm, kind=ArtifactKind.SCRIPT)
        await panel.load()
        panel.registry.set_checked("script-pending", "h1")
        transport.after_post = snapshot_body([], [("h1", "echo 1")])

        await panel.batch(BatchAction.APPROVE, "script-pending", confirm_message="Approve?")

        assert confirm.questions == ["Approve?"]
        assert transport.posts == [("/api/script/batch/approve", {"hashes": ["h1"]})]
        view = panel.view()
        assert view.pending is not None and view.approved is not None
        assert view.pending.placeholder == "-none-"
        assert [(a.hash, a.payload) for a in view.approved.items] == [("h1", "echo 1")]

    @pytest.mark.asyncio()
    async def test_declined_clear_leaves_registry_unchanged(
        self, transport: FakeTransport, reconciler: ViewReconciler
    ) -> None:
        transport.body = snapshot_body([("h1", "a")], [("h2", "b")])
        panel = _panel(transport, reconciler, ScriptedConfirm(reply=False))
        await panel.load()
        calls_before = list(transport.calls)
        before = reconciler.registry.bucket(SIG, ApprovalState.APPROVED)

        await panel.clear_all()

        assert transport.calls == calls_before
        assert reconciler.registry.bucket(SIG, ApprovalState.APPROVED) is before

    @pytest.mark.asyncio()
    async def test_failed_classpath_revoke_keeps_entry(
        self, transport: FakeTransport, reconciler: ViewReconciler, confirm: ScriptedConfirm
    ) -> None:
        kind = ArtifactKind.CLASSPATH
        transport.body = snapshot_body([], [("h1", "/opt/lib/a.jar")])
        panel = _panel(transport, reconciler, confirm, kind=kind)
        await panel.load()
        transport.fail("POST", "/api/classpath/revoke", request_error(500))

        await panel.revoke("h1")

        assert len(confirm.questions) == 1
        view = panel.view()
        assert view.error is ErrorKind.GENERIC
        assert not view.loading_visible
        assert reconciler.registry.state_of(kind, "h1") is ApprovalState.APPROVED
        assert view.approved is not None
        assert [a.hash for a in view.approved.items] == ["h1"]
