"""Admin CLI entry point: ``script-approval``.

``serve`` runs the backend with uvicorn.  Every other subcommand drives one
kind's panel against a running server and prints the reconciled panel.

Dependencies: config, display, migration, panel, registry, service,
    transport, view
Wired in: pyproject.toml → [project.scripts]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from scriptapproval import __version__
from scriptapproval.config import Settings
from scriptapproval.display import print_panel
from scriptapproval.errors import ApprovalError
from scriptapproval.hashing import ArtifactKind
from scriptapproval.migration import LegacyMigrator
from scriptapproval.models import ApprovalState, BatchAction
from scriptapproval.panel import ApprovalPanel
from scriptapproval.policy import Confirmer, always_confirm
from scriptapproval.registry import ArtifactRegistry
from scriptapproval.service import ApprovalService
from scriptapproval.transport import ApprovalTransport, HttpTransport
from scriptapproval.view import ViewReconciler

_log = logging.getLogger(__name__)

_LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"
_PANEL_COMMANDS = (
    "show",
    "approve",
    "deny",
    "revoke",
    "clear",
    "batch",
    "migrate",
    "acl-approve",
    "clear-dangerous",
)


def prompt_confirm(message: str) -> bool:
    """Ask on the terminal; anything but an explicit yes declines."""
    print(message)
    answer = input("  Proceed? [y/N] ").strip().lower()
    return answer in ("y", "yes")


def container_id(kind: ArtifactKind, state: ApprovalState) -> str:
    return f"{kind}-{state}"


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        prog="script-approval",
        description="Manage script, signature and classpath approvals",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--url",
        default=None,
        help="Approval server base URL (default: $SCRIPT_APPROVAL_URL)",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Answer yes to every confirmation prompt",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    serve = commands.add_parser("serve", help="Run the approval server")
    serve.add_argument("--host", default=None, help="Bind host (default: $SCRIPT_APPROVAL_HOST)")
    serve.add_argument(
        "--port", type=int, default=None, help="Bind port (default: $SCRIPT_APPROVAL_PORT)"
    )

    kinds = [kind.value for kind in ArtifactKind]
    show = commands.add_parser("show", help="Print pending and approved artifacts")
    show.add_argument("kind", choices=kinds)
    for name, help_text in (
        ("approve", "Approve a pending artifact"),
        ("deny", "Deny a pending artifact"),
        ("revoke", "Revoke an approved artifact"),
    ):
        single = commands.add_parser(name, help=help_text)
        single.add_argument("kind", choices=kinds)
        single.add_argument("hash")
    clear = commands.add_parser("clear", help="Revoke every approval of one kind")
    clear.add_argument("kind", choices=kinds)
    batch = commands.add_parser("batch", help="Apply one action to several artifacts")
    batch.add_argument("kind", choices=kinds)
    batch.add_argument("action", choices=[action.value for action in BatchAction])
    batch.add_argument("hashes", nargs="*")
    batch.add_argument("--confirm-message", default=None, help="Ask this before proceeding")
    migrate = commands.add_parser("migrate", help="Rehash approvals stored with SHA-1")
    migrate.add_argument("kind", choices=kinds)
    acl = commands.add_parser(
        "acl-approve", help="Approve a signature for callers holding the needed permissions"
    )
    acl.add_argument("hash")
    acl.set_defaults(kind=ArtifactKind.SIGNATURE.value)
    dangerous = commands.add_parser(
        "clear-dangerous", help="Revoke every approved signature that grants unrestricted access"
    )
    dangerous.set_defaults(kind=ArtifactKind.SIGNATURE.value)
    return parser.parse_args(argv)


def build_panel(
    transport: ApprovalTransport,
    kind: ArtifactKind,
    *,
    confirm: Confirmer,
) -> ApprovalPanel:
    """Wire one kind's service, reconciler and migration control together."""
    service = ApprovalService(transport, kind, confirm=confirm)
    reconciler = ViewReconciler(ArtifactRegistry())
    for state in (ApprovalState.PENDING, ApprovalState.APPROVED):
        reconciler.registry.bind_container(
            container_id(kind, state), kind, state, has_warning=True
        )
    migrator = LegacyMigrator(service, confirm=confirm)
    return ApprovalPanel(service, reconciler, migrator=migrator)


async def run_panel_command(panel: ApprovalPanel, args: argparse.Namespace) -> None:
    """Load the panel, run the requested operation, and print the result."""
    await panel.load()
    command = args.command
    if command == "approve":
        await panel.approve(args.hash)
    elif command == "deny":
        await panel.deny(args.hash)
    elif command == "revoke":
        await panel.revoke(args.hash)
    elif command == "clear":
        await panel.clear_all()
    elif command == "batch":
        action = BatchAction(args.action)
        target = container_id(panel.kind, action.source_state)
        registry = panel.registry
        for artifact_hash in args.hashes:
            if not registry.contains(panel.kind, artifact_hash):
                _log.warning("%s is not a listed %s artifact; skipping", artifact_hash, panel.kind)
                continue
            state = registry.state_of(panel.kind, artifact_hash)
            if state is not action.source_state:
                _log.warning(
                    "%s is %s, not %s; skipping %s",
                    artifact_hash,
                    state,
                    action.source_state,
                    action,
                )
                continue
            registry.set_checked(target, artifact_hash)
        await panel.batch(action, target, confirm_message=args.confirm_message)
    elif command == "migrate":
        await panel.migrate()
    elif command == "acl-approve":
        await panel.acl_approve(args.hash)
    elif command == "clear-dangerous":
        await panel.clear_dangerous()
    migrator = panel.migrator
    print_panel(panel.view(), migration=migrator.view() if migrator else None)
    if panel.view().error is not None:
        raise SystemExit(1)


async def _run_client(settings: Settings, args: argparse.Namespace) -> None:
    confirm = always_confirm if args.yes else prompt_confirm
    transport = HttpTransport.connect(args.url or settings.server_url, api_key=settings.api_key)
    try:
        panel = build_panel(transport, ArtifactKind(args.kind), confirm=confirm)
        await run_panel_command(panel, args)
    finally:
        await transport.aclose()


def run_server(settings: Settings, host: str | None = None, port: int | None = None) -> None:
    """Start the FastAPI server with uvicorn."""
    import uvicorn

    uvicorn.run(
        "scriptapproval.server.app:create_app_from_env",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main(argv: list[str] | None = None) -> None:
    args = parse_cli_args(argv if argv is not None else sys.argv[1:])
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format=_LOG_FORMAT)
    if args.command == "serve":
        run_server(settings, args.host, args.port)
        return
    if args.command not in _PANEL_COMMANDS:
        raise SystemExit(f"Unknown command: {args.command}")
    try:
        asyncio.run(_run_client(settings, args))
    except ApprovalError as exc:
        raise SystemExit(str(exc)) from exc


if __name__ == "__main__":
    main()
