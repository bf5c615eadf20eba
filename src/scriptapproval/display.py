"""Rich rendering of approval panels for the admin CLI.

Each panel is a tree: a pending branch and an approved branch, each listing
every full hash with its payload and submission details beneath it, or the
``-none-`` placeholder, plus any inline error or selection warning the last
call produced.  Hashes are never shortened so they can be passed back to
``approve``, ``deny``, ``revoke`` and ``batch``.

Dependencies: migration, models, view
Wired in: cli.py → run_panel_command
"""

from __future__ import annotations

from typing import Final

from scriptapproval.migration import MigrationView
from scriptapproval.models import Artifact
from scriptapproval.view import ErrorKind, ListView, PanelView

try:
    from rich.console import Console
    from rich.text import Text
    from rich.tree import Tree
except ModuleNotFoundError as exc:
    missing_package = exc.name or "unknown package"
    raise SystemExit(
        f"Missing display dependency package `{missing_package}`. "
        "Install the project so `rich>=13.0` is available."
    ) from exc

_ERROR_TEXT: Final[dict[ErrorKind, str]] = {
    ErrorKind.AUTHORIZATION: "Your session has expired or the API key was rejected. "
    "Reload and try again.",
    ErrorKind.GENERIC: "The request failed. See the server log for details.",
}
_LOADING_TEXT: Final[str] = "loading…"
# tree guides in front of a hash line
_HASH_INDENT: Final[int] = 12


def _details(item: Artifact) -> Text:
    line = Text(item.payload)
    if item.language:
        line.append(f"  ({item.language})", style="dim")
    if item.context.user:
        line.append(f"  by {item.context.user}", style="dim")
    if item.context.item:
        line.append(f"  for {item.context.item}", style="dim")
    if item.dangerous:
        line.append("  [dangerous]", style="bold red")
    if item.acl:
        line.append("  [ACL]", style="yellow")
    return line


def _add_list(tree: Tree, title: str, lst: ListView | None) -> None:
    branch = tree.add(Text(title, style="bold"))
    if lst is None:
        branch.add(Text(_LOADING_TEXT, style="dim"))
        return
    if lst.placeholder is not None:
        branch.add(Text(lst.placeholder, style="dim"))
        return
    for item in lst.items:
        node = branch.add(Text(item.hash, style="cyan", no_wrap=True))
        node.add(_details(item))


def render_panel(view: PanelView, *, migration: MigrationView | None = None) -> Tree:
    """Build the renderable for one kind's panel."""
    label = Text(f"{view.kind} approvals", style="bold magenta")
    if view.loading_visible:
        label.append(f"  {_LOADING_TEXT}", style="dim")
    tree = Tree(label)
    if view.error is not None:
        tree.add(Text(_ERROR_TEXT[view.error], style="bold red"))
    _add_list(tree, "Pending", view.pending)
    _add_list(tree, "Approved", view.approved)
    for container_id in sorted(view.selection_warnings):
        tree.add(Text(f"Nothing selected in {container_id}.", style="yellow"))
    if migration is not None:
        if migration.progress_visible:
            tree.add(Text("Legacy hash conversion scheduled; see the server log.", style="dim"))
        if migration.error is not None:
            tree.add(Text(_ERROR_TEXT[migration.error], style="bold red"))
    return tree


def print_panel(
    view: PanelView,
    *,
    migration: MigrationView | None = None,
    console: Console | None = None,
) -> None:
    """Print the panel, widening past the terminal so no hash is cut."""
    console = console or Console()
    hashes = [a.hash for lst in (view.pending, view.approved) if lst for a in lst.items]
    terminal_width = console.width
    console.width = max([terminal_width, *(len(h) + _HASH_INDENT for h in hashes)])
    try:
        console.print(render_panel(view, migration=migration), crop=False)
    finally:
        console.width = terminal_width
