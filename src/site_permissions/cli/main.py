"""CLI entry point for site-permissions.

Invoked as::

    site-perms [OPTIONS] COMMAND [ARGS]...

or during development::

    python -m site_permissions.cli.main

Commands
--------
- validate   Validate a permission document and list errors/warnings
- check      Evaluate one permission check against a document
- version    Show version information
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from site_permissions.matrix.document_loader import DocumentLoader, PermissionDocumentError

console = Console()
err_console = Console(stderr=True)


def _read_document(document_path: str) -> dict[str, object]:
    """Parse *document_path* or exit with status 2."""
    try:
        return DocumentLoader().load(Path(document_path))
    except PermissionDocumentError as exc:
        err_console.print(f"[red]Unreadable document:[/red] {exc}")
        sys.exit(2)


# ---------------------------------------------------------------------------
# Root command group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="site-permissions")
def cli() -> None:
    """Site permissions CLI: validate permission documents and evaluate checks."""


# ---------------------------------------------------------------------------
# version
# ---------------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    from site_permissions import __version__
    from site_permissions.matrix.version_handler import VersionHandler

    console.print(
        Panel(
            f"[bold]site-permissions[/bold]  v[cyan]{__version__}[/cyan]\n"
            f"Matrix format: [cyan]{VersionHandler.current_version()}[/cyan] "
            f"(accepts {', '.join(VersionHandler.COMPATIBLE_VERSIONS)})",
            title="Version",
            border_style="blue",
        )
    )


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@cli.command(name="validate")
@click.argument("document_path", type=click.Path(exists=True, dir_okay=False))
def validate_command(document_path: str) -> None:
    """Validate a permission document (YAML or JSON)."""
    from site_permissions.matrix.version_handler import VersionHandler

    result = VersionHandler.process_document(_read_document(document_path))

    if result.success:
        console.print(
            Panel(
                f"[green]VALID[/green]  version [cyan]{result.version}[/cyan], "
                f"{len(result.matrix or {})} roles",
                title="Permission Document",
                border_style="blue",
            )
        )
    else:
        console.print(Panel("[red]INVALID[/red]", title="Permission Document", border_style="blue"))

    if result.errors or result.warnings:
        table = Table(box=box.SIMPLE)
        table.add_column("Level", style="bold")
        table.add_column("Message")
        for error in result.errors:
            table.add_row("[red]error[/red]", error)
        for warning in result.warnings:
            table.add_row("[yellow]warning[/yellow]", warning)
        console.print(table)

    sys.exit(0 if result.success else 1)


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command(name="check")
@click.argument("document_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--user",
    "-u",
    "user_json",
    required=True,
    help='User as JSON, e.g. \'{"uid": "u1", "roles": [{"siteId": "s1", "role": "admin"}]}\'.',
)
@click.option("--site", "-s", "site_id", default=None, help="Site id. Omit for a global check.")
@click.option("--resource", "-r", required=True, help="Resource, e.g. users or groups.")
@click.option("--action", "-a", required=True, help="Action, e.g. read.")
@click.option("--sub-resource", "sub_resource", default=None, help="Sub-resource for groups/admins.")
def check_command(
    document_path: str,
    user_json: str,
    site_id: str | None,
    resource: str,
    action: str,
    sub_resource: str | None,
) -> None:
    """Evaluate a single permission check against a document."""
    from site_permissions.engine.service import PermissionService
    from site_permissions.matrix.schema import User

    try:
        user = User.from_dict(json.loads(user_json))
    except (json.JSONDecodeError, AttributeError, TypeError) as exc:
        err_console.print(f"[red]Invalid user JSON:[/red] {exc}")
        sys.exit(2)

    service = PermissionService()
    load = service.load_permissions(_read_document(document_path))
    if not load.success:
        err_console.print("[red]Permission document rejected:[/red]")
        for error in load.errors:
            err_console.print(f"  - {error}")
        sys.exit(2)

    if site_id is None:
        allowed = service.can_perform_global_action(user, resource, action, sub_resource)
        scope = "global"
    else:
        allowed = service.can_perform_site_action(user, site_id, resource, action, sub_resource)
        scope = f"site {site_id}"

    target = f"{resource}:{sub_resource}" if sub_resource else resource
    status_str = "[green]ALLOWED[/green]" if allowed else "[red]DENIED[/red]"
    console.print(
        Panel(
            f"{status_str}\n{user.uid} → {action} {target} ({scope})",
            title="Permission Check Result",
            border_style="blue",
        )
    )
    sys.exit(0 if allowed else 1)


if __name__ == "__main__":
    cli()
