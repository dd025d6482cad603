"""CLI for verifying targets and syncing project schema metadata.

Secrets are never taken from the command line.  The target password is
read from ``{prefix}ACTO_TARGET_PASSWORD`` and a full connection string
from ``{prefix}ACTO_TARGET_CONNECTION``; when unset, they are prompted for
without echo.

Usage:
    acto-sync verify --server db1 --database Sales --username app
    acto-sync link --actor-id 7
    acto-sync link --project-id 12 --actor-id 7
    acto-sync resync 12 --actor-id 7
    acto-sync status 12 --follow
    acto-sync projects

Commands:
    verify    - Test a connection to a target database
    link      - Create/update a project from a connection string and sync it
    resync    - Re-sync an existing project
    status    - Show a project's sync status
    projects  - List active projects
"""

import argparse
import asyncio
import getpass
import logging
import os
import sys
from pathlib import Path

from pydantic import SecretStr
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from acto_sync.config.loader import load_sync_config
from acto_sync.config.models import SyncConfig
from acto_sync.connection.descriptor import DEFAULT_PORT, ServerInfo
from acto_sync.errors import ActoSyncError
from acto_sync.factory import sync_service
from acto_sync.schema.models import SyncStatus
from acto_sync.sync.service import ProjectSyncService, SyncStartedResponse

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
    )


def _load_config(args: argparse.Namespace) -> SyncConfig | None:
    config_path = Path(args.config) if getattr(args, "config", None) else None
    try:
        return load_sync_config(config_path, env_prefix=getattr(args, "env_prefix", ""))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _read_secret(env_name: str, prompt: str) -> str:
    """Read a secret from the environment, else prompt without echo."""
    value = os.environ.get(env_name)
    if value:
        return value
    return getpass.getpass(prompt)


def _print_status(status: SyncStatus | None) -> None:
    if status is None:
        console.print("[dim]Never synced.[/dim]")
        return
    if status.is_failed:
        style = "red"
    elif status.status == "Completed":
        style = "green"
    else:
        style = "cyan"
    progress = "-" if status.progress < 0 else f"{status.progress}%"
    console.print(f"[{style}]{status.status}[/{style}] [dim]({progress})[/dim]")


async def _follow(service: ProjectSyncService, project_id: int) -> int:
    """Print each status until the sync finishes; exit code from the outcome."""
    final: SyncStatus | None = None
    async for status in service.watch_sync_status(project_id):
        _print_status(status)
        final = status
    if final is None:
        _print_status(None)
        return 1
    return 1 if final.is_failed else 0


def _print_ack(ack: SyncStartedResponse) -> None:
    console.print(f"Project [bold cyan]{ack.project_id}[/bold cyan]: {ack.message}")


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_verify(args: argparse.Namespace, config: SyncConfig) -> int:
    prefix = getattr(args, "env_prefix", "")
    password = _read_secret(f"{prefix}ACTO_TARGET_PASSWORD", "Password: ")
    info = ServerInfo(
        server=args.server,
        port=args.port,
        database=args.database,
        username=args.username,
        password=SecretStr(password),
        encrypt=not args.no_encrypt,
        trust_server_certificate=args.trust_server_certificate,
        connection_timeout=args.timeout,
    )

    console.print("Testing connection...", style="dim")
    async with sync_service(config) as service:
        result = await service.verify_connection(info)

    if result.valid:
        console.print("[bold green]v[/bold green] Connection successful")
        if result.server_version:
            console.print(f"  [dim]{result.server_version.splitlines()[0]}[/dim]")
        return 0

    console.print(f"[bold red]x[/bold red] {result.message}")
    if result.error_code:
        console.print(f"  Code: [yellow]{result.error_code.value}[/yellow]")
    if result.help_link:
        console.print(f"  See: {result.help_link}")
    for detail in result.errors:
        console.print(f"  [dim]{detail}[/dim]")
    return 1


async def _async_link(args: argparse.Namespace, config: SyncConfig) -> int:
    prefix = getattr(args, "env_prefix", "")
    raw = _read_secret(f"{prefix}ACTO_TARGET_CONNECTION", "Connection string: ")

    async with sync_service(config) as service:
        try:
            ack = await service.link_project(args.project_id, raw, args.actor_id)
        except ActoSyncError as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1
        _print_ack(ack)
        return await _follow(service, ack.project_id)


async def _async_resync(args: argparse.Namespace, config: SyncConfig) -> int:
    prefix = getattr(args, "env_prefix", "")

    async with sync_service(config) as service:
        try:
            await service.get_project(args.project_id)
            raw = _read_secret(f"{prefix}ACTO_TARGET_CONNECTION", "Connection string: ")
            ack = await service.resync_project(args.project_id, raw, args.actor_id)
        except ActoSyncError as e:
            console.print(f"[red]Error: {e}[/red]")
            return 1
        _print_ack(ack)
        return await _follow(service, ack.project_id)


async def _async_status(args: argparse.Namespace, config: SyncConfig) -> int:
    async with sync_service(config) as service:
        if args.follow:
            return await _follow(service, args.project_id)
        _print_status(await service.get_sync_status(args.project_id))
        return 0


async def _async_projects(args: argparse.Namespace, config: SyncConfig) -> int:
    async with sync_service(config) as service:
        projects = await service.list_projects()

    table = Table(title="Projects", show_header=True, header_style="bold")
    table.add_column("Id", justify="right")
    table.add_column("Name")
    table.add_column("Database")
    table.add_column("Linked")

    for project in projects:
        table.add_row(
            str(project.project_id),
            project.project_name,
            project.database_name or "",
            "[green]yes[/green]" if project.is_linked else "[dim]no[/dim]",
        )

    console.print(table)
    return 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def _run(handler, args: argparse.Namespace) -> int:
    """Load config and run an async command with ``asyncio.run()``."""
    config = _load_config(args)
    if config is None:
        return 1
    return asyncio.run(handler(args, config))


def cmd_verify(args: argparse.Namespace) -> int:
    return _run(_async_verify, args)


def cmd_link(args: argparse.Namespace) -> int:
    return _run(_async_link, args)


def cmd_resync(args: argparse.Namespace) -> int:
    return _run(_async_resync, args)


def cmd_status(args: argparse.Namespace) -> int:
    return _run(_async_status, args)


def cmd_projects(args: argparse.Namespace) -> int:
    return _run(_async_projects, args)


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="acto-sync",
        description="Verify SQL Server targets and sync their schema metadata",
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to acto.toml (default: ./acto.toml)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_ACTO_TARGET_PASSWORD)"
        ),
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # verify command
    p_verify = subparsers.add_parser("verify", help="Test a connection to a target database")
    p_verify.add_argument("--server", required=True, help="Target host or host\\instance")
    p_verify.add_argument("--port", type=int, default=DEFAULT_PORT, help="Target port")
    p_verify.add_argument("--database", required=True, help="Target database name")
    p_verify.add_argument("--username", required=True, help="SQL login name")
    p_verify.add_argument("--timeout", type=int, default=30, help="Connect timeout in seconds")
    p_verify.add_argument(
        "--trust-server-certificate",
        action="store_true",
        help="Skip server certificate validation",
    )
    p_verify.add_argument("--no-encrypt", action="store_true", help="Disable encryption")
    p_verify.set_defaults(func=cmd_verify)

    # link command
    p_link = subparsers.add_parser("link", help="Link a project and sync its schema")
    p_link.add_argument("--project-id", type=int, default=None, help="Existing project id")
    p_link.add_argument("--actor-id", type=int, required=True, help="Acting user id")
    p_link.set_defaults(func=cmd_link)

    # resync command
    p_resync = subparsers.add_parser("resync", help="Re-sync an existing project")
    p_resync.add_argument("project_id", type=int, help="Project id")
    p_resync.add_argument("--actor-id", type=int, required=True, help="Acting user id")
    p_resync.set_defaults(func=cmd_resync)

    # status command
    p_status = subparsers.add_parser("status", help="Show a project's sync status")
    p_status.add_argument("project_id", type=int, help="Project id")
    p_status.add_argument(
        "--follow",
        "-f",
        action="store_true",
        help="Poll until the sync completes or fails",
    )
    p_status.set_defaults(func=cmd_status)

    # projects command
    p_projects = subparsers.add_parser("projects", help="List active projects")
    p_projects.set_defaults(func=cmd_projects)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
