"""Command-line interface for planlock."""

from __future__ import annotations

import argparse
import shlex
import subprocess
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.table import Table

from planlock import __version__
from planlock.assignments.claims import (
    claim_plan,
    describe_claim_outcome,
    describe_release_outcome,
    release_plan,
)
from planlock.assignments.identity import (
    RepositoryIdentity,
    get_repository_identity,
    get_user_identity,
)
from planlock.assignments.schema import AssignmentEntry
from planlock.assignments.stale import (
    clean_stale_assignments,
    find_stale_assignments,
    get_configured_stale_timeout_days,
    is_stale_assignment,
)
from planlock.assignments.store import read_assignments
from planlock.config import Config, load_config
from planlock.errors import (
    AssignmentsFileParseError,
    AssignmentsVersionConflictError,
    PlanlockError,
    WorkspaceLockedError,
)
from planlock.logging import get_logger, setup_logging
from planlock.workspace.lock import LockType, WorkspaceLock

console = Console()
err_console = Console(stderr=True)

log = get_logger("cli")

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_CONFLICT = 2
EXIT_PARSE = 3
EXIT_LOCKED = 4


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="planlock",
        description="Claim plans across workspaces and lock workspaces for execution",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be repeated)",
    )
    parser.add_argument(
        "-C", "--cwd",
        type=Path,
        default=None,
        help="Run as if started in this directory",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    # claim
    claim_parser = subparsers.add_parser("claim", help="Claim a plan for this workspace")
    claim_parser.add_argument("uuid", help="Plan UUID")
    claim_parser.add_argument("--plan-id", type=int, help="Numeric plan id to record")
    claim_parser.add_argument("--status", help="Plan status to record")
    _add_identity_arguments(claim_parser)

    # release
    release_parser = subparsers.add_parser("release", help="Release a claimed plan")
    release_parser.add_argument("uuid", help="Plan UUID")
    _add_identity_arguments(release_parser)

    # assignments
    assignments_parser = subparsers.add_parser("assignments", help="Inspect shared assignments")
    assignments_sub = assignments_parser.add_subparsers(dest="assignments_command")

    list_parser = assignments_sub.add_parser("list", help="List all assignments")
    list_parser.add_argument(
        "--stale",
        action="store_true",
        help="Only show stale assignments",
    )
    assignments_sub.add_parser(
        "show-conflicts",
        help="Show plans claimed by more than one workspace or user",
    )
    clean_parser = assignments_sub.add_parser(
        "clean-stale",
        help="Remove assignments that have not been updated recently",
    )
    clean_parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Do not ask for confirmation",
    )

    # lock / unlock / lock-status
    lock_parser = subparsers.add_parser(
        "lock",
        help="Lock a workspace for execution",
        description=(
            "Without a command, leave a persistent lock until `planlock unlock`. "
            "With a command after `--`, run it under a transient lock that is "
            "released when it exits."
        ),
    )
    lock_parser.add_argument("--workspace", type=Path, help="Workspace to lock (default: cwd)")
    lock_parser.add_argument(
        "--command",
        dest="lock_command",
        default=None,
        help="Description of what is running (default: the command being run)",
    )
    lock_parser.add_argument("--owner", help="Lock owner shown to other users")
    lock_parser.add_argument(
        "run_args",
        nargs=argparse.REMAINDER,
        metavar="COMMAND",
        help="Command to run while holding a transient lock",
    )

    unlock_parser = subparsers.add_parser("unlock", help="Release a workspace lock")
    unlock_parser.add_argument("--workspace", type=Path, help="Workspace to unlock (default: cwd)")
    unlock_parser.add_argument(
        "--force",
        action="store_true",
        help="Release even if the lock is not owned by this process",
    )

    status_parser = subparsers.add_parser("lock-status", help="Show a workspace lock")
    status_parser.add_argument("--workspace", type=Path, help="Workspace to inspect (default: cwd)")

    return parser


def _add_identity_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--workspace", type=Path, help="Workspace path (default: cwd)")
    parser.add_argument("--user", help="User name (default: from environment)")


def _workspace_path(parsed: argparse.Namespace, cwd: Path) -> str:
    workspace = parsed.workspace if parsed.workspace is not None else cwd
    return str(Path(workspace).resolve())


def _format_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")


def _print_warnings(warnings: list[str]) -> None:
    for warning in warnings:
        err_console.print(f"[yellow]Warning:[/yellow] {escape(warning)}", highlight=False)


def _assignments_table(
    title: str,
    rows: list[tuple[str, AssignmentEntry]],
    stale_days: int,
) -> Table:
    table = Table(title=title)
    table.add_column("Plan", style="bold")
    table.add_column("UUID")
    table.add_column("Workspaces")
    table.add_column("Users")
    table.add_column("Status")
    table.add_column("Updated")

    now = datetime.now(timezone.utc)
    for uuid, entry in rows:
        updated = _format_time(entry.updated_at)
        if is_stale_assignment(entry, stale_days, now):
            updated = f"[red]{updated} (stale)[/red]"
        table.add_row(
            str(entry.plan_id) if entry.plan_id is not None else "-",
            uuid,
            "\n".join(entry.workspace_paths) or "-",
            ", ".join(entry.all_users()) or "-",
            entry.status or "-",
            updated,
        )
    return table


def _cmd_claim(
    parsed: argparse.Namespace,
    identity: RepositoryIdentity,
    config: Config,
    cwd: Path,
) -> int:
    workspace = _workspace_path(parsed, cwd)
    user = parsed.user or get_user_identity()
    result = claim_plan(
        parsed.uuid,
        workspace,
        user,
        repository_id=identity.repository_id,
        repository_remote_url=identity.remote_url,
        plan_id=parsed.plan_id,
        status=parsed.status,
        mutex=config.mutex,
    )
    _print_warnings(result.warnings)

    message = describe_claim_outcome(result, parsed.uuid, workspace, user, parsed.plan_id)
    if message is None:
        console.print(f"Plan {parsed.uuid} is already claimed in {workspace}", highlight=False)
    else:
        console.print(f"[green]{escape(message)}[/green]", highlight=False)
    return EXIT_OK


def _cmd_release(
    parsed: argparse.Namespace,
    identity: RepositoryIdentity,
    config: Config,
    cwd: Path,
) -> int:
    workspace = _workspace_path(parsed, cwd)
    user = parsed.user or get_user_identity()
    result = release_plan(
        parsed.uuid,
        workspace,
        user,
        repository_id=identity.repository_id,
        repository_remote_url=identity.remote_url,
        mutex=config.mutex,
    )
    _print_warnings(result.warnings)

    message = describe_release_outcome(result, parsed.uuid, workspace, user)
    style = "green" if result.persisted else "yellow"
    console.print(f"[{style}]{escape(message)}[/{style}]", highlight=False)
    return EXIT_OK


def _cmd_assignments(
    parsed: argparse.Namespace,
    identity: RepositoryIdentity,
    config: Config,
) -> int:
    document = read_assignments(identity.repository_id, identity.remote_url)
    stale_days = get_configured_stale_timeout_days(config)
    subcommand = parsed.assignments_command or "list"

    if subcommand == "list":
        if getattr(parsed, "stale", False):
            rows = find_stale_assignments(document, stale_days)
        else:
            rows = sorted(document.assignments.items(), key=lambda item: item[1].plan_id or 0)
        if not rows:
            console.print("No assignments found.")
            return EXIT_OK
        console.print(_assignments_table(f"Assignments for {identity.repository_id}", rows, stale_days))
        return EXIT_OK

    if subcommand == "show-conflicts":
        rows = [
            (uuid, entry)
            for uuid, entry in document.assignments.items()
            if len(entry.workspace_paths) > 1 or len(entry.all_users()) > 1
        ]
        if not rows:
            console.print("No conflicting assignments found.")
            return EXIT_OK
        console.print(_assignments_table("Plans claimed more than once", rows, stale_days))
        return EXIT_OK

    # clean-stale
    stale = find_stale_assignments(document, stale_days)
    if not stale:
        console.print(f"No stale assignments found (threshold: {stale_days} days).")
        return EXIT_OK

    console.print(_assignments_table("Stale assignments", stale, stale_days))
    if not parsed.yes and not Confirm.ask(
        f"Remove {len(stale)} stale assignment(s)?", console=console, default=False
    ):
        console.print("Aborted.")
        return EXIT_OK

    try:
        removed = clean_stale_assignments(
            document, [uuid for uuid, _ in stale], mutex=config.mutex
        )
    except AssignmentsVersionConflictError:
        err_console.print(
            "[yellow]Assignments changed while cleaning. "
            "Re-run the command to retry the cleanup.[/yellow]"
        )
        return EXIT_CONFLICT

    console.print(f"[green]Removed {len(removed)} stale assignment(s).[/green]")
    return EXIT_OK


def _workspace_lock(config: Config) -> WorkspaceLock:
    return WorkspaceLock(
        stale_timeout=timedelta(minutes=config.workspace_lock.stale_timeout_minutes),
    )


def _cmd_lock(parsed: argparse.Namespace, config: Config, cwd: Path) -> int:
    workspace = _workspace_path(parsed, cwd)
    run_args = list(parsed.run_args)
    if run_args and run_args[0] == "--":
        run_args = run_args[1:]
    owner = parsed.owner or get_user_identity()

    if not run_args:
        info = _workspace_lock(config).acquire_lock(
            workspace,
            parsed.lock_command or "planlock lock",
            LockType.PERSISTENT,
            owner=owner,
        )
        console.print(
            f"[green]Locked workspace {workspace} ({info.type.value} lock)[/green]",
            highlight=False,
        )
        return EXIT_OK

    # The lock lives only as long as the child command
    workspace_lock = _workspace_lock(config)
    workspace_lock.acquire_lock(
        workspace,
        parsed.lock_command or shlex.join(run_args),
        LockType.TRANSIENT,
        owner=owner,
    )
    try:
        log.info("Running %s under a transient lock on %s", run_args, workspace)
        try:
            completed = subprocess.run(run_args, cwd=workspace, check=False)
        except FileNotFoundError:
            err_console.print(
                f"[red]Command not found: {escape(run_args[0])}[/red]", highlight=False
            )
            return EXIT_USAGE
        return completed.returncode
    finally:
        workspace_lock.release_lock(workspace)


def _cmd_unlock(parsed: argparse.Namespace, config: Config, cwd: Path) -> int:
    workspace = _workspace_path(parsed, cwd)
    workspace_lock = _workspace_lock(config)
    info = workspace_lock.get_lock_info_including_stale(workspace)
    if info is None:
        console.print(f"Workspace {workspace} is not locked", highlight=False)
        return EXIT_OK

    # Persistent locks are not tied to any live process
    force = parsed.force or info.type is LockType.PERSISTENT
    if not workspace_lock.release_lock(workspace, force=force):
        err_console.print(
            f"[red]Workspace {workspace} is locked by pid {info.pid} on {info.hostname}; "
            "use --force to release it[/red]",
            highlight=False,
        )
        return EXIT_LOCKED

    console.print(f"[green]Unlocked workspace {workspace}[/green]", highlight=False)
    return EXIT_OK


def _cmd_lock_status(parsed: argparse.Namespace, config: Config, cwd: Path) -> int:
    workspace = _workspace_path(parsed, cwd)
    workspace_lock = _workspace_lock(config)
    info = workspace_lock.get_lock_info_including_stale(workspace)
    if info is None:
        console.print(f"Workspace {workspace} is not locked", highlight=False)
        return EXIT_OK

    table = Table(title=f"Lock on {workspace}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Type", info.type.value)
    table.add_row("Command", info.command)
    table.add_row("PID", str(info.pid) if info.pid is not None else "-")
    table.add_row("Host", info.hostname)
    table.add_row("Started", _format_time(info.started_at))
    table.add_row("Stale", "yes" if workspace_lock.is_lock_stale(info) else "no")
    console.print(table)
    return EXIT_OK


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return EXIT_USAGE

    cwd = (parsed.cwd or Path.cwd()).resolve()
    identity = get_repository_identity(cwd)
    config = load_config(project_root=str(identity.git_root))
    if parsed.verbose:
        config.logging.verbose = parsed.verbose
    setup_logging(config.logging)
    log.debug("Repository %s at %s", identity.repository_id, identity.git_root)

    try:
        if parsed.command == "claim":
            return _cmd_claim(parsed, identity, config, cwd)
        elif parsed.command == "release":
            return _cmd_release(parsed, identity, config, cwd)
        elif parsed.command == "assignments":
            return _cmd_assignments(parsed, identity, config)
        elif parsed.command == "lock":
            return _cmd_lock(parsed, config, cwd)
        elif parsed.command == "unlock":
            return _cmd_unlock(parsed, config, cwd)
        elif parsed.command == "lock-status":
            return _cmd_lock_status(parsed, config, cwd)
        else:
            parser.print_help()
            return EXIT_USAGE
    except AssignmentsVersionConflictError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        err_console.print("Another process updated the assignments; re-run the command.")
        return EXIT_CONFLICT
    except AssignmentsFileParseError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return EXIT_PARSE
    except WorkspaceLockedError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return EXIT_LOCKED
    except PlanlockError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]", highlight=False)
        return EXIT_USAGE
