"""CLI for the IT asset management backup/restore service.

Usage:
    itam-backup create --name "Before upgrade"
    itam-backup list
    itam-backup download <backup-id> --output backup.json
    itam-backup restore <backup-id> --clear-existing --skip-users --yes
    itam-backup upload backups/backup.json --skip-notifications
    itam-backup stats
    itam-backup schedule add --frequency daily --time 02:00 --retention-days 30
    itam-backup schedule list
    itam-backup schedule delete <schedule-id>
    itam-backup schedule disable <schedule-id>
    itam-backup schedule enable <schedule-id>
    itam-backup scheduler

Commands:
    create    - Snapshot all tables into the catalog
    list      - List stored backups
    download  - Write a stored backup to a JSON file
    delete    - Delete a stored backup
    restore   - Restore a stored backup
    upload    - Restore from a backup JSON file
    stats     - Show table counts and the last backup time
    schedule  - Manage backup schedules
    scheduler - Run the schedule sweep loop
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from itam_backup.backup.models import RestoreOptions, RestoreResult
from itam_backup.config.loader import load_config
from itam_backup.errors import BackupError, RestoreStepFailure, SnapshotError
from itam_backup.factory import ConfigurationError, build_service
from itam_backup.schedule.models import ScheduleSpec
from itam_backup.service import BackupService

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _service(args: argparse.Namespace) -> BackupService:
    config = load_config(args.config, env_prefix=args.env_prefix)
    return build_service(config)


def _restore_options(args: argparse.Namespace) -> RestoreOptions:
    return RestoreOptions(
        clear_existing=args.clear_existing,
        skip_users=args.skip_users,
        skip_notifications=args.skip_notifications,
    )


def _confirm_restore(source: str, options: RestoreOptions, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    console.print(f"[yellow]This will restore data from:[/yellow] {source}")
    if options.clear_existing:
        console.print("   [bold red]WARNING: all existing rows will be deleted first![/bold red]")
    if options.skip_users:
        console.print("   Users will not be restored")
    if options.skip_notifications:
        console.print("   Notifications and preferences will not be restored")
    response = input("Continue? [y/N] ")
    return response.lower() in ["y", "yes"]


def _print_restore_result(result: RestoreResult) -> None:
    table = Table(title="Restore Summary", show_header=True, header_style="bold")
    table.add_column("Table")
    table.add_column("Rows", justify="right")
    for write in result.restored:
        table.add_row(write.table, str(write.rows))
    for skipped in result.skipped:
        table.add_row(f"[dim]{skipped}[/dim]", "[dim]skipped[/dim]")
    console.print(table)
    if result.cleared:
        console.print(f"[dim]Cleared before restore:[/dim] {', '.join(result.cleared)}")


def _print_error(error: Exception) -> None:
    console.print(f"[bold red]x[/bold red] {error}")
    if isinstance(error, SnapshotError):
        for failure in error.table_failures:
            console.print(f"    - {failure.table}: {failure.error}")
    elif isinstance(error, RestoreStepFailure):
        done = ", ".join(error.prior_successes) or "none"
        console.print(f"  [yellow]Tables completed before failure:[/yellow] {done}")
        console.print("  [dim]Re-run with --clear-existing to start from a clean state.[/dim]")


async def _with_service(args: argparse.Namespace, action) -> int:
    try:
        service = _service(args)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        return 1

    try:
        return await action(service)
    except BackupError as e:
        _print_error(e)
        return 1
    except ValidationError as e:
        console.print(f"[red]Invalid input: {e}[/red]")
        return 1
    finally:
        await service.close()


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_create(args: argparse.Namespace) -> int:
    async def action(service: BackupService) -> int:
        console.print("Creating backup...", style="dim")
        record = await service.create_backup(
            name=args.name, description=args.description, deliver=args.email
        )
        console.print(
            f"[bold green]v[/bold green] Backup [bold cyan]{record.name}[/bold cyan] "
            f"stored as {record.id} ({record.metadata.backup_size} bytes)"
        )
        return 0

    return await _with_service(args, action)


async def _async_list(args: argparse.Namespace) -> int:
    async def action(service: BackupService) -> int:
        records = await service.list_backups()
        if not records:
            console.print("[yellow]No backups stored.[/yellow]")
            return 0

        table = Table(title="Backups", show_header=True, header_style="bold")
        table.add_column("ID")
        table.add_column("Name")
        table.add_column("Created")
        table.add_column("Assets", justify="right")
        table.add_column("Users", justify="right")
        table.add_column("Issues", justify="right")
        table.add_column("Size", justify="right")
        table.add_column("By")
        for r in records:
            table.add_row(
                r.id,
                r.name,
                r.timestamp,
                str(r.metadata.total_assets),
                str(r.metadata.total_users),
                str(r.metadata.total_issues),
                str(r.metadata.backup_size),
                r.created_by,
            )
        console.print(table)
        return 0

    return await _with_service(args, action)


async def _async_download(args: argparse.Namespace) -> int:
    async def action(service: BackupService) -> int:
        filename, payload = await service.download_backup(args.backup_id)
        output = Path(args.output) if args.output else Path.cwd() / filename
        output.write_bytes(payload)
        console.print(f"[bold green]v[/bold green] Saved {output}")
        return 0

    return await _with_service(args, action)


async def _async_delete(args: argparse.Namespace) -> int:
    if not args.yes:
        response = input(f"Delete backup {args.backup_id}? [y/N] ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0

    async def action(service: BackupService) -> int:
        await service.delete_backup(args.backup_id)
        console.print(f"[bold green]v[/bold green] Deleted {args.backup_id}")
        return 0

    return await _with_service(args, action)


async def _async_restore(args: argparse.Namespace) -> int:
    options = _restore_options(args)
    if not _confirm_restore(f"backup {args.backup_id}", options, args.yes):
        console.print("Cancelled.")
        return 0

    async def action(service: BackupService) -> int:
        result = await service.restore_backup(args.backup_id, options)
        _print_restore_result(result)
        return 0

    return await _with_service(args, action)


async def _async_upload(args: argparse.Namespace) -> int:
    path = Path(args.backup_path)
    if not path.exists():
        console.print(f"[red]Backup file not found: {path}[/red]")
        return 1

    options = _restore_options(args)
    if not _confirm_restore(str(path), options, args.yes):
        console.print("Cancelled.")
        return 0

    async def action(service: BackupService) -> int:
        result = await service.upload_and_restore(path, options)
        _print_restore_result(result)
        return 0

    return await _with_service(args, action)


async def _async_stats(args: argparse.Namespace) -> int:
    async def action(service: BackupService) -> int:
        stats = await service.get_system_stats()
        table = Table(title="System Statistics", show_header=False)
        table.add_column("Key", style="dim")
        table.add_column("Value", justify="right")
        table.add_row("Assets", str(stats.total_assets))
        table.add_row("Users", str(stats.total_users))
        table.add_row("Issues", str(stats.total_issues))
        table.add_row("Departments", str(stats.total_departments))
        table.add_row("Last backup", stats.last_backup or "never")
        console.print(table)
        return 0

    return await _with_service(args, action)


async def _async_schedule(args: argparse.Namespace) -> int:
    async def action(service: BackupService) -> int:
        if args.schedule_command == "add":
            schedule = await service.schedule_backup(
                ScheduleSpec(
                    enabled=not args.disabled,
                    frequency=args.frequency,
                    time_of_day=args.time,
                    retention_days=args.retention_days,
                )
            )
            console.print(
                f"[bold green]v[/bold green] Schedule {schedule.id} created, "
                f"next run {schedule.next_run_at.isoformat()}"
            )
        elif args.schedule_command == "delete":
            await service.delete_backup_schedule(args.schedule_id)
            console.print(f"[bold green]v[/bold green] Deleted schedule {args.schedule_id}")
        elif args.schedule_command in ("enable", "disable"):
            enabled = args.schedule_command == "enable"
            schedule = await service.set_backup_schedule_enabled(args.schedule_id, enabled)
            state = "enabled" if schedule.enabled else "disabled"
            console.print(f"[bold green]v[/bold green] Schedule {schedule.id} {state}")
        else:
            schedules = await service.get_backup_schedules()
            table = Table(title="Backup Schedules", show_header=True, header_style="bold")
            table.add_column("ID")
            table.add_column("Enabled")
            table.add_column("Frequency")
            table.add_column("Time")
            table.add_column("Retention", justify="right")
            table.add_column("Last run")
            table.add_column("Next run")
            for s in schedules:
                table.add_row(
                    s.id,
                    "[green]yes[/green]" if s.enabled else "[dim]no[/dim]",
                    s.frequency,
                    s.time_of_day,
                    f"{s.retention_days}d",
                    s.last_run_at.isoformat() if s.last_run_at else "-",
                    s.next_run_at.isoformat(),
                )
            console.print(table)
        return 0

    return await _with_service(args, action)


async def _async_scheduler(args: argparse.Namespace) -> int:
    async def action(service: BackupService) -> int:
        if args.once:
            runs = await service.schedules.tick()
            failed = [r for r in runs if r.status == "failed"]
            console.print(f"Ran {len(runs)} schedule(s), {len(failed)} failed")
            return 1 if failed else 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, service.schedules.stop)
            except NotImplementedError:
                # Windows event loops do not support signal handlers.
                pass
        config = load_config(args.config, env_prefix=args.env_prefix)
        await service.schedules.run_forever(poll_interval=config.scheduler.poll_interval)
        return 0

    return await _with_service(args, action)


# ============================================================================
# Sync wrappers
# ============================================================================


def cmd_create(args: argparse.Namespace) -> int:
    return asyncio.run(_async_create(args))


def cmd_list(args: argparse.Namespace) -> int:
    return asyncio.run(_async_list(args))


def cmd_download(args: argparse.Namespace) -> int:
    return asyncio.run(_async_download(args))


def cmd_delete(args: argparse.Namespace) -> int:
    return asyncio.run(_async_delete(args))


def cmd_restore(args: argparse.Namespace) -> int:
    return asyncio.run(_async_restore(args))


def cmd_upload(args: argparse.Namespace) -> int:
    return asyncio.run(_async_upload(args))


def cmd_stats(args: argparse.Namespace) -> int:
    return asyncio.run(_async_stats(args))


def cmd_schedule(args: argparse.Namespace) -> int:
    return asyncio.run(_async_schedule(args))


def cmd_scheduler(args: argparse.Namespace) -> int:
    return asyncio.run(_async_scheduler(args))


# ============================================================================
# Main entry point
# ============================================================================


def _add_restore_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--clear-existing",
        action="store_true",
        help="Delete existing rows (reverse dependency order) before restoring",
    )
    parser.add_argument(
        "--skip-users", action="store_true", help="Do not touch the users table"
    )
    parser.add_argument(
        "--skip-notifications",
        action="store_true",
        help="Do not touch notifications or notification preferences",
    )
    parser.add_argument(
        "--yes", "-y", action="store_true", help="Skip confirmation prompt"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="itam-backup",
        description="Backup and restore for the IT asset management database",
    )
    parser.add_argument(
        "--config", "-c", default=None, help="Path to itam-backup.toml"
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help="Prefix for environment variable lookup (e.g. ITAM_ reads ITAM_SUPABASE_URL)",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_create = subparsers.add_parser("create", help="Create a backup")
    p_create.add_argument("--name", "-n", default=None, help="Backup name")
    p_create.add_argument("--description", "-d", default=None, help="Backup description")
    p_create.add_argument(
        "--email", action="store_true", help="Email the backup to admins and officers"
    )
    p_create.set_defaults(func=cmd_create)

    p_list = subparsers.add_parser("list", help="List stored backups")
    p_list.set_defaults(func=cmd_list)

    p_download = subparsers.add_parser("download", help="Download a backup as JSON")
    p_download.add_argument("backup_id")
    p_download.add_argument("--output", "-o", default=None, help="Output file path")
    p_download.set_defaults(func=cmd_download)

    p_delete = subparsers.add_parser("delete", help="Delete a stored backup")
    p_delete.add_argument("backup_id")
    p_delete.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_delete.set_defaults(func=cmd_delete)

    p_restore = subparsers.add_parser("restore", help="Restore a stored backup")
    p_restore.add_argument("backup_id")
    _add_restore_flags(p_restore)
    p_restore.set_defaults(func=cmd_restore)

    p_upload = subparsers.add_parser("upload", help="Restore from a backup JSON file")
    p_upload.add_argument("backup_path")
    _add_restore_flags(p_upload)
    p_upload.set_defaults(func=cmd_upload)

    p_stats = subparsers.add_parser("stats", help="Show system statistics")
    p_stats.set_defaults(func=cmd_stats)

    p_schedule = subparsers.add_parser("schedule", help="Manage backup schedules")
    schedule_sub = p_schedule.add_subparsers(dest="schedule_command", required=True)
    p_add = schedule_sub.add_parser("add", help="Create a schedule")
    p_add.add_argument("--frequency", "-f", choices=["daily", "weekly", "monthly"], required=True)
    p_add.add_argument("--time", "-t", required=True, help="Time of day, HH:MM")
    p_add.add_argument("--retention-days", type=int, default=30)
    p_add.add_argument("--disabled", action="store_true", help="Create the schedule disabled")
    schedule_sub.add_parser("list", help="List schedules")
    p_sdel = schedule_sub.add_parser("delete", help="Delete a schedule")
    p_sdel.add_argument("schedule_id")
    p_senable = schedule_sub.add_parser("enable", help="Resume a paused schedule")
    p_senable.add_argument("schedule_id")
    p_sdisable = schedule_sub.add_parser("disable", help="Pause a schedule without deleting it")
    p_sdisable.add_argument("schedule_id")
    p_schedule.set_defaults(func=cmd_schedule)

    p_scheduler = subparsers.add_parser("scheduler", help="Run the schedule sweep loop")
    p_scheduler.add_argument(
        "--once", action="store_true", help="Run a single sweep and exit"
    )
    p_scheduler.set_defaults(func=cmd_scheduler)

    return parser


def main() -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
