"""CLI for database backup archives.

Provides commands for creating, listing, downloading, deleting and
restoring backup archives in the configured backup root.

Usage:
    PATH_PROJECT_RESOURCES=/srv/res DATABASE_URL=postgresql://... db-backup create
    db-backup list
    db-backup download database_backup_20260101_120000.zip --output ./copy.zip
    db-backup delete database_backup_20260101_120000.zip --yes
    db-backup restore ./database_backup_20260101_120000.zip --yes
    db-backup --config backup.toml restore ./upload.zip --preserve-temp

Commands:
    create    - Export every registered table into a new archive
    list      - List archives, newest first
    download  - Copy an archive out of the backup root
    delete    - Delete an archive
    restore   - Replace all table data with an archive's contents
"""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from db_backup.config.loader import load_backup_config
from db_backup.config.models import BackupConfig
from db_backup.errors import BackupError, ConfigurationError
from db_backup.logging_setup import configure_logging
from db_backup.service import BackupService

console = Console()


def _print_error(error: BackupError) -> None:
    console.print(f"[bold red]x[/bold red] {error.code}: {escape(error.message)}")
    if error.details:
        console.print(f"  [dim]{escape(str(error.details))}[/dim]")


def _build_service(config: BackupConfig) -> BackupService:
    return BackupService.from_config(config)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_create(config: BackupConfig) -> int:
    """Async implementation for create command."""
    service = _build_service(config)
    try:
        console.print("Creating backup...", style="dim")
        result = await service.create_backup(actor="cli")
    except BackupError as e:
        _print_error(e)
        return 1
    except ConfigurationError as e:
        console.print(f"[bold red]x[/bold red] {escape(str(e))}")
        return 1
    finally:
        await service.close()

    console.print(
        f"[bold green]v[/bold green] Created [bold cyan]{result.filename}[/bold cyan]"
    )
    console.print(f"  Tables exported: {result.tables_exported}")
    console.print(f"  Path: {result.path}")
    return 0


async def _async_restore(config: BackupConfig, archive: Path) -> int:
    """Async implementation for restore command."""
    service = _build_service(config)
    try:
        console.print(f"Restoring from [bold]{archive}[/bold]...", style="dim")
        result = await service.restore_from_backup(archive, actor="cli")
    except BackupError as e:
        _print_error(e)
        return 1
    except ConfigurationError as e:
        console.print(f"[bold red]x[/bold red] {escape(str(e))}")
        return 1
    finally:
        await service.close()

    table = Table(title="Restored tables")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    for name, rows in result.rows_per_table.items():
        table.add_row(name, str(rows))
    console.print(table)
    console.print(
        f"[bold green]v[/bold green] {result.tables_imported} tables, "
        f"{result.total_rows} total rows"
    )
    return 0


# ============================================================================
# Command handlers
# ============================================================================


def cmd_create(args: argparse.Namespace, config: BackupConfig) -> int:
    """Create a backup archive."""
    return asyncio.run(_async_create(config))


def cmd_list(args: argparse.Namespace, config: BackupConfig) -> int:
    """List backup archives, newest first."""
    service = _build_service(config)
    backups = service.list_backups()

    if not backups:
        console.print("[yellow]No backups found.[/yellow]")
        return 0

    table = Table(title=f"Backups in {service.backup_root}")
    table.add_column("Filename", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    for info in backups:
        table.add_row(info.filename, info.size_formatted, info.created_at)
    console.print(table)
    return 0


def cmd_download(args: argparse.Namespace, config: BackupConfig) -> int:
    """Copy an archive from the backup root to ``--output``."""
    service = _build_service(config)
    try:
        download = service.open_backup(args.filename, actor="cli")
    except BackupError as e:
        _print_error(e)
        return 1

    output = Path(args.output) if args.output else Path.cwd() / download.filename
    if output.exists() and not args.force:
        console.print(f"[red]Refusing to overwrite {output} (use --force)[/red]")
        return 1

    try:
        with open(output, "wb") as f:
            for chunk in download.iter_chunks():
                f.write(chunk)
    except OSError as e:
        console.print(f"[bold red]x[/bold red] Failed to write {output}: {escape(str(e))}")
        return 1
    console.print(
        f"[bold green]v[/bold green] Saved {download.filename} "
        f"({download.content_length} bytes) to {output}"
    )
    return 0


def cmd_delete(args: argparse.Namespace, config: BackupConfig) -> int:
    """Delete an archive from the backup root."""
    if not args.yes:
        response = console.input(f"Delete backup [bold]{args.filename}[/bold]? \\[y/N] ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0

    service = _build_service(config)
    try:
        result = service.delete_backup(args.filename, actor="cli")
    except BackupError as e:
        _print_error(e)
        return 1

    console.print(f"[bold green]v[/bold green] {result.message}: {result.filename}")
    return 0


def cmd_restore(args: argparse.Namespace, config: BackupConfig) -> int:
    """Restore every registered table from an archive."""
    if not args.yes:
        console.print(f"[yellow]This will REPLACE all table data with: {args.archive}[/yellow]")
        response = console.input("Continue? \\[y/N] ")
        if response.lower() not in ["y", "yes"]:
            console.print("Cancelled.")
            return 0

    if args.preserve_temp:
        config = config.model_copy(update={"preserve_temp_files": True})

    return asyncio.run(_async_restore(config, Path(args.archive)))


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="db-backup",
        description="Database backup archives: create, list, download, delete, restore",
    )
    parser.add_argument(
        "--config",
        help="Path to backup.toml (default: ./backup.toml when present)",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DATABASE_URL)"
        ),
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_create = subparsers.add_parser("create", help="Create a backup archive")
    p_create.set_defaults(func=cmd_create)

    p_list = subparsers.add_parser("list", help="List backup archives")
    p_list.set_defaults(func=cmd_list)

    p_download = subparsers.add_parser("download", help="Copy an archive out of the backup root")
    p_download.add_argument("filename", help="Archive filename")
    p_download.add_argument("--output", "-o", help="Destination path")
    p_download.add_argument("--force", action="store_true", help="Overwrite destination")
    p_download.set_defaults(func=cmd_download)

    p_delete = subparsers.add_parser("delete", help="Delete a backup archive")
    p_delete.add_argument("filename", help="Archive filename")
    p_delete.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_delete.set_defaults(func=cmd_delete)

    p_restore = subparsers.add_parser("restore", help="Restore the database from an archive")
    p_restore.add_argument("archive", help="Path to a .zip backup archive")
    p_restore.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")
    p_restore.add_argument(
        "--preserve-temp",
        action="store_true",
        help="Keep extracted files for inspection",
    )
    p_restore.set_defaults(func=cmd_restore)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_backup_config(
            config_path=Path(args.config) if args.config else None,
            env_prefix=args.env_prefix,
        )
    except (ConfigurationError, FileNotFoundError) as e:
        console.print(f"[bold red]x[/bold red] {escape(str(e))}")
        return 1

    configure_logging(config.logging, config.environment)
    return args.func(args, config)


if __name__ == "__main__":
    sys.exit(main())
