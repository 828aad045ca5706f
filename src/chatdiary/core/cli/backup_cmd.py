"""chatdiary export / import: local backup files."""

from __future__ import annotations

import click


@click.command()
@click.option("--output-dir", type=click.Path(file_okay=False), help="Directory for the backup file.")
@click.pass_context
def export(ctx: click.Context, output_dir: str | None) -> None:
    """Write a backup file of all journal data and settings."""
    from .common import run_with_app

    path = run_with_app(ctx, lambda app: app.local_backup.export(output_dir))
    click.echo(f"Backup written to {path}")


@click.command("import")
@click.argument("backup_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def import_(ctx: click.Context, backup_file: str, yes: bool) -> None:
    """Replace all local data with the contents of BACKUP_FILE."""
    from .common import run_with_app

    if not yes:
        click.confirm("This will overwrite all current data. Continue?", abort=True)

    summary = run_with_app(ctx, lambda app: app.local_backup.import_file(backup_file))
    click.echo(f"Restored {summary.collections.get('diaries', 0)} entries and {len(summary.keys)} settings.")
