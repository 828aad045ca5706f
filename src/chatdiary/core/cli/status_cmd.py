"""chatdiary status: summary of local data and sync settings."""

from __future__ import annotations

import click


@click.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show journal counts and backup settings."""
    from rich.console import Console
    from rich.table import Table

    from .common import run_with_app

    async def collect(app):
        settings = await app.sync_settings()
        repo = app.repository
        return {
            "Entries": str(len(repo.entries)),
            "Categories": ", ".join(c.name for c in repo.categories) or "-",
            "Startup": str(repo.migration_result.outcome),
            "GitHub token": "set" if settings.token else "not set",
            "Gist ID": settings.gist_id or "-",
            "Auto-sync": "on" if settings.auto_enabled else "off",
            "Last sync": settings.last_sync or "never",
            "Drive token": "set" if settings.drive_token else "not set",
        }

    rows = run_with_app(ctx, collect)

    table = Table(title="ChatDiary", show_header=False)
    table.add_column("Item", style="bold")
    table.add_column("Value")
    for name, value in rows.items():
        table.add_row(name, value)
    Console().print(table)
