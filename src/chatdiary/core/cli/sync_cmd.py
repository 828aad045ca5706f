"""chatdiary sync / restore / upload / autosync: remote backups."""

from __future__ import annotations

import asyncio

import click


@click.command()
@click.option("--token", envvar="CHATDIARY_GITHUB_TOKEN", help="GitHub token with the gist scope.")
@click.option("--gist-id", help="Existing gist to update.")
@click.pass_context
def sync(ctx: click.Context, token: str | None, gist_id: str | None) -> None:
    """Upload a backup to a private GitHub Gist."""
    from .common import run_with_app

    async def do_sync(app):
        settings = await app.sync_settings()
        if token:
            settings.token = token
            await settings.save(app.flat)
        return await app.gist.sync(settings.token, gist_id)

    result = run_with_app(ctx, do_sync)
    verb = "Created" if result.created else "Updated"
    click.echo(f"{verb} gist {result.gist_id}")
    if result.html_url:
        click.echo(result.html_url)


@click.command()
@click.option("--token", envvar="CHATDIARY_GITHUB_TOKEN", help="GitHub token with the gist scope.")
@click.option("--gist-id", help="Gist to restore from (defaults to the last synced gist).")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def restore(ctx: click.Context, token: str | None, gist_id: str | None, yes: bool) -> None:
    """Replace all local data with the backup stored in a Gist."""
    from .common import run_with_app

    if not yes:
        click.confirm("This will overwrite all current data. Continue?", abort=True)

    async def do_restore(app):
        settings = await app.sync_settings()
        return await app.gist.restore(token or settings.token, gist_id or settings.gist_id)

    summary = run_with_app(ctx, do_restore)
    click.echo(f"Restored {summary.collections.get('diaries', 0)} entries and {len(summary.keys)} settings.")


@click.command()
@click.option("--token", envvar="CHATDIARY_GDRIVE_TOKEN", help="Google OAuth access token with a Drive scope.")
@click.pass_context
def upload(ctx: click.Context, token: str | None) -> None:
    """Upload a backup file to Google Drive."""
    from .common import run_with_app

    async def do_upload(app):
        settings = await app.sync_settings()
        if token:
            settings.drive_token = token
            await settings.save(app.flat)
        return await app.drive.upload(settings.drive_token)

    result = run_with_app(ctx, do_upload)
    click.echo(f"Uploaded {result.get('name')} ({result.get('id')})")


@click.command()
@click.option("--enable/--disable", default=None, help="Turn auto-sync on or off instead of running it.")
@click.pass_context
def autosync(ctx: click.Context, enable: bool | None) -> None:
    """Run the Gist auto-sync scheduler in the foreground."""
    from .common import run_with_app

    if enable is not None:

        async def toggle(app):
            settings = await app.sync_settings()
            settings.auto_enabled = enable
            await settings.save(app.flat)

        run_with_app(ctx, toggle)
        click.echo(f"Auto-sync {'enabled' if enable else 'disabled'}.")
        return

    async def run_forever(app):
        settings = await app.sync_settings()
        if not settings.auto_enabled:
            click.echo("Auto-sync is disabled. Turn it on with 'chatdiary autosync --enable'.")
            return
        app.scheduler.start()
        click.echo("Auto-sync running. Press Ctrl+C to stop.")
        await asyncio.Event().wait()

    try:
        run_with_app(ctx, run_forever)
    except KeyboardInterrupt:
        click.echo("\nStopped.")
