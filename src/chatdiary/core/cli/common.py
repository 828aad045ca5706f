"""Shared setup logic for CLI commands."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import click

from chatdiary.core.exceptions import ChatDiaryError

if TYPE_CHECKING:
    from chatdiary.app import DiaryApp


def configure(ctx: click.Context, config_file: str | None, data_dir: str | None, verbose: bool) -> None:
    """Load config and set up logging; stores the config on ``ctx.obj``."""
    from chatdiary.core.config import Config
    from chatdiary.core.utils.logging import setup_logging

    config = Config(config_file=config_file, data_dir=data_dir)
    try:
        settings = config.validated()
    except ChatDiaryError as e:
        raise click.ClickException(str(e)) from e

    setup_logging(
        level="DEBUG" if verbose else settings.logging.level,
        log_file=settings.logging.file,
        log_dir=config.get("paths.log_dir"),
    )
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


def run_with_app(ctx: click.Context, fn: Callable[[DiaryApp], Awaitable[Any]], auto_sync: bool = False) -> Any:
    """Open the app, run ``fn`` with it, and close it again.

    Library errors are reported as click errors (exit code 1).
    """
    from chatdiary.app import DiaryApp

    config = ctx.obj["config"]

    async def runner() -> Any:
        app = DiaryApp.from_config(config)
        try:
            await app.start(auto_sync=auto_sync)
            return await fn(app)
        finally:
            await app.close()

    try:
        return asyncio.run(runner())
    except ChatDiaryError as e:
        raise click.ClickException(str(e)) from e
