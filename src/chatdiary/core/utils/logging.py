"""
Logging configuration using loguru.

chatdiary modules log through ``from loguru import logger`` and never add
sinks themselves; the CLI calls setup_logging() once at startup.
"""

from __future__ import annotations

import os
import sys

from loguru import logger


def resolve_log_file(log_file: str | None, log_dir: str | None = None) -> str | None:
    """Place a relative ``log_file`` under ``log_dir``; absolute paths are kept."""
    if not log_file:
        return None
    log_file = os.path.expanduser(log_file)
    if log_dir and not os.path.isabs(log_file):
        log_file = os.path.join(os.path.expanduser(log_dir), log_file)
    return log_file


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_dir: str | None = None,
    fmt: str = "<level>[{level.name}]</level> {message}",
    rotation: str = "10 MB",
    retention: str = "7 days",
) -> str | None:
    """
    Configure loguru with console and optional file output.

    Args:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
        log_file: Log file path, relative to ``log_dir`` unless absolute. None logs to stderr only.
        log_dir: Directory for relative log files.
        fmt: Loguru format string for stderr.
        rotation: Log file rotation size.
        retention: How long to keep rotated logs.

    Returns:
        The resolved log file path, or None.
    """
    logger.remove()
    logger.add(sys.stderr, level=level, format=fmt)

    path = resolve_log_file(log_file, log_dir)
    if path:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        logger.add(
            path,
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{line} | {message}",
            rotation=rotation,
            retention=retention,
        )
    return path
