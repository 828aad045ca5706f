"""ChatDiary CLI: inspect the journal and manage backups."""

import click

from chatdiary import __version__


@click.group()
@click.version_option(version=__version__, package_name="chatdiary")
@click.option("--config", "config_file", type=click.Path(dir_okay=False), help="YAML or JSON config file.")
@click.option("--data-dir", type=click.Path(file_okay=False), help="Data directory (default ~/.chatdiary-data).")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging.")
@click.pass_context
def main(ctx: click.Context, config_file: str | None, data_dir: str | None, verbose: bool) -> None:
    """ChatDiary: local journal storage and backups."""
    from .common import configure

    configure(ctx, config_file, data_dir, verbose)


# Register subcommands (lazy imports keep startup fast)
from .backup_cmd import export, import_
from .status_cmd import status
from .sync_cmd import autosync, restore, sync, upload

main.add_command(status)
main.add_command(export)
main.add_command(import_)
main.add_command(sync)
main.add_command(restore)
main.add_command(upload)
main.add_command(autosync)
