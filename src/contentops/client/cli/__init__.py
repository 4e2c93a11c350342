"""Command-line interface for contentops.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Save backend URLs and keys
- files list / files delete: Inspect the remote inventory
- upload: Upload files concurrently with per-file status
- watch: Wait for an external job to finish on a record
"""

from __future__ import annotations

import click

from contentops.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_backend_config,
    load_config,
    save_config,
    setup_logging,
)
from contentops.client.cli.files import configure, files
from contentops.client.cli.upload import upload
from contentops.client.cli.watch import watch


@click.group()
@click.version_option(package_name="contentops")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """contentops - track external jobs and manage remote files."""
    setup_logging(verbose)


cli.add_command(configure)
cli.add_command(files)
cli.add_command(upload)
cli.add_command(watch)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "load_backend_config",
    "load_config",
    "save_config",
]
