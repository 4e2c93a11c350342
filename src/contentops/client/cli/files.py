"""Remote file commands for the contentops CLI.

Commands:
- configure: Save backend URLs and keys
- files list: List a remote directory
- files delete: Delete a remote file
"""

from __future__ import annotations

import asyncio
import sys

import click

from contentops.client.cli.config import backend_or_exit, load_config, save_config
from contentops.client.transfers import FileInventory, format_bytes


@click.command()
@click.option("--api-url", default=None, help="Data backend URL.")
@click.option("--api-key", default=None, help="Data backend key.")
@click.option("--storage-url", default=None, help="Storage proxy URL.")
@click.option("--storage-key", default=None, help="Storage proxy key.")
@click.option(
    "--max-uploads",
    type=int,
    default=None,
    help="Concurrent uploads per queue (0 for unbounded).",
)
def configure(
    api_url: str | None,
    api_key: str | None,
    storage_url: str | None,
    storage_key: str | None,
    max_uploads: int | None,
) -> None:
    """Save backend URLs and keys to the config file."""
    config = load_config()
    updates = {
        "api_url": api_url,
        "api_key": api_key,
        "storage_url": storage_url,
        "storage_key": storage_key,
        "max_concurrent_uploads": None if max_uploads is None else str(max_uploads),
    }
    config.update({k: v for k, v in updates.items() if v is not None})
    save_config(config)
    click.echo("Configuration saved.")


@click.group()
def files() -> None:
    """Inspect and delete remote files."""


@files.command("list")
@click.argument("path")
@click.option("--all", "show_all", is_flag=True, help="Include directories.")
def list_files(path: str, show_all: bool) -> None:
    """List the files of a remote directory."""
    from contentops.client.api import StorageClient

    config = backend_or_exit()

    async def run() -> FileInventory:
        async with StorageClient(config) as storage:
            inventory = FileInventory(storage)
            await inventory.refresh(path)
            return inventory

    inventory = asyncio.run(run())
    if inventory.error:
        click.echo(f"Error: {inventory.error}", err=True)
        sys.exit(1)

    records = inventory.entries if show_all else inventory.files
    if not records:
        click.echo("No files in this folder.")
        return
    for record in records:
        name = f"{record.name}/" if record.is_directory else record.name
        modified = record.modified.strftime("%Y-%m-%d %H:%M") if record.modified else "-"
        click.echo(f"{name:<40} {format_bytes(record.size):>10}  {modified}")


@files.command("delete")
@click.argument("path")
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
def delete_file(path: str, name: str, yes: bool) -> None:
    """Delete NAME from the remote directory PATH."""
    from contentops.client.api import StorageClient

    config = backend_or_exit()
    if not yes and not click.confirm(f"Delete {path.rstrip('/')}/{name}?"):
        sys.exit(0)

    async def run() -> FileInventory:
        async with StorageClient(config) as storage:
            inventory = FileInventory(storage)
            await inventory.delete(name, path=path)
            return inventory

    inventory = asyncio.run(run())
    if inventory.error:
        click.echo(f"Error: {inventory.error}", err=True)
        sys.exit(1)
    click.echo(f"Deleted {name}")
