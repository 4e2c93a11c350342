"""Upload command for the contentops CLI.

Commands:
- upload: Upload local files to a remote directory
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from contentops.client.cli.config import backend_or_exit
from contentops.client.transfers import (
    GALLERY_POLICY,
    FileInventory,
    LocalFile,
    UploadItem,
    UploadQueue,
    UploadStatus,
    format_bytes,
)
from contentops.core.config import BackendConfig


async def run_uploads(
    config: BackendConfig,
    path: str,
    paths: list[Path],
    max_concurrent: int | None,
    gallery: bool,
) -> tuple[list[UploadItem], list[str]]:
    """Upload files and wait for every item to settle."""
    from contentops.client.api import StorageClient

    async with StorageClient(config) as storage:
        queue = UploadQueue(
            storage,
            path,
            inventory=FileInventory(storage),
            max_concurrent=max_concurrent,
            policy=GALLERY_POLICY if gallery else None,
        )
        queue.enqueue(LocalFile.from_path(p) for p in paths)
        await queue.join()
        return queue.items, queue.rejections


@click.command()
@click.argument("path")
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "--concurrency",
    "-c",
    type=int,
    default=None,
    help="Concurrent uploads (default from config, 0 for unbounded).",
)
@click.option("--gallery", is_flag=True, help="Only accept up to 25 images of 5 MB.")
def upload(path: str, paths: tuple[Path, ...], concurrency: int | None, gallery: bool) -> None:
    """Upload local files to the remote directory PATH."""
    config = backend_or_exit()
    if concurrency is None:
        max_concurrent = config.max_concurrent_uploads
    else:
        max_concurrent = concurrency if concurrency > 0 else None

    items, rejections = asyncio.run(
        run_uploads(config, path, list(paths), max_concurrent, gallery)
    )

    for message in rejections:
        click.echo(f"Skipped: {message}", err=True)
    for item in items:
        if item.status == UploadStatus.SUCCESS:
            click.echo(f"✓ {item.name} ({format_bytes(item.size_bytes)})")
        else:
            click.echo(f"✗ {item.name}: {item.error_detail}")

    if any(item.status == UploadStatus.ERROR for item in items):
        sys.exit(1)
