"""Watch command for the contentops CLI.

Commands:
- watch: Wait until an external job finishes on a record
"""

from __future__ import annotations

import asyncio
import sys

import click

from contentops.client.cli.config import backend_or_exit
from contentops.client.watch import (
    CompletionTracker,
    WatchCondition,
    count_growth,
    record_inserted,
)
from contentops.core.config import BackendConfig


async def run_watch(
    config: BackendConfig,
    resource_id: str,
    condition: WatchCondition,
    timeout: float | None,
    server_side_filter: bool = True,
) -> tuple[bool, str | None]:
    """Watch one record until completion, failure or timeout.

    Returns:
        (completed, error) of the session.
    """
    from contentops.client.api import RecordsClient
    from contentops.client.feed import RealtimeFeed

    feed = RealtimeFeed(config, server_side_filter=server_side_filter)
    async with RecordsClient(config) as records:
        tracker = CompletionTracker(feed, records, condition)
        try:
            await tracker.start_watching(resource_id)
            completed = await tracker.wait(timeout=timeout)
            return completed, tracker.error
        finally:
            await tracker.stop_watching()
            await feed.close()


@click.command()
@click.argument("resource_id")
@click.option("--collection", default="projectsPreview", show_default=True, help="Collection of the record.")
@click.option("--field", default="versions", show_default=True, help="List column whose growth means done.")
@click.option("--inserted", is_flag=True, help="Wait for a new record instead of growth.")
@click.option("--column", default="id", show_default=True, help="Column matched against RESOURCE_ID.")
@click.option("--timeout", type=float, default=600.0, show_default=True, help="Seconds to wait (0 for no limit).")
@click.option("--client-side-filter", is_flag=True, help="Filter rows locally instead of on the server.")
def watch(
    resource_id: str,
    collection: str,
    field: str,
    inserted: bool,
    column: str,
    timeout: float,
    client_side_filter: bool,
) -> None:
    """Wait until the external job on RESOURCE_ID finishes."""
    config = backend_or_exit()
    condition = record_inserted(collection, column) if inserted else count_growth(collection, field)

    click.echo(f"Watching {collection} {resource_id}...")
    completed, error = asyncio.run(
        run_watch(
            config,
            resource_id,
            condition,
            timeout if timeout > 0 else None,
            server_side_filter=not client_side_filter,
        )
    )

    if completed:
        click.echo("Operation complete.")
        return
    if error:
        click.echo(f"Error: {error}", err=True)
    else:
        click.echo("Timed out waiting for completion.", err=True)
    sys.exit(1)
