"""``gnmiwatch status``: query a running server."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import click
import httpx

if TYPE_CHECKING:
    from gnmiwatch.cli.main import AppContext

_TIMEOUT = 5.0


async def fetch_status(base_url: str) -> dict[str, Any]:
    """Fetch devices, links and stats from a running server."""
    async with httpx.AsyncClient(base_url=base_url, timeout=_TIMEOUT) as client:
        routers = await client.get("/api/routers")
        routers.raise_for_status()
        links = await client.get("/api/links")
        links.raise_for_status()
        stats = await client.get("/api/stats")
        stats.raise_for_status()
    return {
        "routers": routers.json()["routers"],
        "links": links.json()["links"],
        "stats": stats.json(),
    }


@click.command("status")
@click.option("--url", default=None, help="Server base URL (default: from settings)")
@click.option(
    "--format",
    "local_format",
    type=click.Choice(["rich", "json"]),
    default=None,
    help="Output format (overrides the global option)",
)
@click.pass_obj
def status_cmd(app_ctx: AppContext, url: str | None, local_format: str | None) -> None:
    """Show device and link status from a running server."""
    if local_format is not None:
        app_ctx.output_format = local_format
        app_ctx._formatter = None
    settings = app_ctx.settings
    base_url = (url or f"http://{settings.host}:{settings.port}").rstrip("/")
    data = asyncio.run(fetch_status(base_url))

    formatter = app_ctx.formatter
    if formatter.format == "json":
        formatter.output(data, command="status")
        return

    formatter.rich.stats_panel(data["stats"])
    formatter.rich.device_table(data["routers"])
    formatter.rich.link_table(data["links"])
