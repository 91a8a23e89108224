"""``gnmiwatch serve``: stream telemetry and expose it over HTTP."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import click

from gnmiwatch.errors import ConfigError
from gnmiwatch.models.config import Inventory

if TYPE_CHECKING:
    from gnmiwatch.cli.main import AppContext

logger = logging.getLogger(__name__)


async def _safe_uvicorn_serve(server: Any, port: int) -> None:
    """Run uvicorn.Server.serve() with SystemExit protection.

    Uvicorn calls ``sys.exit(1)`` when it cannot bind the port; that is
    turned into an ``OSError`` here.
    """
    try:
        await server.serve()
    except SystemExit as exc:
        if exc.code == 0:
            logger.debug("Uvicorn exited cleanly (code 0) on port %d", port)
            return
        raise OSError(f"HTTP server failed to start on port {port}") from exc


def load_inventory(app_ctx: AppContext, inventory_path: str | None) -> Inventory:
    """Resolve the inventory from the option, settings or the built-in lab.

    Credentials from settings override the inventory defaults.
    """
    settings = app_ctx.settings
    inventory = Inventory.load(inventory_path or settings.inventory_file)
    return inventory.with_credentials(username=settings.username, password=settings.password)


@click.command("serve")
@click.option(
    "--inventory",
    "inventory_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Device inventory JSON (default: built-in lab topology)",
)
@click.option("--host", default=None, help="Bind address (default: 127.0.0.1)")
@click.option("--port", type=int, default=None, help="HTTP port (default: 3001)")
@click.pass_obj
def serve_cmd(
    app_ctx: AppContext,
    inventory_path: str | None,
    host: str | None,
    port: int | None,
) -> None:
    """Subscribe to every device and serve the snapshot API."""
    import uvicorn

    from gnmiwatch.server.app import create_app
    from gnmiwatch.telemetry.service import TelemetryService

    settings = app_ctx.settings
    try:
        inventory = load_inventory(app_ctx, inventory_path)
    except ConfigError as exc:
        raise click.UsageError(str(exc)) from exc

    bind_host = host or settings.host
    bind_port = port or settings.port

    service = TelemetryService(inventory, settings)
    app = create_app(service.snapshot, service=service)
    config = uvicorn.Config(
        app,
        host=bind_host,
        port=bind_port,
        log_level="debug" if app_ctx.verbose else "warning",
        log_config=None,
    )
    server = uvicorn.Server(config)

    logger.info(
        "Serving %d devices on http://%s:%d", len(inventory.devices), bind_host, bind_port
    )
    asyncio.run(_safe_uvicorn_serve(server, bind_port))
