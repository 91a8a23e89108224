"""Starlette app exposing the snapshot API as JSON."""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING, Any

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from gnmiwatch.errors import DataUnavailableError, UnknownDeviceError, UnknownLinkError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request

    from gnmiwatch.telemetry.service import TelemetryService
    from gnmiwatch.telemetry.snapshot import SnapshotAPI

logger = logging.getLogger(__name__)


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse({"error": {"code": code, "message": message}}, status_code=status)


async def _unknown_entity(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, (UnknownDeviceError, UnknownLinkError))
    return _error(404, exc.code, str(exc))


async def _data_unavailable(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, DataUnavailableError)
    return _error(503, exc.code, str(exc))


async def _internal_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
    return _error(500, "internal_error", "Internal server error")


def _api(request: Request) -> SnapshotAPI:
    api: SnapshotAPI = request.app.state.snapshot
    return api


async def list_routers(request: Request) -> JSONResponse:
    return JSONResponse({"routers": _api(request).list_devices()})


async def router_interfaces(request: Request) -> JSONResponse:
    return JSONResponse(_api(request).get_interfaces(request.path_params["device_id"]))


async def router_system(request: Request) -> JSONResponse:
    return JSONResponse(_api(request).get_system(request.path_params["device_id"]))


async def router_bgp(request: Request) -> JSONResponse:
    return JSONResponse(_api(request).get_bgp(request.path_params["device_id"]))


async def router_routes(request: Request) -> JSONResponse:
    return JSONResponse(_api(request).get_routes(request.path_params["device_id"]))


async def list_links(request: Request) -> JSONResponse:
    return JSONResponse({"links": _api(request).list_links()})


async def link_status(request: Request) -> JSONResponse:
    return JSONResponse(_api(request).get_link_status(request.path_params["link_id"]))


async def stats(request: Request) -> JSONResponse:
    return JSONResponse(_api(request).get_aggregate_stats())


async def health(request: Request) -> JSONResponse:
    return JSONResponse(_api(request).health())


ROUTES = [
    Route("/api/routers", list_routers),
    Route("/api/routers/{device_id}/interfaces", router_interfaces),
    Route("/api/routers/{device_id}/system", router_system),
    Route("/api/routers/{device_id}/bgp", router_bgp),
    Route("/api/routers/{device_id}/routes", router_routes),
    Route("/api/links", list_links),
    Route("/api/links/{link_id}", link_status),
    Route("/api/stats", stats),
    Route("/health", health),
]


class _LoggingASGI:
    """Thin ASGI wrapper that logs every HTTP request at debug level."""

    def __init__(self, app: Any) -> None:
        self._app = app

    async def __call__(self, scope: Any, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self._app(scope, receive, send)
            return

        method = scope.get("method", "?")
        path = scope.get("path", "/")
        status: int | None = None

        async def _logging_send(message: Any) -> None:
            nonlocal status
            if message.get("type") == "http.response.start":
                status = message.get("status")
            await send(message)

        await self._app(scope, receive, _logging_send)
        if status is not None:
            logger.debug("HTTP %s %s -> %d", method, path, status)


def create_app(
    snapshot: SnapshotAPI,
    *,
    service: TelemetryService | None = None,
) -> Starlette:
    """Build the ASGI app.

    When *service* is given its sessions are started and stopped with the
    app's lifespan.
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        if service is not None:
            await service.start()
        try:
            yield
        finally:
            if service is not None:
                await service.stop()

    app = Starlette(
        routes=ROUTES,
        middleware=[
            Middleware(_LoggingASGI),
            Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"]),
        ],
        exception_handlers={
            UnknownDeviceError: _unknown_entity,
            UnknownLinkError: _unknown_entity,
            DataUnavailableError: _data_unavailable,
            Exception: _internal_error,
        },
        lifespan=lifespan,
    )
    app.state.snapshot = snapshot
    return app
