"""Read-only monitoring REST API for the handler simulator.

Exposes the shared server context over HTTP so an operator can watch a lot
while test sites are running. The API never mutates state; test sites only
talk to the handler over the TCP protocol.

Endpoints:
    GET /health   Liveness and uptime.
    GET /status   Pool, connections and allocations.
    GET /sites    Site temperatures that have been set.
    GET /summary  Completed test results.
"""

from __future__ import annotations

import logging
import threading

import uvicorn
from fastapi import FastAPI, Request

from odssim_core.types import site_from_ip

from odssim_handler import __version__
from odssim_handler.context import ServerContext
from odssim_handler.models import (
    AllocationModel,
    DutModel,
    HandlerStatus,
    HealthResponse,
    SiteTemperatureModel,
    SummaryEntryModel,
)
from odssim_handler.server import ConnectionRegistry

logger = logging.getLogger(__name__)


def create_app(context: ServerContext, registry: ConnectionRegistry | None = None) -> FastAPI:
    """Create the monitoring application.

    Args:
        context: Shared server context to report on.
        registry: Live-session registry of the TCP server, if one is running.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="odssim Handler API",
        description="Monitoring API for the test handler simulator",
        version=__version__,
    )
    app.state.context = context
    app.state.registry = registry

    app.add_api_route("/health", _health, methods=["GET"], response_model=HealthResponse)
    app.add_api_route("/status", _status, methods=["GET"], response_model=HandlerStatus)
    app.add_api_route(
        "/sites", _sites, methods=["GET"], response_model=list[SiteTemperatureModel]
    )
    app.add_api_route(
        "/summary", _summary, methods=["GET"], response_model=list[SummaryEntryModel]
    )
    return app


def _context(request: Request) -> ServerContext:
    return request.app.state.context


async def _health(request: Request) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok", version=__version__, uptime_seconds=_context(request).uptime
    )


async def _status(request: Request) -> HandlerStatus:
    """Pool, connection and allocation status."""
    context = _context(request)
    registry: ConnectionRegistry | None = request.app.state.registry
    allocations = context.allocations
    remaining = allocations.remaining

    return HandlerStatus(
        lot_id=context.lot_id,
        pool_size=allocations.pool_size,
        pool_remaining=remaining,
        lot_end=remaining == 0,
        active_connections=registry.ips() if registry is not None else [],
        allocations=[
            AllocationModel(
                client_ip=ip,
                site=site_from_ip(ip),
                dut=DutModel(
                    uid=dut.uid,
                    barcode=dut.barcode,
                    ecid=dut.ecid,
                    warpage=dut.warpage,
                    test_count=dut.test_count,
                ),
            )
            for ip, dut in sorted(allocations.snapshot().items())
        ],
        results_recorded=len(context.summary),
    )


async def _sites(request: Request) -> list[SiteTemperatureModel]:
    """Temperatures of sites that have been set."""
    temperatures = _context(request).temperatures.snapshot()
    return [
        SiteTemperatureModel(site=site, temperature=value)
        for site, value in sorted(temperatures.items())
    ]


async def _summary(request: Request) -> list[SummaryEntryModel]:
    """Completed test results in the order they were recorded."""
    return [
        SummaryEntryModel(site=e.site, barcode=e.barcode, bin=e.bin)
        for e in _context(request).summary.entries()
    ]


class ApiServer:
    """Runs the monitoring API with uvicorn in a background thread.

    Args:
        app: Application from :func:`create_app`.
        host: Bind address.
        port: Bind port.
    """

    def __init__(self, app: FastAPI, host: str = "0.0.0.0", port: int = 8080) -> None:
        self._server = uvicorn.Server(
            uvicorn.Config(app, host=host, port=port, log_level="warning")
        )
        self._thread: threading.Thread | None = None
        self._host = host
        self._port = port

    def start(self) -> None:
        self._thread = threading.Thread(target=self._server.run, name="odssim-api", daemon=True)
        self._thread.start()
        logger.info("Monitoring API on http://%s:%d", self._host, self._port)

    def stop(self) -> None:
        self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
