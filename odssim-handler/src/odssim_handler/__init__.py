"""Test handler equipment-interface simulator.

This package emulates the handler PC of a system-level test cell: test-site
controllers connect over TCP, request simulated DUTs, set site temperatures
and report bin results, exactly as they would against a real handler.

Modules:
    config: Loading of the handler PC configuration (handlerpc.json).
    pool: Generation of the simulated DUT pool.
    stores: Locked shared state (allocations, site temperatures, summary).
    protocol: Command frame parsing and response formatting.
    dispatcher: Command semantics.
    server: Threaded TCP server with IP allowlist.
    summary: Overall summary CSV persistence.
    deploy: Fire-and-forget trigger of the release deployment script.
    api: Read-only monitoring REST API.
    cli: ``odssim`` command-line entry point.

Example:
    Run a handler for local testing::

        from odssim_handler import (
            CommandDispatcher, HandlerServer, ServerContext, load_config,
        )

        config = load_config("handlerpc.json")
        context = ServerContext.from_config(config)
        server = HandlerServer(CommandDispatcher(context), config.accepted_ips, port=0)
        server.start()
        ...
        server.stop()
        context.flush_summary()
"""

from odssim_handler.config import HandlerConfig, load_config, parse_config
from odssim_handler.context import ServerContext
from odssim_handler.dispatcher import CommandDispatcher
from odssim_handler.pool import generate_dut_pool
from odssim_handler.protocol import CommandFrame, parse_frame
from odssim_handler.server import ConnectionRegistry, HandlerServer
from odssim_handler.stores import AllocationTable, SiteTemperatureStore, SummaryLog
from odssim_handler.summary import SummaryWriter

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "HandlerConfig",
    "load_config",
    "parse_config",
    # State
    "ServerContext",
    "AllocationTable",
    "SiteTemperatureStore",
    "SummaryLog",
    "SummaryWriter",
    "generate_dut_pool",
    # Protocol
    "CommandFrame",
    "parse_frame",
    "CommandDispatcher",
    # Server
    "ConnectionRegistry",
    "HandlerServer",
]
