"""Command-line interface for the handler simulator.

Usage:
    # Run the handler with the handler PC configuration
    odssim serve --config /opt/handler/handlerpc.json

    # Override the port, add the monitoring API, skip deployment
    odssim serve --config handlerpc.json --port 6000 --api-port 8080 --no-deploy

    # Show the last persisted overall summary
    odssim summary --config handlerpc.json
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import signal
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import TextIO

from odssim_core.errors import ConfigurationError, DeploymentError

from odssim_handler.config import HandlerConfig, load_config
from odssim_handler.context import ServerContext
from odssim_handler.deploy import trigger_deployment
from odssim_handler.dispatcher import CommandDispatcher
from odssim_handler.server import HandlerServer
from odssim_handler.summary import format_summary_table, read_summary_csv

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
EXIT_COMMAND = "exit"


def setup_logging(debug: bool = False) -> None:
    """Configure console logging."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)


def add_file_logging(log_dir: Path) -> Path:
    """Also write log records to ``ODSLog_<timestamp>.txt`` in ``log_dir``.

    Returns:
        Path of the log file.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"ODSLog_{datetime.now():%Y%m%d_%H%M%S}.txt"
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.getLogger().addHandler(handler)
    return log_file


def _watch_stdin(stream: TextIO, stop: threading.Event) -> None:
    """Set ``stop`` when the operator types ``exit``."""
    for line in stream:
        if line.strip().lower() == EXIT_COMMAND:
            stop.set()
            return


def _start_deployment(config: HandlerConfig) -> None:
    if config.deploy_script is None:
        logger.info("No deployment script configured; skipping deployment")
        return
    try:
        trigger_deployment(config)
    except DeploymentError as exc:
        logger.error("Deployment not started: %s", exc)


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the handler until ``exit`` is typed or the process is signalled."""
    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    if args.port is not None:
        config = dataclasses.replace(config, port=args.port)

    try:
        log_file = add_file_logging(config.log_directory)
    except OSError as exc:
        logger.error("Cannot write logs to %s: %s", config.log_directory, exc)
        return 1
    logger.info("Logging to %s", log_file)
    logger.info("Allowed IPs loaded: %s", ", ".join(sorted(config.accepted_ips)))
    logger.info("Port loaded from config: %d", config.port)

    context = ServerContext.from_config(config, seed=args.seed)

    if not args.no_deploy:
        _start_deployment(config)

    try:
        server = HandlerServer(
            CommandDispatcher(context), config.accepted_ips, host=config.host, port=config.port
        )
    except OSError as exc:
        logger.error("Cannot listen on %s:%d: %s", config.host, config.port, exc)
        return 1
    server.start()

    api_server = None
    if args.api_port is not None:
        from odssim_handler.api import ApiServer, create_app

        api_server = ApiServer(
            create_app(context, server.registry), host=config.host, port=args.api_port
        )
        api_server.start()

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stop.set())
    threading.Thread(target=_watch_stdin, args=(sys.stdin, stop), daemon=True).start()

    logger.info("Type '%s' to stop server.", EXIT_COMMAND)
    try:
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if api_server is not None:
            api_server.stop()
        server.stop()
        context.flush_summary()
        logger.info("[ODS Server] Stopped.")

    return 0


def cmd_summary(args: argparse.Namespace) -> int:
    """Print the last persisted overall summary."""
    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        print(f"Error: {exc}")
        return 1

    try:
        entries = read_summary_csv(config.summary_path)
    except FileNotFoundError:
        print(f"No summary found at {config.summary_path}")
        return 1
    except ValueError as exc:
        print(f"Error: {exc}")
        return 1

    for line in format_summary_table(entries):
        print(line)
    print(f"\n{len(entries)} result(s) in {config.summary_path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Test handler equipment-interface simulator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the handler server")
    serve_parser.add_argument(
        "--config", "-c", required=True,
        help="Path to handlerpc.json"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int,
        help="Listening port (default: Port from config)"
    )
    serve_parser.add_argument(
        "--api-port", type=int,
        help="Also serve the monitoring REST API on this port"
    )
    serve_parser.add_argument(
        "--seed", type=int,
        help="Seed for a reproducible DUT pool"
    )
    serve_parser.add_argument(
        "--no-deploy", action="store_true",
        help="Do not start the deployment script"
    )

    # summary command
    summary_parser = subparsers.add_parser("summary", help="Show the last overall summary")
    summary_parser.add_argument(
        "--config", "-c", required=True,
        help="Path to handlerpc.json"
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.debug)

    if args.command == "serve":
        return cmd_serve(args)
    elif args.command == "summary":
        return cmd_summary(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
