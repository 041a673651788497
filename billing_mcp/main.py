"""Command entry point: migrate the database and serve until told to stop."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Mapping
from typing import Optional

from aiohttp import web

from billing_mcp.app import App, initialize_app
from billing_mcp.config import ConfigError
from billing_mcp.mcp.server import setup
from billing_mcp.migrations import MigrationError, run_migrations, run_seeds
from billing_mcp.persistence.database import DatabaseConnectionError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".config.yaml"
SHUTDOWN_TIMEOUT = 10.0


def config_path_from_env(environ: Optional[Mapping[str, str]] = None) -> str:
    """Return ``CONFIG_PATH`` when set and not empty, else the default file."""
    env = os.environ if environ is None else environ
    return env.get("CONFIG_PATH") or DEFAULT_CONFIG_FILE


async def serve(app: App) -> None:
    """Serve HTTP and MCP routes until SIGINT or SIGTERM, then shut down."""
    setup(app.web, app.mcp_server, app.api_server)
    runner = web.AppRunner(app.web)
    await runner.setup()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            pass

    host = app.config.server.host
    address = f"{host}:{app.config.server.port}"
    try:
        logger.info("Starting MCP server... address=%s", address)
        try:
            site = web.TCPSite(runner, host or None, int(app.config.server.port))
            await site.start()
        except (OSError, ValueError) as exc:
            logger.error("MCP server failed to start: %s", exc)
        await stop.wait()
        logger.info("Received shutdown signal, shutting down...")
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        logger.warning("Shutting down MCP server...")
        try:
            await asyncio.wait_for(runner.cleanup(), SHUTDOWN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.error("Failed to shutdown MCP server gracefully")
        else:
            logger.info("MCP server shutdown complete")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="billing-mcp",
        description="Serve invoice tools; the configuration file is taken from CONFIG_PATH.",
    )
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    try:
        app = initialize_app(config_path_from_env())
    except (ConfigError, DatabaseConnectionError) as exc:
        print(f"Failed to initialize application: {exc}", file=sys.stderr)
        return 1

    try:
        logger.info("Successfully initialized application dependencies")
        try:
            run_migrations(app.config)
        except MigrationError as exc:
            logger.critical("Failed to run database migrations: %s", exc)
            return 1

        if app.config.run_seeds:
            try:
                run_seeds(app.config)
            except MigrationError as exc:
                logger.error("Failed to run seed data: %s", exc)

        logger.info("Starting the application...")
        asyncio.run(serve(app))
        logger.info("Application shutdown complete.")
    finally:
        app.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())