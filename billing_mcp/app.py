"""Assembly of the application's components from its configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from aiohttp import web
from sqlalchemy.engine import URL, Engine

from billing_mcp.config import Config, ConfigError, load_config
from billing_mcp.invoices.ports import InvoicesController
from billing_mcp.invoices.repository import InvoiceRepository
from billing_mcp.invoices.service import InvoiceService
from billing_mcp.invoices.sql import InvoiceSqlClient, InvoiceSqlConverter
from billing_mcp.mcp.server import ApiServer, HealthController, McpServer
from billing_mcp.persistence.database import create_sql_engine

logger = logging.getLogger(__name__)

SERVER_NAME = "billing-mcp"
TRACE = 5
_DISABLED = logging.CRITICAL + 10

_LOG_LEVELS = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "disabled": _DISABLED,
    "": logging.NOTSET,
}

_NUMERIC_LEVELS = {
    "-1": "trace",
    "0": "debug",
    "1": "info",
    "2": "warn",
    "3": "error",
    "4": "fatal",
    "5": "panic",
    "6": "",
    "7": "disabled",
}


def _parse_log_level(name: str) -> int:
    """Map a configured level name (or its number) to a logging level."""
    key = name.lower()
    key = _NUMERIC_LEVELS.get(key, key)
    try:
        return _LOG_LEVELS[key]
    except KeyError:
        raise ConfigError(
            f"failed to parse log level: Unknown Level String: '{name}', defaulting to NoLevel"
        ) from None


def _database_url(config: Config) -> URL:
    db = config.database
    return URL.create(
        "postgresql",
        username=db.user or None,
        password=db.password or None,
        host=db.host or None,
        port=db.port or None,
        database=db.dbname or None,
        query={"sslmode": db.sslmode} if db.sslmode else {},
    )


@dataclass
class App:
    """Every component the running application needs."""

    config: Config
    engine: Engine
    web: web.Application
    mcp_server: McpServer
    api_server: ApiServer
    health_controller: HealthController
    invoices_controller: InvoicesController

    def close(self) -> None:
        """Release the database connections."""
        self.engine.dispose()
        logger.info("Database connection closed successfully.")


def _assemble(config: Config, engine: Engine) -> App:
    client = InvoiceSqlClient(engine, config.database.max_retries)
    repository = InvoiceRepository(client, InvoiceSqlConverter())
    service = InvoiceService(repository)
    invoices_controller = InvoicesController(service)
    health_controller = HealthController()
    return App(
        config=config,
        engine=engine,
        web=web.Application(),
        mcp_server=McpServer(SERVER_NAME, config.version),
        api_server=ApiServer(health_controller, invoices_controller),
        health_controller=health_controller,
        invoices_controller=invoices_controller,
    )


def initialize_app(config_file: str | Path) -> App:
    """Load the configuration, set the log level, connect and wire everything."""
    config = load_config(config_file)
    logging.getLogger("billing_mcp").setLevel(_parse_log_level(config.log_level))
    engine = create_sql_engine(_database_url(config))
    return _assemble(config, engine)