"""Application configuration loaded from a YAML file."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or parsed."""


@dataclass
class ServerConfig:
    port: str = ""
    host: str = ""


@dataclass
class DatabaseConfig:
    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""
    dbname: str = ""
    sslmode: str = ""
    max_retries: int = 0


@dataclass
class Config:
    """Complete application configuration."""

    server: ServerConfig = field(default_factory=ServerConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    log_level: str = ""
    version: str = ""
    run_seeds: bool = False

    def dsn(self) -> str:
        """Key/value connection string for the database driver."""
        db = self.database
        return (
            f"host={db.host} port={db.port} user={db.user} "
            f"password={db.password} dbname={db.dbname} sslmode={db.sslmode}"
        )

    def migrate_dsn(self, *args: str) -> str:
        """URL connection string; only the first extra parameter is appended."""
        db = self.database
        url = (
            f"postgresql://{db.user}:{db.password}@{db.host}:{db.port}"
            f"/{db.dbname}?sslmode={db.sslmode}"
        )
        return url + "&" + args[0] if args else url


def _get(data: dict[str, Any], key: str, kind: type) -> Any:
    value = data.get(key)
    if value is None:
        return kind()
    if kind is str and isinstance(value, (str, int, float)):
        return str(value).lower() if isinstance(value, bool) else str(value)
    if kind is int and isinstance(value, int) and not isinstance(value, bool):
        return value
    if kind in (bool, dict) and isinstance(value, kind):
        return value
    raise ConfigError(f"failed to unmarshal config YAML: '{key}' has the wrong type")


def load_config(config_path: str | Path) -> Config:
    """Read the YAML file at ``config_path`` and fill in defaults."""
    try:
        data = yaml.safe_load(Path(config_path).read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigError(f"failed to read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to unmarshal config YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("failed to unmarshal config YAML: document must be a mapping")

    server = _get(data, "server", dict)
    database = _get(data, "database", dict)
    return Config(
        server=ServerConfig(port=_get(server, "port", str) or "8080", host=_get(server, "host", str)),
        database=DatabaseConfig(
            host=_get(database, "host", str),
            port=_get(database, "port", int),
            user=_get(database, "user", str),
            password=_get(database, "password", str),
            dbname=_get(database, "dbname", str),
            sslmode=_get(database, "sslmode", str) or "disable",
            max_retries=_get(database, "maxRetries", int) or 3,
        ),
        log_level=_get(data, "logLevel", str),
        version=_get(data, "version", str),
        run_seeds=_get(data, "runSeeds", bool),
    )