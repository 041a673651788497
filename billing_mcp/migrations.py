"""Versioned SQL migrations applied from a directory of files."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qsl, urlencode

from sqlalchemy import BigInteger, Boolean, Column, MetaData, Table, create_engine, delete, insert, select
from sqlalchemy.exc import SQLAlchemyError

from billing_mcp.config import Config

logger = logging.getLogger(__name__)

MIGRATIONS_PATH = "file://database/migrations/schema"
SEEDS_PATH = "file://database/migrations/seeds"
DEFAULT_TABLE = "schema_migrations"
SEEDS_TABLE = "seed_migrations"

_MIGRATION_FILE = re.compile(r"^([0-9]+)_(.*)\.(down|up)\.(.*)$")


class MigrationError(Exception):
    """Raised when migrations cannot be read or applied."""


def _scan(source: str | Path) -> dict[int, Path]:
    text = str(source).removeprefix("file://")
    directory = Path(text)
    if not directory.is_dir():
        raise MigrationError(f"open {text}: no such directory")
    ups: dict[int, Path] = {}
    for entry in sorted(directory.iterdir()):
        match = _MIGRATION_FILE.match(entry.name)
        if not entry.is_file() or match is None or match.group(3) != "up":
            continue
        version = int(match.group(1))
        if version in ups:
            raise MigrationError(f"duplicate migration file: {entry.name}")
        ups[version] = entry
    return dict(sorted(ups.items()))


def _split_url(url: str) -> tuple[str, str]:
    """Strip the runner's own ``x-`` parameters from ``url``; return it and the table."""
    base, _, query = url.partition("?")
    table = DEFAULT_TABLE
    kept = []
    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == "x-migrations-table":
            table = value or DEFAULT_TABLE
        elif not key.startswith("x-"):
            kept.append((key, value))
    return (base + "?" + urlencode(kept) if kept else base), table


class Migrator:
    """Applies the ``*.up.*`` files of a directory in version order."""

    def __init__(self, source: str | Path, database_url: str) -> None:
        self._migrations = _scan(source)
        url, self.table_name = _split_url(database_url)
        self._table = Table(
            self.table_name,
            MetaData(),
            Column("version", BigInteger, primary_key=True, autoincrement=False),
            Column("dirty", Boolean, nullable=False),
        )
        engine = None
        try:
            engine = create_engine(url)
            with engine.begin() as conn:
                self._table.create(conn, checkfirst=True)
        except (SQLAlchemyError, ImportError) as exc:
            if engine is not None:
                engine.dispose()
            raise MigrationError(str(exc)) from exc
        self._engine = engine

    def __enter__(self) -> "Migrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _read_version(self) -> tuple[Optional[int], bool]:
        try:
            with self._engine.connect() as conn:
                row = conn.execute(select(self._table.c.version, self._table.c.dirty).limit(1)).first()
        except SQLAlchemyError as exc:
            raise MigrationError(str(exc)) from exc
        return (None, False) if row is None else (int(row.version), bool(row.dirty))

    def _set_version(self, version: int, dirty: bool) -> None:
        try:
            with self._engine.begin() as conn:
                conn.execute(delete(self._table))
                conn.execute(insert(self._table).values(version=version, dirty=dirty))
        except SQLAlchemyError as exc:
            raise MigrationError(str(exc)) from exc

    def _apply(self, version: int, path: Path) -> None:
        script = path.read_text(encoding="utf-8")
        self._set_version(version, True)
        if script.strip():
            try:
                with self._engine.connect() as conn:
                    if self._engine.dialect.name == "sqlite":
                        conn.connection.driver_connection.executescript(script)
                    else:
                        conn.exec_driver_sql(script)
                    conn.commit()
            except Exception as exc:
                raise MigrationError(f"migration {path.name} failed: {exc}") from exc
        self._set_version(version, False)
        logger.info("Applied migration %s", path.name)

    def up(self) -> int:
        """Apply every pending migration; return how many were applied."""
        current, dirty = self._read_version()
        if dirty:
            raise MigrationError(f"Dirty database version {current}. Fix and force version.")
        if current is not None and current not in self._migrations:
            raise MigrationError(f"no migration found for version {current}")
        pending = [(v, p) for v, p in self._migrations.items() if current is None or v > current]
        for version, path in pending:
            self._apply(version, path)
        return len(pending)

    def version(self) -> tuple[int, bool]:
        """Return the current version and whether it was left dirty."""
        current, dirty = self._read_version()
        if current is None:
            raise MigrationError("no migration")
        return current, dirty

    def close(self) -> None:
        self._engine.dispose()


def _run(source: str | Path, url: str, kind: str, create_suffix: str) -> int:
    logger.info("Attempting to run %s from %s", kind, source)
    try:
        migrator = Migrator(source, url)
    except MigrationError as exc:
        raise MigrationError(f"failed to create migrate instance{create_suffix}: {exc}") from exc
    with migrator:
        try:
            applied = migrator.up()
        except MigrationError as exc:
            raise MigrationError(f"failed to apply {kind}: {exc}") from exc
        try:
            version, dirty = migrator.version()
        except MigrationError as exc:
            logger.error("Failed to retrieve %s version status after process: %s", kind, exc)
        else:
            state = "No new changes" if applied == 0 else "Changes applied"
            logger.info("%s for %s. version=%d dirty=%s", state, kind, version, dirty)
    return applied


def run_migrations(config: Config, migrations_path: str | Path = MIGRATIONS_PATH) -> int:
    """Apply the schema migrations; return how many were applied."""
    return _run(migrations_path, config.migrate_dsn(), "migrations", "")


def run_seeds(config: Config, seeds_path: str | Path = SEEDS_PATH) -> int:
    """Apply the seed data, tracked in its own table; return how many were applied."""
    url = config.migrate_dsn(f"x-migrations-table={SEEDS_TABLE}")
    return _run(seeds_path, url, "seeds", " for seeds")