"""SQL engine creation and the common base for persisted models."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import DateTime, Uuid, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Mapper, mapped_column

logger = logging.getLogger(__name__)

_NIL_UUID = uuid.UUID(int=0)


class DatabaseConnectionError(Exception):
    """Raised when the database cannot be reached."""

    def __init__(self, message: str = "failed to connect to PostgreSQL database") -> None:
        super().__init__(message)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base holding the metadata of every persisted table."""


class BaseModel(Base):
    """Common columns: UUID key, timestamps and a soft-delete marker."""

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), index=True, nullable=True
    )


@event.listens_for(Mapper, "before_insert")
def _assign_id(mapper: Any, connection: Any, target: Any) -> None:
    if isinstance(target, BaseModel) and (target.id is None or target.id == _NIL_UUID):
        target.id = uuid.uuid4()


def create_sql_engine(url: str) -> Engine:
    """Create an engine for ``url`` and check that a connection can be made."""
    engine: Optional[Engine] = None
    try:
        engine = create_engine(url)
        with engine.connect():
            pass
    except (SQLAlchemyError, ImportError) as exc:
        if engine is not None:
            engine.dispose()
        logger.error("Failed to connect to PostgreSQL database: %s", exc)
        raise DatabaseConnectionError() from exc
    logger.info("PostgreSQL database connection established.")
    return engine