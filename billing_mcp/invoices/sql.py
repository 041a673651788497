"""SQL storage of invoices: table mapping, conversion and queries."""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import DateTime, Float, String, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Mapped, Session, mapped_column

from billing_mcp.invoices.model import (
    Criteria,
    Invoice,
    InvoiceNotFoundError,
    status_from_string,
)
from billing_mcp.persistence.database import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InvoiceRecord(BaseModel):
    """Row of the ``invoices`` table."""

    __tablename__ = "invoices"

    account_id: Mapped[str] = mapped_column(String, index=True, default="")
    issue_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    tax_amount: Mapped[float] = mapped_column(Float, default=0.0)
    total_amount_without_tax: Mapped[float] = mapped_column(Float, default=0.0)
    total_amount_with_tax: Mapped[float] = mapped_column(Float, default=0.0)
    status: Mapped[str] = mapped_column(String, default="")
    invoice_number: Mapped[str] = mapped_column(String, index=True, unique=True, default="")


class InvoiceSqlConverter:
    """Converts between stored rows and domain objects."""

    def invoice_to_domain(self, record: InvoiceRecord) -> Invoice:
        status = status_from_string(record.status or "")
        return Invoice(
            id=record.id if record.id is not None else uuid.UUID(int=0),
            account_id=record.account_id or "",
            issue_date=record.issue_date,
            due_date=record.due_date,
            tax_amount=record.tax_amount or 0.0,
            total_amount_without_tax=record.total_amount_without_tax or 0.0,
            total_amount_with_tax=record.total_amount_with_tax or 0.0,
            status=status,
            invoice_number=record.invoice_number or "",
        )

    def invoices_to_domain(self, records: list[InvoiceRecord]) -> list[Invoice]:
        return [self.invoice_to_domain(record) for record in records]

    def criteria_to_sql(self, criteria: Criteria) -> dict[str, Any]:
        """Return only the filters that are set."""
        sql_criteria: dict[str, Any] = {}
        if criteria.status is not None:
            sql_criteria["status"] = criteria.status.value
        if criteria.issue_date_from is not None:
            sql_criteria["issue_date_from"] = criteria.issue_date_from
        if criteria.issue_date_to is not None:
            sql_criteria["issue_date_to"] = criteria.issue_date_to
        return sql_criteria


class InvoiceSqlClient:
    """Runs invoice queries, retrying failed ones."""

    def __init__(self, engine: Engine, max_retries: int) -> None:
        self._engine = engine
        self.max_retries = max_retries

    def _session(self) -> Session:
        return Session(self._engine, expire_on_commit=False)

    def get_invoice_by_id(self, invoice_id: str) -> InvoiceRecord:
        logger.info("Fetching invoice by ID id=%s", invoice_id)

        def query() -> InvoiceRecord:
            key = uuid.UUID(invoice_id)
            statement = (
                select(InvoiceRecord)
                .where(InvoiceRecord.id == key, InvoiceRecord.deleted_at.is_(None))
                .order_by(InvoiceRecord.id)
                .limit(1)
            )
            with self._session() as session:
                record = session.scalars(statement).first()
            if record is None:
                raise InvoiceNotFoundError()
            return record

        record = self.run_with_retry(query, self.max_retries)
        if record is None:
            return InvoiceRecord()
        logger.info("Fetched invoice by ID rows_affected=1")
        return record

    def get_invoices_by_account_id(
        self, account_id: str, criteria: dict[str, Any]
    ) -> list[InvoiceRecord]:
        logger.info("Fetching invoices by criteria criteria=%r", criteria)

        def query() -> list[InvoiceRecord]:
            statement = select(InvoiceRecord).where(
                InvoiceRecord.account_id == account_id, InvoiceRecord.deleted_at.is_(None)
            )
            if criteria.get("status") is not None:
                statement = statement.where(InvoiceRecord.status == criteria["status"])
            if criteria.get("issue_date_from") is not None:
                statement = statement.where(InvoiceRecord.issue_date >= criteria["issue_date_from"])
            if criteria.get("issue_date_to") is not None:
                statement = statement.where(InvoiceRecord.issue_date <= criteria["issue_date_to"])
            statement = statement.order_by(InvoiceRecord.issue_date.desc())
            with self._session() as session:
                return list(session.scalars(statement))

        records = self.run_with_retry(query, self.max_retries)
        if records is None:
            return []
        logger.info("Fetched invoices by criteria rows_affected=%d", len(records))
        return records

    def run_with_retry(self, query: Callable[[], T], retries: int) -> Optional[T]:
        """Call ``query`` up to ``retries`` times; re-raise the last failure.

        Returns ``None`` when no attempt is made.
        """
        last_error: Optional[Exception] = None
        for _ in range(retries):
            try:
                return query()
            except Exception as exc:
                last_error = exc
                logger.error("Query failed, retrying...: %s", exc)
        if last_error is not None:
            raise last_error
        return None