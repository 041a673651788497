"""Invoice repository backed by the SQL client."""

from __future__ import annotations

import logging
import uuid

from billing_mcp.invoices.model import Criteria, Invoice
from billing_mcp.invoices.sql import InvoiceSqlClient, InvoiceSqlConverter

logger = logging.getLogger(__name__)


class InvoiceRepository:
    """Reads invoices from SQL storage and returns domain objects."""

    def __init__(self, client: InvoiceSqlClient, converter: InvoiceSqlConverter) -> None:
        self._client = client
        self._converter = converter

    def get_invoice_by_id(self, invoice_id: uuid.UUID) -> Invoice:
        logger.info("Fetching invoice by ID id=%s", invoice_id)
        try:
            record = self._client.get_invoice_by_id(str(invoice_id))
        except Exception as exc:
            logger.error("Failed to fetch invoice by ID: %s", exc)
            raise
        try:
            invoice = self._converter.invoice_to_domain(record)
        except Exception as exc:
            logger.error("Failed to convert invoice to domain model: %s", exc)
            raise
        logger.info("Fetched invoice by ID id=%s", invoice_id)
        return invoice

    def get_invoices_by_account_id(self, account_id: str, criteria: Criteria) -> list[Invoice]:
        logger.info("Fetching invoices by criteria account_id=%s criteria=%r", account_id, criteria)
        try:
            records = self._client.get_invoices_by_account_id(
                account_id, self._converter.criteria_to_sql(criteria)
            )
        except Exception as exc:
            logger.error("Failed to fetch invoices by criteria: %s", exc)
            raise
        try:
            invoices = self._converter.invoices_to_domain(records)
        except Exception as exc:
            logger.error("Failed to convert invoices to domain model: %s", exc)
            raise
        logger.info("Fetched invoices by criteria count=%d", len(invoices))
        return invoices