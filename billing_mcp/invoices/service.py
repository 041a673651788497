"""Invoice domain service."""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from billing_mcp.invoices.model import Criteria, Invoice

logger = logging.getLogger(__name__)


class Repository(Protocol):
    """Storage that the invoice service reads from."""

    def get_invoice_by_id(self, invoice_id: uuid.UUID) -> Invoice:
        """Return the invoice with the given identifier."""
        ...

    def get_invoices_by_account_id(self, account_id: str, criteria: Criteria) -> list[Invoice]:
        """Return the account's invoices matching ``criteria``."""
        ...


class InvoiceService:
    """Looks up invoices through a repository."""

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    def get_invoice_by_id(self, invoice_id: uuid.UUID) -> Invoice:
        logger.info("Fetching invoice by ID id=%s", invoice_id)
        try:
            return self._repo.get_invoice_by_id(invoice_id)
        except Exception as exc:
            logger.error("Failed to fetch invoice by ID: %s", exc)
            raise

    def get_invoices_by_criteria(self, account_id: str, criteria: Criteria) -> list[Invoice]:
        logger.info("Fetching invoices by criteria account_id=%s criteria=%r", account_id, criteria)
        try:
            return list(self._repo.get_invoices_by_account_id(account_id, criteria))
        except Exception as exc:
            logger.error("Failed to fetch invoices by criteria: %s", exc)
            raise