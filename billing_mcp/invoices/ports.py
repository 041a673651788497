"""Invoice tool handlers and conversion between domain and wire forms."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from billing_mcp.invoices.model import (
    Criteria,
    Invoice,
    parse_invoice_id,
    status_from_string,
)
from billing_mcp.invoices.service import InvoiceService
from billing_mcp.mcp.protocol import (
    CallToolRequest,
    CallToolResult,
    tool_result_error,
    tool_result_text,
)

logger = logging.getLogger(__name__)

_MISSING_INVOICE_ID = "invoice_id is required"
_MISSING_ACCOUNT_ID = "account_id is required"
_ZERO_DATE = "0001-01-01"

_RFC3339 = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2}):([0-9]{2})"
    r"(?:\.([0-9]+))?(?:(Z)|([+-])([0-9]{2}):([0-9]{2}))"
)


class InvalidCriteriaError(ValueError):
    """Raised when tool arguments cannot be turned into search criteria."""


@dataclass(frozen=True)
class JsonInvoice:
    """Invoice as returned to tool callers."""

    id: str
    amount_without_tax: int
    amount_with_tax: int
    status: str
    issue_date: str
    due_date: str


def _format_date(value: Optional[datetime]) -> str:
    if value is None:
        return _ZERO_DATE
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"


def _to_json_invoice(invoice: Invoice) -> JsonInvoice:
    return JsonInvoice(
        id=str(invoice.id),
        amount_without_tax=int(invoice.total_amount_without_tax),
        amount_with_tax=int(invoice.total_amount_with_tax),
        status=str(invoice.status.value),
        issue_date=_format_date(invoice.issue_date),
        due_date=_format_date(invoice.due_date),
    )


def _encode(data: Any) -> str:
    text = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
    return (
        text.replace("<", "\\u003c")
        .replace(">", "\\u003e")
        .replace("&", "\\u0026")
        .replace("\u2028", "\\u2028")
        .replace("\u2029", "\\u2029")
    )


def _parse_rfc3339(text: str) -> datetime:
    match = _RFC3339.fullmatch(text)
    if match is None:
        raise InvalidCriteriaError(f'parsing time "{text}" as RFC3339: invalid format')
    year, month, day, hour, minute, second = (int(group) for group in match.group(1, 2, 3, 4, 5, 6))
    fraction = match.group(7) or ""
    microsecond = int((fraction + "000000")[:6])
    if match.group(8):
        tz = timezone.utc
    else:
        offset_hours, offset_minutes = int(match.group(10)), int(match.group(11))
        if offset_hours > 23 or offset_minutes > 59:
            raise InvalidCriteriaError(f'parsing time "{text}": time zone offset out of range')
        offset = timedelta(hours=offset_hours, minutes=offset_minutes)
        tz = timezone(-offset if match.group(9) == "-" else offset)
    try:
        return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tz)
    except ValueError as exc:
        raise InvalidCriteriaError(f'parsing time "{text}": {exc}') from exc


class Converter:
    """Converts domain invoices to JSON and tool arguments to criteria."""

    def invoice_to_json(self, invoice: Invoice) -> str:
        return _encode(asdict(_to_json_invoice(invoice)))

    def invoices_to_json(self, invoices: list[Invoice]) -> str:
        return _encode([asdict(_to_json_invoice(invoice)) for invoice in invoices])

    def request_args_to_criteria(self, args: Optional[dict[str, Any]]) -> Criteria:
        """Build criteria from tool arguments; every filter must be present."""
        criteria = Criteria()
        self._fill_criteria(args, criteria)
        return criteria

    def _fill_criteria(self, args: Optional[dict[str, Any]], criteria: Criteria) -> None:
        """Set filters in order, leaving those already set in place on failure."""
        args = args or {}

        status = args.get("status")
        if not isinstance(status, str):
            raise InvalidCriteriaError("invalid status criteria")
        criteria.status = status_from_string(status)

        date_from = args.get("issueDateFrom")
        if not isinstance(date_from, str):
            raise InvalidCriteriaError("invalid date criteria")
        criteria.issue_date_from = _parse_rfc3339(date_from)

        date_to = args.get("issueDateTo")
        if not isinstance(date_to, str):
            raise InvalidCriteriaError("invalid date criteria")
        criteria.issue_date_to = _parse_rfc3339(date_to)


class InvoicesController:
    """Handlers for the invoice tools."""

    def __init__(self, service: InvoiceService) -> None:
        self._service = service
        self._converter = Converter()

    def get_invoice(self, request: CallToolRequest) -> CallToolResult:
        logger.info("Processing request in GetInvoice tool")
        arguments = request.arguments or {}

        requested = arguments.get("invoiceId")
        if not isinstance(requested, str) or not requested:
            logger.error("Invoice ID is required")
            return tool_result_error("Missing request parameter", _MISSING_INVOICE_ID)

        try:
            invoice_id = parse_invoice_id(requested)
        except ValueError as exc:
            logger.error("Failed to parse invoice ID: %s", exc)
            return tool_result_error("Invalid invoice ID format", exc)

        try:
            invoice = self._service.get_invoice_by_id(invoice_id)
        except Exception as exc:
            logger.error("Failed to fetch invoice by ID: %s", exc)
            raise

        return tool_result_text(self._converter.invoice_to_json(invoice))

    def get_invoices(self, request: CallToolRequest) -> CallToolResult:
        logger.info("Processing request in GetInvoices tool")
        arguments = request.arguments or {}

        account_id = arguments.get("accountId")
        if not isinstance(account_id, str) or not account_id:
            logger.error("Account ID is required")
            return tool_result_error("Missing request parameter", _MISSING_ACCOUNT_ID)

        # Filters that cannot be read are dropped; those read before them still apply.
        criteria = Criteria()
        try:
            self._converter._fill_criteria(arguments, criteria)
        except ValueError as exc:
            logger.debug("Using partial criteria: %s", exc)

        try:
            invoices = self._service.get_invoices_by_criteria(account_id, criteria)
        except Exception as exc:
            logger.error("Failed to fetch invoices by criteria: %s", exc)
            raise

        return tool_result_text(self._converter.invoices_to_json(invoices))