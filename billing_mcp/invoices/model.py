"""Invoice domain model: statuses, identifiers, lines and search criteria."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from string import hexdigits

_HEX = frozenset(hexdigits)
_URN_PREFIX = "urn:uuid:"


class InvoiceError(Exception):
    """Base class for invoice domain errors."""


class UnknownStatusError(InvoiceError, ValueError):
    """Raised when a string does not name a known invoice status."""

    def __init__(self, message: str = "unknown status") -> None:
        super().__init__(message)


class InvoiceNotFoundError(InvoiceError):
    """Raised when a requested invoice does not exist."""

    def __init__(self, message: str = "invoice not found") -> None:
        super().__init__(message)


class InvoiceStatus(str, Enum):
    """Lifecycle status of an invoice."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    OVERDUE = "OVERDUE"
    VOID = "VOID"
    UNPAID = "UNPAID"

    def __str__(self) -> str:
        return self.value


def status_from_string(status: str) -> InvoiceStatus:
    """Return the status named exactly by ``status``."""
    try:
        return InvoiceStatus(status)
    except ValueError:
        raise UnknownStatusError() from None


def new_invoice_id() -> uuid.UUID:
    """Generate a new random invoice identifier."""
    return uuid.uuid4()


def _is_hex(text: str) -> bool:
    return all(ch in _HEX for ch in text)


def parse_invoice_id(text: str) -> uuid.UUID:
    """Parse an invoice identifier.

    Accepts the canonical hyphenated form, the same wrapped in braces or
    prefixed with ``urn:uuid:``, and 32 bare hex digits.
    """
    if not isinstance(text, str):
        raise ValueError(f"invalid UUID: {text!r}")

    candidate = text
    if len(candidate) == 45 and candidate[:9].lower() == _URN_PREFIX:
        candidate = candidate[9:]
    elif len(candidate) == 38 and candidate[0] == "{" and candidate[-1] == "}":
        candidate = candidate[1:-1]
    elif len(candidate) == 32:
        if not _is_hex(candidate):
            raise ValueError(f"invalid UUID format: {text!r}")
        return uuid.UUID(hex=candidate)

    if len(candidate) != 36:
        raise ValueError(f"invalid UUID length: {len(text)}")
    if any(candidate[pos] != "-" for pos in (8, 13, 18, 23)):
        raise ValueError(f"invalid UUID format: {text!r}")
    if not _is_hex(candidate.replace("-", "")):
        raise ValueError(f"invalid UUID format: {text!r}")
    return uuid.UUID(candidate)


@dataclass
class Criteria:
    """Filters for searching an account's invoices; ``None`` means unset."""

    status: InvoiceStatus | None = None
    issue_date_from: datetime | None = None
    issue_date_to: datetime | None = None


@dataclass
class InvoiceLine:
    """A single line item on an invoice."""

    description: str = ""
    amount_without_tax: float = 0.0
    amount_with_tax: float = 0.0
    tax_percentage: float = 0.0
    operation_type: str = ""  # "credit" or "debit"


@dataclass
class Invoice:
    """Invoice aggregate root."""

    id: uuid.UUID = field(default_factory=new_invoice_id)
    account_id: str = ""
    issue_date: datetime | None = None
    due_date: datetime | None = None
    lines: list[InvoiceLine] = field(default_factory=list)
    tax_amount: float = 0.0
    total_amount_without_tax: float = 0.0
    total_amount_with_tax: float = 0.0
    status: InvoiceStatus = InvoiceStatus.DRAFT
    invoice_number: str = ""

    def add_line(self, line: InvoiceLine) -> None:
        """Append a line; only draft invoices accept new lines."""
        if self.status is not InvoiceStatus.DRAFT:
            raise InvoiceError("invoice is already paid")
        self.lines.append(line)

    def recalculate_totals(self) -> None:
        """Recompute totals from the lines: debits add, credits subtract."""
        without_tax = 0.0
        with_tax = 0.0
        tax = 0.0
        for line in self.lines:
            if line.operation_type == "credit":
                sign = -1.0
            elif line.operation_type == "debit":
                sign = 1.0
            else:
                continue
            without_tax += sign * line.amount_without_tax
            with_tax += sign * line.amount_with_tax
            tax += sign * (line.amount_with_tax - line.amount_without_tax)
        self.total_amount_without_tax = without_tax
        self.total_amount_with_tax = with_tax
        self.tax_amount = tax

    def mark_as_sent(self) -> None:
        if self.status is not InvoiceStatus.DRAFT:
            raise InvoiceError("invoice can only be marked as sent from draft status")
        self.status = InvoiceStatus.SENT

    def mark_as_paid(self) -> None:
        if self.status is InvoiceStatus.VOID:
            raise InvoiceError("void invoice cannot be marked as paid")
        self.status = InvoiceStatus.PAID

    def mark_as_void(self) -> None:
        if self.status is InvoiceStatus.PAID:
            raise InvoiceError("paid invoice cannot be voided")
        self.status = InvoiceStatus.VOID