import uuid
from datetime import datetime

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_mcp.invoices.model import (
    Criteria,
    InvoiceNotFoundError,
    InvoiceStatus,
    UnknownStatusError,
)
from billing_mcp.invoices.sql import InvoiceRecord, InvoiceSqlClient, InvoiceSqlConverter
from billing_mcp.persistence.database import Base, create_sql_engine


@pytest.fixture
def engine(tmp_path):
    eng = create_sql_engine(f"sqlite:///{tmp_path / 'invoices.sqlite'}")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


def _add(engine, **fields):
    record = InvoiceRecord(**fields)
    with Session(engine, expire_on_commit=False) as session:
        session.add(record)
        session.commit()
    return record


def _seed(engine):
    return [
        _add(engine, account_id="acc-1", status="PAID", invoice_number="N1",
             issue_date=datetime(2024, 1, 10), due_date=datetime(2024, 2, 10)),
        _add(engine, account_id="acc-1", status="SENT", invoice_number="N2",
             issue_date=datetime(2024, 3, 10), due_date=datetime(2024, 4, 10)),
        _add(engine, account_id="acc-1", status="PAID", invoice_number="N3",
             issue_date=datetime(2024, 5, 10), due_date=datetime(2024, 6, 10)),
        _add(engine, account_id="acc-2", status="PAID", invoice_number="N4",
             issue_date=datetime(2024, 2, 10), due_date=datetime(2024, 3, 10)),
    ]


def test_records_stored_in_invoices_table(engine):
    _add(engine, account_id="acc-9", status="PAID", invoice_number="T1")
    with engine.connect() as connection:
        numbers = connection.execute(text("SELECT invoice_number FROM invoices")).scalars().all()
    assert numbers == ["T1"]


def test_invoice_to_domain_copies_fields():
    key = uuid.uuid4()
    record = InvoiceRecord(
        id=key, account_id="acc", issue_date=datetime(2024, 1, 1), due_date=datetime(2024, 2, 1),
        tax_amount=21.0, total_amount_without_tax=100.0, total_amount_with_tax=121.0,
        status="OVERDUE", invoice_number="INV-1",
    )
    invoice = InvoiceSqlConverter().invoice_to_domain(record)
    assert invoice.id == key
    assert invoice.account_id == "acc"
    assert invoice.issue_date == datetime(2024, 1, 1)
    assert invoice.due_date == datetime(2024, 2, 1)
    assert invoice.tax_amount == 21.0
    assert invoice.total_amount_without_tax == 100.0
    assert invoice.total_amount_with_tax == 121.0
    assert invoice.status is InvoiceStatus.OVERDUE
    assert invoice.invoice_number == "INV-1"
    assert invoice.lines == []


def test_invoice_to_domain_unknown_status():
    with pytest.raises(UnknownStatusError):
        InvoiceSqlConverter().invoice_to_domain(InvoiceRecord(id=uuid.uuid4(), status="Paid"))


def test_invoices_to_domain_keeps_order_and_propagates_errors():
    converter = InvoiceSqlConverter()
    records = [InvoiceRecord(id=uuid.uuid4(), status=s) for s in ("DRAFT", "VOID")]
    assert [i.status for i in converter.invoices_to_domain(records)] == [
        InvoiceStatus.DRAFT, InvoiceStatus.VOID,
    ]
    assert converter.invoices_to_domain([]) == []
    with pytest.raises(UnknownStatusError):
        converter.invoices_to_domain(records + [InvoiceRecord(id=uuid.uuid4(), status="")])


def test_criteria_to_sql_empty():
    assert InvoiceSqlConverter().criteria_to_sql(Criteria()) == {}


def test_criteria_to_sql_full():
    start, end = datetime(2024, 1, 1), datetime(2024, 12, 31)
    result = InvoiceSqlConverter().criteria_to_sql(
        Criteria(status=InvoiceStatus.PAID, issue_date_from=start, issue_date_to=end)
    )
    assert result == {"status": "PAID", "issue_date_from": start, "issue_date_to": end}


def test_get_invoice_by_id_found(engine):
    records = _seed(engine)
    client = InvoiceSqlClient(engine, 3)
    found = client.get_invoice_by_id(str(records[1].id))
    assert found.id == records[1].id
    assert found.invoice_number == "N2"


def test_get_invoice_by_id_missing(engine):
    _seed(engine)
    with pytest.raises(InvoiceNotFoundError):
        InvoiceSqlClient(engine, 2).get_invoice_by_id(str(uuid.uuid4()))


def test_get_invoice_by_id_malformed(engine):
    with pytest.raises(ValueError):
        InvoiceSqlClient(engine, 1).get_invoice_by_id("not-an-id")


def test_soft_deleted_invoice_hidden(engine):
    record = _add(engine, account_id="acc-1", status="PAID", invoice_number="D1",
                  issue_date=datetime(2024, 1, 1), deleted_at=datetime(2024, 1, 2))
    client = InvoiceSqlClient(engine, 1)
    with pytest.raises(InvoiceNotFoundError):
        client.get_invoice_by_id(str(record.id))
    assert client.get_invoices_by_account_id("acc-1", {}) == []


def test_get_invoices_by_account_newest_first(engine):
    _seed(engine)
    found = InvoiceSqlClient(engine, 3).get_invoices_by_account_id("acc-1", {})
    assert [r.invoice_number for r in found] == ["N3", "N2", "N1"]


def test_get_invoices_filters_by_status(engine):
    _seed(engine)
    found = InvoiceSqlClient(engine, 3).get_invoices_by_account_id("acc-1", {"status": "PAID"})
    assert [r.invoice_number for r in found] == ["N3", "N1"]


def test_get_invoices_filters_by_inclusive_date_range(engine):
    _seed(engine)
    criteria = {"issue_date_from": datetime(2024, 3, 10), "issue_date_to": datetime(2024, 5, 10)}
    found = InvoiceSqlClient(engine, 3).get_invoices_by_account_id("acc-1", criteria)
    assert [r.invoice_number for r in found] == ["N3", "N2"]


def test_get_invoices_without_attempts_is_empty(engine):
    _seed(engine)
    assert InvoiceSqlClient(engine, 0).get_invoices_by_account_id("acc-1", {}) == []


def test_duplicate_invoice_number_rejected(engine):
    _add(engine, account_id="a", status="PAID", invoice_number="DUP")
    with pytest.raises(IntegrityError):
        _add(engine, account_id="b", status="PAID", invoice_number="DUP")


def test_run_with_retry_succeeds_after_failures(engine):
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise RuntimeError("boom")
        return "done"

    assert InvoiceSqlClient(engine, 3).run_with_retry(flaky, 3) == "done"
    assert len(calls) == 3


def test_run_with_retry_raises_last_error(engine):
    calls = []

    def failing():
        calls.append(1)
        raise RuntimeError(f"attempt {len(calls)}")

    with pytest.raises(RuntimeError, match="attempt 2"):
        InvoiceSqlClient(engine, 5).run_with_retry(failing, 2)
    assert len(calls) == 2


def test_run_with_retry_zero_attempts(engine):
    calls = []
    assert InvoiceSqlClient(engine, 3).run_with_retry(lambda: calls.append(1), 0) is None
    assert calls == []