"""Tests for overdue_reminder.sources -- in-memory and workbook stores.

Covers:
- The overdue query filters (mainline, status, cutoff, active customer)
- Customer and employee point lookups, requested-field projection
- Value parsing helpers (ids, amounts, dates)
- WorkbookStore reading an XLSX built with openpyxl, and its error cases
"""

from datetime import date, datetime

import openpyxl
import pytest

from overdue_reminder.config import InvoiceQuery
from overdue_reminder.errors import RecordNotFound, SourceError
from overdue_reminder.sources import (
    CUSTOMER,
    EMPLOYEE,
    CustomerRow,
    EmployeeRow,
    InMemoryStore,
    InvoiceRow,
    WorkbookStore,
    clean_id,
    parse_amount,
    parse_date,
)


CUTOFF = date(2026, 9, 30)


def _make_row(**overrides) -> InvoiceRow:
    defaults = dict(
        id="501",
        customer_id="9",
        customer_name="Acme",
        amount=1000.0,
        due_date=date(2026, 9, 19),
    )
    defaults.update(overrides)
    return InvoiceRow(**defaults)


def _make_store(invoices=None) -> InMemoryStore:
    return InMemoryStore(
        invoices=invoices if invoices is not None else [_make_row()],
        customers=[
            CustomerRow(id="9", name="Acme", email="ap@acme.test", sales_rep_id="55"),
            CustomerRow(id="10", name="Dormant", is_inactive=True),
            CustomerRow(id="11", name="No Rep", email="ap@norep.test"),
        ],
        employees=[EmployeeRow(id="55", name="Rita Rep", email="rita@vendor.test")],
    )


def _ids(store, query=None, cutoff=CUTOFF):
    return [row["id"] for row in store.search(query or InvoiceQuery(), cutoff)]


# ============================================================================
# InMemoryStore.search
# ============================================================================

class TestSearch:
    def test_row_columns(self):
        row = next(iter(_make_store().search(InvoiceQuery(), CUTOFF)))
        assert row == {
            "id": "501",
            "tran_id": "",
            "customer_id": "9",
            "customer_name": "Acme",
            "sales_rep_id": "",
            "amount": 1000.0,
            "due_date": date(2026, 9, 19),
        }

    def test_cutoff_is_inclusive(self):
        store = _make_store([
            _make_row(id="1", due_date=date(2026, 9, 30)),
            _make_row(id="2", due_date=date(2026, 10, 1)),
            _make_row(id="3", due_date=None),
        ])
        assert _ids(store) == ["1"]

    def test_mainline_only(self):
        store = _make_store([_make_row(id="1"), _make_row(id="2", mainline=False)])
        assert _ids(store) == ["1"]
        assert _ids(store, InvoiceQuery(mainline_only=False)) == ["1", "2"]

    def test_status_filter_is_case_insensitive(self):
        store = _make_store([
            _make_row(id="1", status="Open"),
            _make_row(id="2", status="paid in full"),
        ])
        assert _ids(store) == ["1"]

    def test_inactive_customer_excluded(self):
        store = _make_store([_make_row(id="1"), _make_row(id="2", customer_id="10")])
        assert _ids(store) == ["1"]
        assert _ids(store, InvoiceQuery(active_customers_only=False)) == ["1", "2"]

    def test_unknown_customer_counts_as_active(self):
        store = _make_store([_make_row(id="1", customer_id="404")])
        assert _ids(store) == ["1"]


# ============================================================================
# InMemoryStore.lookup
# ============================================================================

class TestLookup:
    def test_customer_fields(self):
        data = _make_store().lookup(CUSTOMER, "9", ["email", "sales_rep"])
        assert data == {
            "email": "ap@acme.test",
            "sales_rep": {"id": "55", "name": "Rita Rep"},
        }

    def test_customer_without_rep(self):
        data = _make_store().lookup(CUSTOMER, "11", ["sales_rep"])
        assert data == {"sales_rep": None}

    def test_employee_fields(self):
        data = _make_store().lookup(EMPLOYEE, "55", ["is_inactive", "email"])
        assert data == {"is_inactive": False, "email": "rita@vendor.test"}

    def test_unknown_ids_raise(self):
        store = _make_store()
        with pytest.raises(RecordNotFound):
            store.lookup(CUSTOMER, "404", ["email"])
        with pytest.raises(RecordNotFound):
            store.lookup(EMPLOYEE, "404", ["email"])

    def test_unknown_record_type(self):
        with pytest.raises(ValueError, match="Unsupported record type"):
            _make_store().lookup("vendor", "9", ["email"])

    def test_lookup_count(self):
        store = _make_store()
        store.lookup(CUSTOMER, "9", ["email"])
        store.lookup(CUSTOMER, "9", ["email"])
        store.lookup(EMPLOYEE, "55", ["name"])
        assert store.lookup_count == {CUSTOMER: 2, EMPLOYEE: 1}


# ============================================================================
# Parsing helpers
# ============================================================================

class TestCleanId:
    @pytest.mark.parametrize("raw,expected", [
        (501, "501"),
        (501.0, "501"),
        ("  501 ", "501"),
        (None, ""),
        ("#N/A", ""),
        (True, ""),
    ])
    def test_clean_id(self, raw, expected):
        assert clean_id(raw) == expected


class TestParseAmount:
    @pytest.mark.parametrize("raw,expected", [
        (1000, 1000.0),
        (1250.5, 1250.5),
        ("$1,234.56", 1234.56),
        ("(50.00)", -50.0),
        (None, 0.0),
        ("", 0.0),
    ])
    def test_valid(self, raw, expected):
        assert parse_amount(raw) == pytest.approx(expected)

    @pytest.mark.parametrize("raw", ["abc", True])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_amount(raw)


class TestParseDate:
    @pytest.mark.parametrize("raw", [
        date(2026, 9, 19),
        datetime(2026, 9, 19, 14, 30),
        "2026-09-19",
        "09/19/2026",
        "Sep 19, 2026",
        46284,              # Excel serial
    ])
    def test_valid(self, raw):
        assert parse_date(raw) == date(2026, 9, 19)

    @pytest.mark.parametrize("raw", [None, "", "not a date", 12])
    def test_invalid(self, raw):
        with pytest.raises(ValueError):
            parse_date(raw)


# ============================================================================
# WorkbookStore
# ============================================================================

def _write_workbook(path, *, sheets=("Invoices", "Customers", "Employees")):
    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    if "Invoices" in sheets:
        ws = wb.create_sheet("Invoices")
        ws.append(["Internal ID", "Document Number", "Customer", "Customer ID",
                   "Amount", "Due Date", "Status", "Mainline"])
        ws.append([501, "INV-501", "Acme", 9, 1000, datetime(2026, 9, 19), "Open", "T"])
        ws.append([502, "INV-502", "Acme", 9, "$250.50", "2026-09-01", "Open", "F"])
        ws.append([503, "INV-503", "Acme", 9, 75, "someday", "Open", "T"])
        ws.append([None, None, None, None, None, None, None, None])
    if "Customers" in sheets:
        ws = wb.create_sheet("Customers")
        # columns deliberately out of order
        ws.append(["Email", "Internal ID", "Name", "Sales Rep ID", "Inactive"])
        ws.append(["ap@acme.test", 9, "Acme", 55, "No"])
    if "Employees" in sheets:
        ws = wb.create_sheet("Employees")
        ws.append(["Internal ID", "Name", "Email", "Inactive"])
        ws.append([55, "Rita Rep", "rita@vendor.test", False])
    wb.save(path)
    return path


class TestWorkbookStore:
    def test_search_and_lookup(self, tmp_path):
        store = WorkbookStore(_write_workbook(tmp_path / "export.xlsx"))
        rows = list(store.search(InvoiceQuery(), CUTOFF))
        assert [r["id"] for r in rows] == ["501"]
        assert rows[0]["tran_id"] == "INV-501"
        assert rows[0]["amount"] == 1000.0
        assert rows[0]["due_date"] == date(2026, 9, 19)

        customer = store.lookup(CUSTOMER, "9", ["email", "sales_rep"])
        assert customer["email"] == "ap@acme.test"
        assert customer["sales_rep"] == {"id": "55", "name": "Rita Rep"}
        assert store.lookup(EMPLOYEE, "55", ["is_inactive"]) == {"is_inactive": False}

    def test_parsed_rows(self, tmp_path):
        store = WorkbookStore(_write_workbook(tmp_path / "export.xlsx"))
        list(store.search(InvoiceQuery(mainline_only=False), CUTOFF))
        assert [r.id for r in store.invoices] == ["501", "502", "503"]
        assert store.invoices[1].amount == pytest.approx(250.5)
        assert store.invoices[1].mainline is False

    def test_bad_date_is_warned(self, tmp_path):
        store = WorkbookStore(_write_workbook(tmp_path / "export.xlsx"))
        list(store.search(InvoiceQuery(), CUTOFF))
        assert store.invoices[2].due_date is None
        assert any("someday" in w for w in store.warnings)

    def test_bad_amount_skips_only_that_row(self, tmp_path):
        path = _write_workbook(tmp_path / "export.xlsx")
        wb = openpyxl.load_workbook(path)
        wb["Invoices"].append([504, "INV-504", "Acme", 9, "n/a-ish",
                               datetime(2026, 9, 10), "Open", "T"])
        wb.save(path)

        store = WorkbookStore(path)
        rows = list(store.search(InvoiceQuery(), CUTOFF))
        assert [r["id"] for r in rows] == ["501"]
        assert "504" not in [r.id for r in store.invoices]
        assert any("n/a-ish" in w for w in store.warnings)

    def test_missing_sheet(self, tmp_path):
        path = _write_workbook(tmp_path / "export.xlsx", sheets=("Invoices", "Customers"))
        store = WorkbookStore(path)
        with pytest.raises(SourceError, match="Employees"):
            store.lookup(EMPLOYEE, "55", ["name"])

    def test_missing_file(self, tmp_path):
        store = WorkbookStore(tmp_path / "nope.xlsx")
        with pytest.raises(SourceError, match="Cannot open workbook"):
            store.search(InvoiceQuery(), CUTOFF)

    def test_missing_required_column(self, tmp_path):
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Invoices"
        ws.append(["Internal ID", "Customer ID"])
        wb.create_sheet("Customers").append(["Internal ID"])
        wb.create_sheet("Employees").append(["Internal ID"])
        path = tmp_path / "export.xlsx"
        wb.save(path)

        with pytest.raises(SourceError, match="due_date"):
            WorkbookStore(path).search(InvoiceQuery(), CUTOFF)
