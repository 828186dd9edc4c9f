"""Overdue Reminder - Invoice, Customer and Employee Stores.

The batch talks to its data through two narrow interfaces:

* ``InvoiceSource.search(query, cutoff)`` -- the overdue invoice query.
  Yields one row dict per matching invoice with the columns ``id``,
  ``tran_id``, ``customer_id``, ``customer_name``, ``sales_rep_id``,
  ``amount`` and ``due_date``.
* ``RecordLookup.lookup(record_type, record_id, fields)`` -- a point
  lookup of a ``customer`` or ``employee`` record returning only the
  requested fields.  Raises ``RecordNotFound`` for unknown ids.

Two implementations ship with the package:

* ``InMemoryStore`` -- plain dataclass rows, used by tests and by callers
  embedding the job next to their own data layer.
* ``WorkbookStore`` -- an XLSX export with ``Invoices``, ``Customers`` and
  ``Employees`` sheets, read with openpyxl.  Columns are matched by header
  text so the export can reorder them.

Usage::

    from overdue_reminder.sources import WorkbookStore

    store = WorkbookStore("data/overdue_invoices.xlsx")
    rows = list(store.search(cfg.query, cutoff=date(2026, 9, 30)))
    customer = store.lookup("customer", "9", ["email", "sales_rep"])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import IO, Iterable, Iterator, Protocol, Sequence, Union

import openpyxl

from .config import InvoiceQuery
from .errors import RecordNotFound, SourceError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CUSTOMER = "customer"
EMPLOYEE = "employee"

_INVOICES_SHEET = "Invoices"
_CUSTOMERS_SHEET = "Customers"
_EMPLOYEES_SHEET = "Employees"

# Column header aliases -- mapped by *header text* so we are resilient
# to column reordering across exports.
_INVOICE_HEADERS: dict[str, list[str]] = {
    "id":            ["Internal ID", "ID", "Invoice ID"],
    "tran_id":       ["Document Number", "Tran ID", "Invoice Number"],
    "customer_id":   ["Customer ID", "Customer Internal ID"],
    "customer_name": ["Customer", "Customer Name"],
    "sales_rep_id":  ["Sales Rep ID", "Sales Rep"],
    "amount":        ["Amount", "Amount Remaining", "Total"],
    "due_date":      ["Due Date"],
    "status":        ["Status"],
    "mainline":      ["Mainline", "Main Line"],
}

_CUSTOMER_HEADERS: dict[str, list[str]] = {
    "id":           ["Internal ID", "ID", "Customer ID"],
    "name":         ["Name", "Customer", "Company Name"],
    "email":        ["Email", "E-mail"],
    "sales_rep_id": ["Sales Rep ID", "Sales Rep"],
    "inactive":     ["Inactive", "Is Inactive"],
}

_EMPLOYEE_HEADERS: dict[str, list[str]] = {
    "id":       ["Internal ID", "ID", "Employee ID"],
    "name":     ["Name", "Employee"],
    "email":    ["Email", "E-mail"],
    "inactive": ["Inactive", "Is Inactive"],
}

# Cell values that should be treated as null / unknown.
_NULL_SIGNALS: set[str | None] = {"", "#N/A", "N/A", "#REF!", "- None -", None}


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class InvoiceSource(Protocol):
    def search(self, query: InvoiceQuery, cutoff: date) -> Iterable[dict]: ...


class RecordLookup(Protocol):
    def lookup(self, record_type: str, record_id: str, fields: Sequence[str]) -> dict: ...


# ---------------------------------------------------------------------------
# Row types
# ---------------------------------------------------------------------------

@dataclass
class InvoiceRow:
    """One invoice line as stored, before the overdue filter is applied."""
    id: str
    customer_id: str
    customer_name: str
    amount: float
    due_date: date | None
    tran_id: str = ""
    sales_rep_id: str = ""
    status: str = "open"
    mainline: bool = True


@dataclass
class CustomerRow:
    id: str
    name: str = ""
    email: str = ""
    sales_rep_id: str = ""
    is_inactive: bool = False


@dataclass
class EmployeeRow:
    id: str
    name: str = ""
    email: str = ""
    is_inactive: bool = False


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------

@dataclass
class InMemoryStore:
    """Invoice source and record lookup over in-memory rows.

    ``lookup_count`` counts point lookups per record type so callers can
    check how many round trips a run made.
    """

    invoices: list[InvoiceRow] = field(default_factory=list)
    customers: list[CustomerRow] = field(default_factory=list)
    employees: list[EmployeeRow] = field(default_factory=list)
    lookup_count: dict[str, int] = field(default_factory=dict)

    # --- InvoiceSource ---

    def search(self, query: InvoiceQuery, cutoff: date) -> Iterator[dict]:
        """Yield the columns of every invoice row matching ``query``."""
        customers = self._customer_index()
        statuses = {s.strip().lower() for s in query.statuses}

        for row in self._invoice_rows():
            if query.mainline_only and not row.mainline:
                continue
            if statuses and row.status.strip().lower() not in statuses:
                continue
            if row.due_date is None or row.due_date > cutoff:
                continue
            if query.active_customers_only:
                customer = customers.get(row.customer_id)
                if customer is not None and customer.is_inactive:
                    continue
            yield {
                "id": row.id,
                "tran_id": row.tran_id,
                "customer_id": row.customer_id,
                "customer_name": row.customer_name,
                "sales_rep_id": row.sales_rep_id,
                "amount": row.amount,
                "due_date": row.due_date,
            }

    # --- RecordLookup ---

    def lookup(self, record_type: str, record_id: str, fields: Sequence[str]) -> dict:
        """Return the requested fields of one customer or employee record.

        Customer fields: ``name``, ``email``, ``sales_rep`` (a dict with
        ``id`` and ``name``, or None when no rep is assigned).
        Employee fields: ``name``, ``email``, ``is_inactive``.
        """
        self.lookup_count[record_type] = self.lookup_count.get(record_type, 0) + 1
        key = str(record_id).strip()

        if record_type == CUSTOMER:
            customer = self._customer_index().get(key)
            if customer is None:
                raise RecordNotFound(f"No customer with id {record_id!r}")
            values = {
                "name": customer.name,
                "email": customer.email,
                "sales_rep": self._rep_ref(customer.sales_rep_id),
            }
        elif record_type == EMPLOYEE:
            employee = self._employee_index().get(key)
            if employee is None:
                raise RecordNotFound(f"No employee with id {record_id!r}")
            values = {
                "name": employee.name,
                "email": employee.email,
                "is_inactive": employee.is_inactive,
            }
        else:
            raise ValueError(f"Unsupported record type: {record_type!r}")

        return {name: values.get(name) for name in fields}

    # --- internals ---

    def _invoice_rows(self) -> list[InvoiceRow]:
        return self.invoices

    def _customer_index(self) -> dict[str, CustomerRow]:
        return {c.id: c for c in self.customers}

    def _employee_index(self) -> dict[str, EmployeeRow]:
        return {e.id: e for e in self.employees}

    def _rep_ref(self, rep_id: str) -> dict[str, str] | None:
        if not rep_id:
            return None
        employee = self._employee_index().get(rep_id)
        return {"id": rep_id, "name": employee.name if employee else ""}


# ---------------------------------------------------------------------------
# Workbook store
# ---------------------------------------------------------------------------

class WorkbookStore(InMemoryStore):
    """``InMemoryStore`` populated lazily from an XLSX export.

    The workbook is read on first use; any failure to open or parse it is
    raised as ``SourceError`` from ``search`` and ``lookup``.
    """

    def __init__(self, source: Union[str, Path, IO[bytes]]) -> None:
        super().__init__()
        self.source = source
        self.warnings: list[str] = []
        self._loaded = False

    def search(self, query: InvoiceQuery, cutoff: date) -> Iterator[dict]:
        self._ensure_loaded()
        return super().search(query, cutoff)

    def lookup(self, record_type: str, record_id: str, fields: Sequence[str]) -> dict:
        self._ensure_loaded()
        return super().lookup(record_type, record_id, fields)

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        try:
            wb = openpyxl.load_workbook(self.source, data_only=True)
        except Exception as exc:
            raise SourceError(f"Cannot open workbook {self.source}: {exc}") from exc

        try:
            for name in (_INVOICES_SHEET, _CUSTOMERS_SHEET, _EMPLOYEES_SHEET):
                if name not in wb.sheetnames:
                    raise SourceError(
                        f"Workbook has no '{name}' sheet. Available: {wb.sheetnames}"
                    )
            self.invoices = _parse_invoices(wb[_INVOICES_SHEET], self.warnings)
            self.customers = _parse_customers(wb[_CUSTOMERS_SHEET])
            self.employees = _parse_employees(wb[_EMPLOYEES_SHEET])
        finally:
            wb.close()

        self._loaded = True
        logger.info(
            "Loaded workbook: %d invoices, %d customers, %d employees",
            len(self.invoices), len(self.customers), len(self.employees),
        )
        for warning in self.warnings:
            logger.warning(warning)


def _parse_invoices(ws, warnings: list[str]) -> list[InvoiceRow]:
    """Parse the Invoices sheet, skipping rows without an id or with a bad amount."""
    header_map = _build_header_map(ws, _INVOICE_HEADERS)
    for required in ("id", "customer_id", "due_date"):
        if required not in header_map:
            raise SourceError(f"Invoices sheet is missing the '{required}' column")

    rows: list[InvoiceRow] = []
    for row_idx, row in enumerate(ws.iter_rows(min_row=2, values_only=True), start=2):
        invoice_id = clean_id(_cell_value(row, header_map, "id"))
        if not invoice_id:
            continue
        raw_amount = _cell_value(row, header_map, "amount")
        try:
            amount = parse_amount(raw_amount)
        except ValueError:
            warnings.append(
                f"Invoices row {row_idx}: could not parse amount '{raw_amount}', row skipped"
            )
            continue
        mainline_raw = _cell_value(row, header_map, "mainline")
        rows.append(InvoiceRow(
            id=invoice_id,
            tran_id=_clean_str(_cell_value(row, header_map, "tran_id")),
            customer_id=clean_id(_cell_value(row, header_map, "customer_id")),
            customer_name=_clean_str(_cell_value(row, header_map, "customer_name")),
            sales_rep_id=clean_id(_cell_value(row, header_map, "sales_rep_id")),
            amount=amount,
            due_date=_parse_date_or_warn(
                _cell_value(row, header_map, "due_date"),
                f"Invoices row {row_idx}",
                warnings,
            ),
            status=_clean_str(_cell_value(row, header_map, "status")) or "open",
            mainline=True if mainline_raw is None else _parse_bool(mainline_raw),
        ))
    return rows


def _parse_customers(ws) -> list[CustomerRow]:
    header_map = _build_header_map(ws, _CUSTOMER_HEADERS)
    rows: list[CustomerRow] = []
    for row in ws.iter_rows(min_row=2, values_only=True):
        customer_id = clean_id(_cell_value(row, header_map, "id"))
        if not customer_id:
            continue
        rows.append(CustomerRow(
            id=customer_id,
            name=_clean_str(_cell_value(row, header_map, "name")),
            email=_clean_str(_cell_value(row, header_map, "email")),
            sales_rep_id=clean_id(_cell_value(row, header_map, "sales_rep_id")),
            is_inactive=_parse_bool(_cell_value(row, header_map, "inactive")),
        ))
    return rows


def _parse_employees(ws) -> list[EmployeeRow]:
    header_map = _build_header_map(ws, _EMPLOYEE_HEADERS)
    rows: list[EmployeeRow] = []
    for row in ws.iter_rows(min_row=2, values_only=True):
        employee_id = clean_id(_cell_value(row, header_map, "id"))
        if not employee_id:
            continue
        rows.append(EmployeeRow(
            id=employee_id,
            name=_clean_str(_cell_value(row, header_map, "name")),
            email=_clean_str(_cell_value(row, header_map, "email")),
            is_inactive=_parse_bool(_cell_value(row, header_map, "inactive")),
        ))
    return rows


# ---------------------------------------------------------------------------
# Header map builder
# ---------------------------------------------------------------------------

def _build_header_map(ws, header_spec: dict[str, list[str]]) -> dict[str, int]:
    """Map logical field names to 0-based column indices.

    Reads row 1 of the worksheet and matches each header cell against
    the known aliases in *header_spec*.
    """
    header_map: dict[str, int] = {}

    first = next(ws.iter_rows(min_row=1, max_row=1, values_only=True), ())
    row1_values = [str(val).strip() if val is not None else None for val in first]

    for logical_name, aliases in header_spec.items():
        for idx, header_text in enumerate(row1_values):
            if header_text is None:
                continue
            if header_text.lower() in (alias.lower() for alias in aliases):
                if idx not in header_map.values():
                    header_map[logical_name] = idx
                    break

    logger.debug("Header map for %s (%d/%d): %s",
                 ws.title, len(header_map), len(header_spec), list(header_map))
    return header_map


def _cell_value(row: tuple, header_map: dict[str, int], field_name: str):
    """Read a value by logical field name; None when absent."""
    idx = header_map.get(field_name)
    if idx is None or idx >= len(row):
        return None
    return row[idx]


# ---------------------------------------------------------------------------
# Data cleaning / type coercion helpers
# ---------------------------------------------------------------------------

def _clean_str(val) -> str:
    """Convert a cell value to a stripped string.  None becomes ``""``."""
    if val is None:
        return ""
    s = str(val).strip()
    return "" if s in _NULL_SIGNALS else s


def clean_id(val) -> str:
    """Normalize a record id: ``501.0`` and ``501`` both become ``"501"``."""
    if isinstance(val, bool):
        return ""
    if isinstance(val, float) and val.is_integer():
        return str(int(val))
    return _clean_str(val)


def _parse_bool(val) -> bool:
    """Parse a boolean cell value.

    Handles ``True``, ``False``, ``"TRUE"``, ``"T"``, ``"Yes"``, ``1``, ``0``.
    """
    if val is None:
        return False
    if isinstance(val, bool):
        return val
    s = str(val).strip().lower()
    return s in ("true", "t", "1", "yes", "y")


def parse_amount(val) -> float:
    """Parse an amount cell or column value.

    Handles numbers, ``"$1,234.56"`` and parenthesized negatives.

    Raises:
        ValueError: If the value is present but not a number.
    """
    if val is None:
        return 0.0
    if isinstance(val, bool):
        raise ValueError(f"Not an amount: {val!r}")
    if isinstance(val, (int, float)):
        return float(val)

    s = str(val).strip()
    if not s or s in _NULL_SIGNALS:
        return 0.0

    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative = True
        s = s[1:-1]
    amount = float(s.replace("$", "").replace(",", "").strip())
    return -amount if negative else amount


def parse_date(val) -> date:
    """Parse a due date from a date, datetime, Excel serial or string.

    Raises:
        ValueError: If the value cannot be read as a date.
    """
    if isinstance(val, datetime):
        return val.date()
    if isinstance(val, date):
        return val

    if isinstance(val, (int, float)) and not isinstance(val, bool):
        serial = int(val)
        if 20000 < serial < 80000:
            return (datetime(1899, 12, 30) + timedelta(days=serial)).date()

    s = str(val).strip() if val is not None else ""
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%m-%d-%Y",
                "%Y-%m-%dT%H:%M:%S", "%b %d, %Y", "%B %d, %Y"):
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Could not parse date {val!r}")


def _parse_date_or_warn(val, context: str, warnings: list[str]) -> date | None:
    if val is None:
        return None
    try:
        return parse_date(val)
    except ValueError:
        warnings.append(f"{context}: could not parse date '{val}'")
        return None
