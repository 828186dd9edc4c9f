"""Customer/Rep Enricher for the overdue reminder.

Resolves, for each invoice, the fields the notifier needs:

    1. Customer email                 (lookup of the customer record)
    2. Customer's assigned sales rep  (same lookup; the rep on the
                                       *customer*, not the invoice)
    3. Rep's inactive flag and email  (separate employee lookup)
    4. Days overdue                   (aging.days_overdue)

Defaults when data is missing or a lookup fails:

    customer has no email        -> "Not Available"
    customer lookup fails        -> email "Error Retrieving Data", no rep
    customer has no rep          -> rep id "" and rep treated as inactive
    employee lookup fails        -> rep treated as inactive

Lookups are cached by record id for the lifetime of the Enricher, so a
customer with twenty invoices costs one customer lookup.  ``prefetch``
warms the cache for a whole batch of invoices up front, one lookup per
unique customer and rep id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable

from .aging import days_overdue
from .errors import BatchAborted
from .models import (
    ERROR_RETRIEVING_DATA,
    NOT_AVAILABLE,
    Customer,
    EnrichedInvoice,
    FailureMode,
    Invoice,
    SalesRep,
)
from .sources import CUSTOMER, EMPLOYEE, RecordLookup, clean_id

logger = logging.getLogger(__name__)

_CUSTOMER_FIELDS = ("name", "email", "sales_rep")
_EMPLOYEE_FIELDS = ("name", "email", "is_inactive")


@dataclass
class _CustomerResult:
    customer: Customer
    failed: bool = False


class Enricher:
    """Turns fetched invoices into EnrichedInvoice records.

    Attributes:
        lookup: The customer/employee record lookup.
        failure_mode: SKIP_AND_LOG substitutes defaults on lookup failure;
            ABORT_BATCH raises BatchAborted instead.
        cache_lookups: Reuse lookup results by record id within this run.
    """

    def __init__(
        self,
        lookup: RecordLookup,
        *,
        failure_mode: FailureMode = FailureMode.SKIP_AND_LOG,
        cache_lookups: bool = True,
    ) -> None:
        self.lookup = lookup
        self.failure_mode = failure_mode
        self.cache_lookups = cache_lookups
        self._customers: dict[str, _CustomerResult] = {}
        self._reps: dict[str, SalesRep] = {}
        self.lookup_failures = 0

    # -------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------

    def enrich(self, invoice: Invoice, now: date | datetime) -> EnrichedInvoice:
        """Resolve customer and rep details for one invoice.

        Never raises for a lookup failure under SKIP_AND_LOG.
        """
        result = self._customer(invoice.customer_id)
        customer = result.customer

        if result.failed:
            customer_email = ERROR_RETRIEVING_DATA
        else:
            customer_email = customer.email or NOT_AVAILABLE

        rep = self._rep(customer.sales_rep_id)

        logger.debug(
            "Invoice %s: customer=%s rep(invoice)=%s rep(customer)=%s inactive=%s",
            invoice.id, invoice.customer_id, invoice.sales_rep_id or "-",
            customer.sales_rep_id or "-", rep.is_inactive,
        )

        return EnrichedInvoice(
            invoice=invoice,
            customer_email=customer_email,
            sales_rep_id=customer.sales_rep_id,
            sales_rep_name=customer.sales_rep_name or rep.name,
            sales_rep_email=rep.email,
            sales_rep_inactive=rep.is_inactive,
            days_overdue=days_overdue(invoice.due_date, now),
        )

    def prefetch(self, invoices: Iterable[Invoice]) -> int:
        """Look up every unique customer, then every unique rep, once.

        Returns the number of lookups performed.  Does nothing when
        caching is disabled.
        """
        if not self.cache_lookups:
            return 0

        count = 0
        customer_ids = dict.fromkeys(inv.customer_id for inv in invoices)
        for customer_id in customer_ids:
            if customer_id not in self._customers:
                self._customer(customer_id)
                count += 1

        rep_ids = dict.fromkeys(
            r.customer.sales_rep_id for r in self._customers.values()
            if r.customer.sales_rep_id
        )
        for rep_id in rep_ids:
            if rep_id not in self._reps:
                self._rep(rep_id)
                count += 1

        logger.info(
            "Prefetched %d customers and %d sales reps (%d lookups)",
            len(customer_ids), len(rep_ids), count,
        )
        return count

    # -------------------------------------------------------------------
    # Internal: lookups
    # -------------------------------------------------------------------

    def _customer(self, customer_id: str) -> _CustomerResult:
        if self.cache_lookups and customer_id in self._customers:
            return self._customers[customer_id]

        try:
            data = self.lookup.lookup(CUSTOMER, customer_id, _CUSTOMER_FIELDS)
            rep_ref = data.get("sales_rep") or {}
            result = _CustomerResult(Customer(
                id=customer_id,
                name=str(data.get("name") or ""),
                email=str(data.get("email") or ""),
                sales_rep_id=clean_id(rep_ref.get("id")),
                sales_rep_name=str(rep_ref.get("name") or ""),
            ))
        except Exception as exc:
            self._fail(f"Customer lookup failed for {customer_id}", exc)
            result = _CustomerResult(Customer(id=customer_id), failed=True)

        if self.cache_lookups:
            self._customers[customer_id] = result
        return result

    def _rep(self, rep_id: str) -> SalesRep:
        if not rep_id:
            return SalesRep(id="", is_inactive=True)
        if self.cache_lookups and rep_id in self._reps:
            return self._reps[rep_id]

        try:
            data = self.lookup.lookup(EMPLOYEE, rep_id, _EMPLOYEE_FIELDS)
            inactive = data.get("is_inactive")
            rep = SalesRep(
                id=rep_id,
                name=str(data.get("name") or ""),
                email=str(data.get("email") or ""),
                # a missing flag counts as inactive
                is_inactive=True if inactive is None else bool(inactive),
            )
        except Exception as exc:
            self._fail(f"Sales rep lookup failed for {rep_id}", exc)
            rep = SalesRep(id=rep_id, is_inactive=True)

        if self.cache_lookups:
            self._reps[rep_id] = rep
        return rep

    def _fail(self, message: str, exc: Exception) -> None:
        self.lookup_failures += 1
        if self.failure_mode is FailureMode.ABORT_BATCH:
            raise BatchAborted(f"{message}: {exc}") from exc
        logger.warning("%s, using defaults: %s", message, exc)
