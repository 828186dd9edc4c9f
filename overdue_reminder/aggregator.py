"""
Aggregator

Keys each enriched invoice by its customer and merges the keyed pairs into
``CustomerGroup`` objects.

``emit`` is the per-invoice half: exactly one ``(key, record)`` pair per
invoice.  ``shuffle`` is the key-based redistribution between the map and
reduce stages; it only runs once every pair has been emitted, and keeps
arrival order within each customer.
"""

from __future__ import annotations

from typing import Iterable

from .models import CustomerGroup, EnrichedInvoice


def group_key(enriched: EnrichedInvoice) -> str:
    """The grouping key: the customer id as a string."""
    return str(enriched.customer_id)


def emit(enriched: EnrichedInvoice) -> tuple[str, EnrichedInvoice]:
    """Return the ``(key, record)`` pair for one invoice."""
    return group_key(enriched), enriched


def shuffle(pairs: Iterable[tuple[str, EnrichedInvoice]]) -> dict[str, CustomerGroup]:
    """Merge keyed invoices into one CustomerGroup per customer.

    Args:
        pairs: ``(key, EnrichedInvoice)`` pairs as produced by ``emit``.

    Returns:
        Dict mapping customer id -> CustomerGroup, in first-seen order.

    Raises:
        ValueError: If a pair's key does not match its invoice's customer.
    """
    groups: dict[str, CustomerGroup] = {}

    for key, enriched in pairs:
        if key != group_key(enriched):
            raise ValueError(
                f"Key {key!r} does not match customer {enriched.customer_id!r} "
                f"of invoice {enriched.invoice_number}"
            )
        if key not in groups:
            groups[key] = CustomerGroup(customer_id=key)
        groups[key].add(enriched)

    return groups
