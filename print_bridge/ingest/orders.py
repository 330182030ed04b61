"""
Order import: the single routine both the webhook and the poller feed into.

import_order() turns a raw WooCommerce order into one stored Order plus one
kitchen and one receipt print job, and hands the jobs to the scheduler.
Importing an order whose external id is already stored returns the stored
order and creates nothing; the store's UNIQUE constraint settles races
between the webhook and the poller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from print_bridge.core.db import Store
from print_bridge.core.errors import NotFoundError, ValidationError
from print_bridge.core.models import DocumentKind, ImportResult, LineItem, Order, PrintJob, Variation
from print_bridge.printing.scheduler import Scheduler

from .schemas import WooOrder

logger = logging.getLogger(__name__)

PRINTABLE_STATUSES = frozenset({"processing", "on-hold"})

# Kitchen first: it is also what the scheduler would pick first.
ORDER_DOCUMENTS = (DocumentKind.KITCHEN, DocumentKind.RECEIPT)


def parse_order(raw: Mapping[str, Any], now: Optional[datetime] = None) -> Order:
    """
    Validate a raw order payload and build the Order to store.

    Raises ValidationError when the payload does not look like an order.
    """
    try:
        woo = WooOrder.model_validate(raw)
    except PydanticValidationError as e:
        try:
            first = e.errors()[0]
            where = ".".join(str(p) for p in first.get("loc", ()))
            msg = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
        except Exception:
            msg = str(e)
        raise ValidationError(f"Invalid order payload: {msg}") from e

    items = tuple(
        LineItem(
            id=li.id,
            name=li.name,
            quantity=li.quantity,
            total=li.total,
            variations=tuple(Variation(m.label, m.text) for m in li.meta_data if not m.is_private),
        )
        for li in woo.line_items
    )
    subtotal = woo.subtotal if woo.subtotal is not None else sum((i.total for i in items), Decimal("0"))

    return Order(
        id=None,
        external_id=woo.id,
        order_number=woo.number,
        status=woo.status,
        customer_name=woo.customer_name,
        customer_email=woo.billing.email or None,
        line_items=items,
        subtotal=subtotal,
        shipping_total=woo.shipping_total,
        tax_total=woo.total_tax,
        order_total=woo.total,
        notes=woo.customer_note or None,
        created_at=now or datetime.now(timezone.utc),
    )


class Reconciler:
    """
    Shared import routine for push and poll delivery.
    """

    def __init__(self, store: Store, scheduler: Scheduler, printable_statuses: Iterable[str] = PRINTABLE_STATUSES):
        self.store = store
        self.scheduler = scheduler
        self.printable_statuses = frozenset(printable_statuses)

    def is_printable(self, status: Any) -> bool:
        return isinstance(status, str) and status in self.printable_statuses

    def import_order(self, raw: Mapping[str, Any]) -> ImportResult:
        """
        Store the order and its two print jobs, then enqueue them.
        Re-importing the same external id is a no-op returning the stored order.
        """
        order = parse_order(raw)

        existing = self.store.get_order_by_external_id(order.external_id)
        if existing is not None:
            logger.info("Order %s (external id %s) already processed, skipping", existing.order_number, order.external_id)
            return ImportResult(existing, created=False)

        created = self.store.create_order(order, ORDER_DOCUMENTS)
        if created is None:
            # Lost the race against a concurrent import of the same order.
            stored = self.store.get_order_by_external_id(order.external_id)
            if stored is None:
                raise NotFoundError("Order with external id", order.external_id)
            return ImportResult(stored, created=False)

        stored, jobs = created
        self._enqueue(jobs)
        logger.info("Order %s processed and queued for printing (%d jobs)", stored.order_number, len(jobs))
        return ImportResult(stored, created=True, jobs=jobs)

    def reprint(self, order_id: int, kind: str = "receipt") -> List[PrintJob]:
        """
        Queue fresh print jobs for a stored order. kind: receipt | kitchen | both.
        """
        order = self.store.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if kind == "both":
            kinds = list(ORDER_DOCUMENTS)
        else:
            try:
                kinds = [DocumentKind(kind)]
            except ValueError:
                raise ValidationError(f"Unknown document kind: {kind!r}") from None
        jobs = self.store.create_jobs(order.id, kinds)
        self._enqueue(jobs)
        logger.info("Reprint of order %s queued: %s", order.order_number, ", ".join(k.value for k in kinds))
        return jobs

    def _enqueue(self, jobs: List[PrintJob]) -> None:
        for job in sorted(jobs, key=lambda j: j.priority, reverse=True):
            self.scheduler.enqueue(job.id)


__all__ = ["ORDER_DOCUMENTS", "PRINTABLE_STATUSES", "Reconciler", "parse_order"]
