"""
Order documents rendered to ESC/POS bytes.

encode(order, settings, kind) is pure: no I/O, and the same inputs always give
the same bytes. Totals are printed exactly as stored on the order.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import partial
from typing import Callable, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from print_bridge.core.config import Settings
from print_bridge.core.errors import ValidationError
from print_bridge.core.models import DocumentKind, Order

from .escpos import TicketBuilder, format_currency, format_datetime, pad_line

logger = logging.getLogger(__name__)


def _local_time(dt: datetime, settings: Settings) -> datetime:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    if settings.timezone.upper() == "UTC":
        return dt.astimezone(timezone.utc)
    try:
        return dt.astimezone(ZoneInfo(settings.timezone))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r in settings; printing UTC", settings.timezone)
        return dt.astimezone(timezone.utc)


def format_kitchen_ticket(order: Order, settings: Settings) -> bytes:
    """
    Kitchen ticket: order number, customer, and every item's quantity and name
    in large bold text, followed by modifiers and customer notes.
    """
    width = settings.kitchen_width
    divider = "=" * width
    thin = "-" * width

    doc = TicketBuilder().init().feed()

    doc.align("center").bold().size("2x")
    doc.line("ORDER").line(f"#{order.order_number}")
    doc.size("normal").bold(False).feed()

    doc.line(divider).feed()
    doc.bold().size("2x").line(order.customer_name.upper()).size("normal").bold(False)
    doc.feed().line(divider).feed(2)

    for item in order.line_items:
        doc.align("center").bold().size("2x")
        doc.line(f"{item.quantity}x").feed()
        doc.line(item.name.upper())
        doc.size("normal").bold(False)
        if item.variations:
            doc.feed()
            for v in item.variations:
                doc.bold().size("2h").line(f"> {v.value.upper()}").size("normal").bold(False)
        doc.feed().line(thin).feed()

    if order.notes:
        doc.feed().align("center").bold().size("2x")
        doc.line("** NOTES **").feed()
        doc.line(order.notes.upper())
        doc.size("normal").bold(False).feed()

    doc.feed().line(divider)
    doc.align("center").bold().line(f"ORDERED: {format_datetime(_local_time(order.created_at, settings))}").bold(False)
    doc.line(divider)

    doc.feed_lines(5).cut()
    return doc.output


def _store_header(doc: TicketBuilder, settings: Settings) -> None:
    doc.align("center").bold().size("2x").line(settings.store_name).size("normal").bold(False)
    if settings.store_address:
        doc.line(settings.store_address)
    if settings.store_phone:
        doc.line(settings.store_phone)


def format_receipt(order: Order, settings: Settings) -> bytes:
    """
    Customer receipt: store header, itemized lines with prices, the financial
    breakdown and the store footer.
    """
    width = settings.receipt_width
    money = partial(format_currency, symbol=settings.currency_symbol)

    doc = TicketBuilder().init()
    _store_header(doc, settings)

    doc.feed().separator("=", width)
    doc.align("left").bold().line(f"Order #{order.order_number}").bold(False)
    doc.line(format_datetime(_local_time(order.created_at, settings))).feed()
    doc.line(f"Customer: {order.customer_name}")
    doc.separator("-", width).feed()

    for item in order.line_items:
        doc.line(pad_line(f"{item.quantity}x {item.name}", money(item.total), width))
        for v in item.variations:
            doc.line(f"   {v.key}: {v.value}")

    doc.feed().separator("-", width)
    doc.line(pad_line("Subtotal:", money(order.subtotal), width))
    if order.shipping_total > 0:
        doc.line(pad_line("Shipping:", money(order.shipping_total), width))
    if order.tax_total > 0:
        doc.line(pad_line("Tax:", money(order.tax_total), width))
    doc.separator("-", width)
    doc.bold().line(pad_line("TOTAL:", money(order.order_total), width)).bold(False).feed()

    if order.notes:
        doc.separator("-", width)
        doc.bold().line("Notes:").bold(False)
        doc.line(order.notes).feed()

    doc.align("center").feed().line(settings.store_footer)
    doc.feed_lines(4).cut()
    return doc.output


def format_test_page(settings: Settings, now: Optional[datetime] = None) -> bytes:
    """Operator test page confirming the printer is reachable and formatting works."""
    width = settings.receipt_width
    stamp = _local_time(now or datetime.now(timezone.utc), settings)

    doc = TicketBuilder().init()
    doc.align("center").bold().size("2x").line(settings.store_name).size("normal").bold(False)
    doc.feed().separator("=", width).feed()
    doc.line("*** TEST PRINT ***").feed()
    doc.line(format_datetime(stamp)).feed()
    doc.line("Printer connection successful!").feed()
    doc.separator("=", width).feed()
    doc.line(settings.store_footer)
    doc.feed_lines(4).cut()
    return doc.output


LAYOUTS: Dict[DocumentKind, Callable[[Order, Settings], bytes]] = {
    DocumentKind.RECEIPT: format_receipt,
    DocumentKind.KITCHEN: format_kitchen_ticket,
}


def encode(order: Order, settings: Settings, kind: DocumentKind) -> bytes:
    """
    Render `order` as the document `kind` (receipt or kitchen).
    """
    try:
        layout = LAYOUTS[DocumentKind(kind)]
    except ValueError:
        raise ValidationError(f"Unknown document kind: {kind!r}") from None
    return layout(order, settings)


__all__ = ["LAYOUTS", "encode", "format_kitchen_ticket", "format_receipt", "format_test_page"]
