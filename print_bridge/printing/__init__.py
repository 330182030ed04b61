"""
Printing subsystem for Print Bridge.

- escpos: ESC/POS byte vocabulary and layout helpers
- formatters: kitchen ticket, receipt and test page layouts (pure)
- transport: raw TCP send/probe against the printer
- scheduler: durable priority queue and the single printer worker
"""

from .formatters import encode, format_kitchen_ticket, format_receipt, format_test_page
from .scheduler import Scheduler, backoff_delay
from .transport import DeliveryResult, probe, send

__all__ = [
    "DeliveryResult",
    "Scheduler",
    "backoff_delay",
    "encode",
    "format_kitchen_ticket",
    "format_receipt",
    "format_test_page",
    "probe",
    "send",
]
