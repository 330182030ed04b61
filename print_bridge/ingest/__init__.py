"""
Order ingestion for Print Bridge.

- orders: the shared, idempotent import routine (Reconciler)
- webhook: signed push deliveries
- polling: periodic fetch from the WooCommerce REST API
"""

from .orders import PRINTABLE_STATUSES, Reconciler, parse_order
from .polling import OrderPoller, OrderSourceClient
from .webhook import SIGNATURE_HEADER, WebhookHandler, compute_signature, verify_signature

__all__ = [
    "PRINTABLE_STATUSES",
    "OrderPoller",
    "OrderSourceClient",
    "Reconciler",
    "SIGNATURE_HEADER",
    "WebhookHandler",
    "compute_signature",
    "parse_order",
    "verify_signature",
]
