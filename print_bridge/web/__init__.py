"""
Web module for Print Bridge.

Exposes blueprints for:
- Webhook ingress: webhooks_bp
- Print job operator API: jobs_bp
- Order reprint API: orders_bp
- Printer test/probe and health: health_bp
"""

from .health import health_bp
from .jobs import jobs_bp
from .orders import orders_bp
from .webhooks import webhooks_bp

__all__ = ["health_bp", "jobs_bp", "orders_bp", "webhooks_bp"]
