from __future__ import annotations

"""
Webhook ingress for Print Bridge.

Endpoints:
- POST /api/webhooks/woocommerce : WooCommerce order webhook (signed)

The body is read raw so the signature is checked over the exact bytes sent.
The response is always 200; the outcome is in the JSON body.
"""

from flask import Blueprint, current_app, jsonify, request

from print_bridge.ingest.webhook import SIGNATURE_HEADER

from .common import get_services

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api/webhooks")


@webhooks_bp.post("/woocommerce")
def woocommerce():
    payload = request.get_data(cache=True)
    signature = request.headers.get(SIGNATURE_HEADER)
    result = get_services().webhooks.handle(payload, signature)
    current_app.logger.info(
        "POST /api/webhooks/woocommerce processed=%s reason=%s",
        result.get("processed"),
        result.get("reason") or result.get("error") or "-",
    )
    return jsonify(result), 200
