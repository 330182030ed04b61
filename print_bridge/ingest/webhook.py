"""
Push ingestion: signed WooCommerce order webhooks.

The signature header carries base64(HMAC-SHA256(secret, raw body)). It is
computed over the body exactly as received, before any JSON parsing.

handle() never raises. Every delivery is acknowledged so the store stops
retrying; whether anything was imported is reported in the result body and in
the webhook_logs audit row.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

from print_bridge.core.db import Store
from print_bridge.core.errors import AuthenticityError, PrintBridgeError, ValidationError

from .orders import Reconciler

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-WC-Webhook-Signature"


def compute_signature(payload: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(payload: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """
    Constant-time check of `signature` against the payload. False when either
    the secret or the signature is missing.
    """
    if not secret or not signature:
        return False
    expected = compute_signature(payload, secret)
    return hmac.compare_digest(signature.strip().encode("ascii", "replace"), expected.encode("ascii"))


class WebhookHandler:
    def __init__(self, store: Store, reconciler: Reconciler, secret: Optional[str]):
        self.store = store
        self.reconciler = reconciler
        self.secret = secret

    def authenticate(self, payload: bytes, signature: Optional[str]) -> None:
        if not self.secret:
            raise AuthenticityError("Webhook secret not configured")
        if not signature:
            raise AuthenticityError("Missing webhook signature")
        if not verify_signature(payload, signature, self.secret):
            raise AuthenticityError("Webhook signature mismatch")

    @staticmethod
    def _decode(payload: bytes) -> Dict[str, Any]:
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError(f"Webhook body is not JSON: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError("Webhook body is not a JSON object")
        return data

    def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify, filter and import one webhook delivery. Returns the response body.
        """
        log_id = self.store.create_webhook_log(payload.decode("utf-8", "replace"), signature)

        try:
            self.authenticate(payload, signature)
        except AuthenticityError as e:
            logger.warning("Rejected webhook %d: %s", log_id, e)
            self.store.update_webhook_log(log_id, verified=False, error=str(e))
            return {"received": True, "processed": False, "reason": "invalid_signature"}
        self.store.update_webhook_log(log_id, verified=True)

        try:
            data = self._decode(payload)
        except ValidationError as e:
            # WooCommerce sends a form-encoded ping when a webhook is created.
            logger.info("Webhook %d ignored: %s", log_id, e)
            self.store.update_webhook_log(log_id, error=str(e))
            return {"received": True, "processed": False, "reason": "invalid_payload"}

        status = data.get("status")
        if not self.reconciler.is_printable(status):
            logger.info("Webhook %d: order %s status %r not printable", log_id, data.get("id"), status)
            return {"received": True, "processed": False, "reason": "status_not_printable"}

        try:
            result = self.reconciler.import_order(data)
        except PrintBridgeError as e:
            logger.error("Webhook %d processing error: %s", log_id, e)
            self.store.update_webhook_log(log_id, error=str(e))
            return {"received": True, "processed": False, "error": "processing_error"}
        except Exception as e:
            logger.exception(f"Webhook {log_id} processing error: {e}")
            self.store.update_webhook_log(log_id, error=str(e) or type(e).__name__)
            return {"received": True, "processed": False, "error": "processing_error"}

        self.store.update_webhook_log(log_id, processed=True)
        return {
            "received": True,
            "processed": True,
            "order_id": result.order.id,
            "created": result.created,
        }


__all__ = ["SIGNATURE_HEADER", "WebhookHandler", "compute_signature", "verify_signature"]
