import base64
import hashlib
import hmac
import json

import pytest

from print_bridge.core.errors import AuthenticityError
from print_bridge.ingest.orders import Reconciler
from print_bridge.ingest.webhook import WebhookHandler, compute_signature, verify_signature

SECRET = "whsec_test"


class NullScheduler:
    def __init__(self):
        self.enqueued = []

    def enqueue(self, job_id):
        self.enqueued.append(job_id)
        return True


@pytest.fixture
def handler(store):
    return WebhookHandler(store, Reconciler(store, NullScheduler()), SECRET)


def _body(data) -> bytes:
    return json.dumps(data).encode("utf-8")


def test_compute_signature_matches_hmac_sha256_base64():
    payload = b'{"id": 1}'
    expected = base64.b64encode(hmac.new(SECRET.encode(), payload, hashlib.sha256).digest()).decode()
    assert compute_signature(payload, SECRET) == expected


def test_verify_signature():
    payload = b'{"id": 1}'
    sig = compute_signature(payload, SECRET)

    assert verify_signature(payload, sig, SECRET)
    assert not verify_signature(payload, sig, "other-secret")
    assert not verify_signature(payload, None, SECRET)
    assert not verify_signature(payload, sig, None)
    assert not verify_signature(payload, "", SECRET)


def test_any_flipped_payload_byte_fails_verification():
    payload = b'{"id": 1001, "status": "processing"}'
    sig = compute_signature(payload, SECRET)
    for i in range(len(payload)):
        tampered = bytearray(payload)
        tampered[i] ^= 0x01
        assert not verify_signature(bytes(tampered), sig, SECRET)


def test_flipped_signature_byte_fails_verification():
    payload = b'{"id": 1001}'
    sig = compute_signature(payload, SECRET)
    flipped = ("A" if sig[0] != "A" else "B") + sig[1:]
    assert not verify_signature(payload, flipped, SECRET)


def test_authenticate_without_secret(store):
    h = WebhookHandler(store, Reconciler(store, NullScheduler()), None)
    with pytest.raises(AuthenticityError):
        h.authenticate(b"{}", "anything")


def test_valid_webhook_imports_order(handler, store, raw_order):
    payload = _body(raw_order())
    result = handler.handle(payload, compute_signature(payload, SECRET))

    assert result["received"] is True
    assert result["processed"] is True
    assert result["created"] is True
    assert store.get_order(result["order_id"]).external_id == 1001

    log = store.get_webhook_log(1)
    assert log["verified"] is True
    assert log["processed"] is True
    assert log["error"] is None


def test_duplicate_webhook_is_acknowledged_without_writes(handler, store, raw_order):
    payload = _body(raw_order())
    sig = compute_signature(payload, SECRET)
    first = handler.handle(payload, sig)
    second = handler.handle(payload, sig)

    assert second["processed"] is True
    assert second["created"] is False
    assert second["order_id"] == first["order_id"]
    assert store.count_orders() == 1
    assert sum(store.count_jobs_by_status().values()) == 2


def test_invalid_signature_rejected(handler, store, raw_order):
    payload = _body(raw_order())
    result = handler.handle(payload, compute_signature(payload, "wrong"))

    assert result == {"received": True, "processed": False, "reason": "invalid_signature"}
    assert store.count_orders() == 0
    log = store.get_webhook_log(1)
    assert log["verified"] is False
    assert log["processed"] is False
    assert "mismatch" in log["error"]


def test_missing_signature_rejected(handler, store, raw_order):
    result = handler.handle(_body(raw_order()), None)
    assert result["reason"] == "invalid_signature"
    assert store.count_orders() == 0


def test_status_not_printable(handler, store, raw_order):
    payload = _body(raw_order(status="completed"))
    result = handler.handle(payload, compute_signature(payload, SECRET))

    assert result == {"received": True, "processed": False, "reason": "status_not_printable"}
    assert store.count_orders() == 0


@pytest.mark.parametrize("status", [["processing"], {"slug": "processing"}, 5, None])
def test_non_string_status_is_acknowledged(handler, store, raw_order, status):
    payload = _body(raw_order(status=status))
    result = handler.handle(payload, compute_signature(payload, SECRET))

    assert result == {"received": True, "processed": False, "reason": "status_not_printable"}
    assert store.count_orders() == 0
    log = store.get_webhook_log(1)
    assert log["verified"] is True
    assert log["processed"] is False


def test_non_json_ping_is_acknowledged(handler, store):
    payload = b"webhook_id=12"
    result = handler.handle(payload, compute_signature(payload, SECRET))

    assert result["processed"] is False
    assert result["reason"] == "invalid_payload"
    assert store.get_webhook_log(1)["verified"] is True


def test_malformed_order_reports_processing_error(handler, store, raw_order):
    payload = _body(raw_order(total="not money"))
    result = handler.handle(payload, compute_signature(payload, SECRET))

    assert result == {"received": True, "processed": False, "error": "processing_error"}
    assert store.count_orders() == 0
    assert "Invalid order payload" in store.get_webhook_log(1)["error"]
