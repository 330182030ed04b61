# Ensure the repository root is on sys.path so `print_bridge` can be imported in tests.

import sys
import threading
import time
from pathlib import Path


def _ensure_repo_root_on_syspath() -> None:
    # This file lives at: <repo_root>/tests/conftest.py
    # We want to add <repo_root> to sys.path (if not already present).
    here = Path(__file__).resolve()
    repo_root = here.parent.parent
    repo_str = str(repo_root)
    if repo_str not in sys.path:
        sys.path.insert(0, repo_str)


_ensure_repo_root_on_syspath()

from datetime import datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any, Callable, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402

from print_bridge.core.config import SchedulerConfig, Settings  # noqa: E402
from print_bridge.core.db import Store  # noqa: E402
from print_bridge.core.errors import TransientDeliveryError  # noqa: E402
from print_bridge.core.models import LineItem, Order, Variation  # noqa: E402
from print_bridge.printing.transport import DeliveryResult  # noqa: E402


class FakePrinter:
    """
    Stand-in for transport.send. Records every payload with its send window and
    answers from `outcomes` (True/False per call, then `default`).
    """

    def __init__(self, outcomes: Optional[List[bool]] = None, default: bool = True, delay: float = 0.0):
        self.outcomes = list(outcomes or [])
        self.default = default
        self.delay = delay
        self.payloads: List[bytes] = []
        self.windows: List[tuple] = []
        self.max_in_flight = 0
        self._in_flight = 0
        self._lock = threading.Lock()
        self.gate: Optional[threading.Event] = None
        self.entered = threading.Event()

    def __call__(self, address: str, port: int, data: bytes) -> DeliveryResult:
        with self._lock:
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
            ok = self.outcomes.pop(0) if self.outcomes else self.default
        start = time.monotonic()
        self.entered.set()
        try:
            if self.gate is not None:
                self.gate.wait(5)
            if self.delay:
                time.sleep(self.delay)
        finally:
            with self._lock:
                self._in_flight -= 1
                self.payloads.append(data)
                self.windows.append((start, time.monotonic()))
        if ok:
            return DeliveryResult(True)
        return DeliveryResult(False, TransientDeliveryError("Printer connection error (test): refused"))

    @property
    def calls(self) -> int:
        return len(self.payloads)


class RecordingTimer:
    """
    threading.Timer replacement that records the requested delay and fires at once.
    """

    delays: List[float]

    def __init__(self, interval: float, function: Callable[..., Any], args: tuple = ()):
        self.interval = interval
        self.function = function
        self.args = args
        self.daemon = False
        self.cancelled = False

    def start(self) -> None:
        RecordingTimer.delays.append(self.interval)
        if not self.cancelled:
            self.function(*self.args)

    def cancel(self) -> None:
        self.cancelled = True


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        printer_ip="127.0.0.1",
        printer_port=9100,
        store_name="Corner Cafe",
        store_address="1 Main St",
        store_phone="555-0100",
        store_footer="Thanks!",
        timezone="UTC",
    )


@pytest.fixture
def store(tmp_path):
    s = Store(str(tmp_path / "data.db"))
    yield s
    s.close()


@pytest.fixture
def printer() -> FakePrinter:
    return FakePrinter()


@pytest.fixture
def timer():
    RecordingTimer.delays = []
    return RecordingTimer


@pytest.fixture
def scheduler_config() -> SchedulerConfig:
    return SchedulerConfig(max_attempts=5, backoff_base=5.0, stale_after=60.0)


@pytest.fixture
def waiter():
    return wait_until


@pytest.fixture
def make_order():
    def _make(external_id: Optional[int] = 1001, **overrides: Any) -> Order:
        data: Dict[str, Any] = dict(
            id=None,
            external_id=external_id,
            order_number=str(external_id or 1),
            status="processing",
            customer_name="Ada Lovelace",
            customer_email="ada@example.com",
            line_items=(
                LineItem(1, "Flat White", 2, Decimal("9.00"), (Variation("Milk", "Oat"),)),
                LineItem(2, "Croissant", 1, Decimal("4.50")),
            ),
            subtotal=Decimal("13.50"),
            shipping_total=Decimal("0"),
            tax_total=Decimal("0"),
            order_total=Decimal("13.50"),
            notes=None,
            created_at=datetime(2024, 3, 5, 14, 7, tzinfo=timezone.utc),
        )
        data.update(overrides)
        return Order(**data)

    return _make


@pytest.fixture
def raw_order():
    """Factory for WooCommerce order payloads as sent by webhooks and the REST API."""

    def _raw(order_id: int = 1001, status: str = "processing", **overrides: Any) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": order_id,
            "number": str(order_id),
            "status": status,
            "total": "15.75",
            "subtotal": "13.50",
            "shipping_total": "1.00",
            "total_tax": "1.25",
            "customer_note": "No sugar please",
            "billing": {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"},
            "line_items": [
                {
                    "id": 11,
                    "name": "Flat White",
                    "quantity": 2,
                    "subtotal": "9.00",
                    "total": "9.00",
                    "meta_data": [
                        {"id": 1, "key": "Milk", "value": "Oat", "display_key": "Milk", "display_value": "Oat"},
                        {"id": 2, "key": "_reduced_stock", "value": "2"},
                    ],
                },
                {"id": 12, "name": "Croissant", "quantity": 1, "subtotal": "4.50", "total": "4.50", "meta_data": []},
            ],
        }
        data.update(overrides)
        return data

    return _raw
