"""
Poll ingestion: the fallback for webhooks that never arrive.

Every `interval` seconds the poller lists printable orders from the
WooCommerce REST API and imports the ones not stored yet. A failed cycle is
logged and the next one runs on schedule.
"""

from __future__ import annotations

import base64
import json
import logging
import threading
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, Iterable, List, Optional

from print_bridge.core.config import UpstreamConfig
from print_bridge.core.db import Store
from print_bridge.core.errors import UpstreamError

from .orders import PRINTABLE_STATUSES, Reconciler

logger = logging.getLogger(__name__)


class OrderSourceClient:
    """
    Minimal WooCommerce REST client (GET /wp-json/wc/v3/orders, basic auth).
    """

    def __init__(self, base_url: str, consumer_key: str, consumer_secret: str, timeout: float = 15.0):
        self.base_url = (base_url or "").rstrip("/")
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: UpstreamConfig) -> "OrderSourceClient":
        return cls(cfg.base_url, cfg.consumer_key, cfg.consumer_secret)

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.consumer_key and self.consumer_secret)

    def _auth_header(self) -> str:
        token = base64.b64encode(f"{self.consumer_key}:{self.consumer_secret}".encode("utf-8")).decode("ascii")
        return f"Basic {token}"

    def orders_url(self, statuses: Iterable[str], per_page: int = 20) -> str:
        query = urllib.parse.urlencode({"status": ",".join(sorted(statuses)), "per_page": per_page}, safe=",")
        return f"{self.base_url}/wp-json/wc/v3/orders?{query}"

    def fetch_printable(self, statuses: Iterable[str] = PRINTABLE_STATUSES, per_page: int = 20) -> List[Dict[str, Any]]:
        """
        Return raw order dicts in the given statuses. Raises UpstreamError on
        HTTP or network failure; returns [] when credentials are not configured.
        """
        if not self.configured:
            logger.warning("WooCommerce credentials not configured, skipping poll")
            return []
        req = urllib.request.Request(
            self.orders_url(statuses, per_page),
            headers={"Authorization": self._auth_header(), "Accept": "application/json"},
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            raise UpstreamError(f"WooCommerce API error: {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise UpstreamError(f"WooCommerce API unreachable: {e}") from e
        try:
            data = json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise UpstreamError(f"WooCommerce API returned invalid JSON: {e}") from e
        if not isinstance(data, list):
            raise UpstreamError("WooCommerce API returned a non-list order response")
        return [o for o in data if isinstance(o, dict)]


class OrderPoller:
    def __init__(
        self,
        client: OrderSourceClient,
        store: Store,
        reconciler: Reconciler,
        interval: float = 60.0,
    ):
        self.client = client
        self.store = store
        self.reconciler = reconciler
        self.interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def poll_once(self) -> int:
        """
        One poll cycle. Returns how many new orders were imported.
        """
        try:
            orders = self.client.fetch_printable(self.reconciler.printable_statuses)
        except Exception as e:
            logger.error("Polling error: %s", e)
            return 0

        imported = 0
        for raw in orders:
            external_id = raw.get("id")
            try:
                if self.store.get_order_by_external_id(int(external_id)) is not None:
                    continue
                logger.info("Polling: found new order %s", raw.get("number", external_id))
                if self.reconciler.import_order(raw).created:
                    imported += 1
            except Exception as e:
                logger.exception(f"Polling: failed to import order {external_id}: {e}")
        return imported

    def _run(self) -> None:
        while True:
            self.poll_once()
            if self._stop.wait(self.interval):
                break

    @property
    def running(self) -> bool:
        return bool(self._thread) and self._thread.is_alive()  # type: ignore[union-attr]

    def start(self) -> None:
        """Poll now and then every `interval` seconds on a daemon thread (idempotent)."""
        if self.running:
            return
        self._stop.clear()
        t = threading.Thread(target=self._run, daemon=True, name="print-bridge-poller")
        t.start()
        self._thread = t
        logger.info("Starting WooCommerce polling fallback every %.0fs", self.interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Stopped WooCommerce polling fallback")


__all__ = ["OrderPoller", "OrderSourceClient"]
