"""
Explicit wiring of the bridge's long-lived objects.

build_services() constructs the store, scheduler, reconciler, webhook handler
and poller once; the Flask app keeps the result in app.extensions and every
blueprint reaches the same instances through it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from print_bridge.core.config import SchedulerConfig, Settings, UpstreamConfig, load_settings
from print_bridge.core.db import Store
from print_bridge.ingest.orders import Reconciler
from print_bridge.ingest.polling import OrderPoller, OrderSourceClient
from print_bridge.ingest.webhook import WebhookHandler
from print_bridge.printing.scheduler import Scheduler, Sender

logger = logging.getLogger(__name__)


@dataclass
class Services:
    store: Store
    scheduler: Scheduler
    reconciler: Reconciler
    webhooks: WebhookHandler
    poller: OrderPoller
    settings_provider: Callable[[], Settings]

    def start(self, poll: bool = True) -> None:
        self.scheduler.start()
        if poll and self.poller.client.configured:
            self.poller.start()

    def stop(self) -> None:
        self.poller.stop()
        self.scheduler.stop()


def build_services(
    db_path: Optional[str] = None,
    *,
    settings_provider: Callable[[], Settings] = load_settings,
    upstream: Optional[UpstreamConfig] = None,
    scheduler_config: Optional[SchedulerConfig] = None,
    sender: Optional[Sender] = None,
    client: Optional[OrderSourceClient] = None,
) -> Services:
    upstream = upstream or UpstreamConfig.from_env()
    store = Store(db_path)
    scheduler = Scheduler(store, settings_provider, config=scheduler_config, sender=sender)
    reconciler = Reconciler(store, scheduler)
    webhooks = WebhookHandler(store, reconciler, upstream.webhook_secret or None)
    poller = OrderPoller(client or OrderSourceClient.from_config(upstream), store, reconciler, upstream.poll_interval)
    if not upstream.webhook_secret:
        logger.warning("PRINTBRIDGE_WEBHOOK_SECRET is not set; every webhook will be rejected")
    return Services(store, scheduler, reconciler, webhooks, poller, settings_provider)


__all__ = ["Services", "build_services"]
