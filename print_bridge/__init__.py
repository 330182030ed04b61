"""
Print Bridge package

Bridges WooCommerce orders to a network receipt/kitchen printer.

This module provides an application factory with minimal wiring:
- Configures logging via print_bridge.core.logging
- Builds (or accepts) the Services: store, scheduler, reconciler, webhook handler, poller
- Creates a Flask app, initializes CSRF protection and exempts the JSON API blueprints
- Registers the webhook, print job, order and health blueprints
- Optionally starts the print worker and the polling fallback
"""

from __future__ import annotations

import logging
import os
import uuid
from typing import Optional

from flask import Flask, g
from flask_wtf import CSRFProtect

from print_bridge.services import Services, build_services

csrf = CSRFProtect()

logger = logging.getLogger(__name__)


def _default_secret_key() -> str:
    return os.environ.get("PRINTBRIDGE_SECRET_KEY", "printbridge_dev_secret_key")


def _set_request_id() -> None:
    """
    Assign a request ID for logging if not set by a filter elsewhere.
    """
    g.request_id = getattr(g, "request_id", uuid.uuid4().hex)


def create_app(
    config_overrides: Optional[dict] = None,
    services: Optional[Services] = None,
    register_worker: bool = True,
    enable_polling: bool = True,
) -> Flask:
    """
    Application factory.

    Parameters:
    - config_overrides: values to inject into app.config after defaults
    - services: prebuilt Services (tests pass their own store/sender); built from env when None
    - register_worker: if True, starts the print worker (and the poller, see below)
    - enable_polling: if True and WooCommerce credentials are configured, starts the poller

    Returns:
    - Flask app instance
    """
    from print_bridge.core.logging import configure_logging
    from print_bridge.web import health_bp, jobs_bp, orders_bp, webhooks_bp
    from print_bridge.web.common import EXTENSION_KEY

    configure_logging()

    app = Flask("print_bridge")
    app.secret_key = _default_secret_key()
    app.config["MAX_CONTENT_LENGTH"] = int(os.environ.get("PRINTBRIDGE_MAX_CONTENT_LENGTH", 1024 * 1024))  # 1 MiB

    csrf.init_app(app)

    # Strict slashes off for more forgiving routing
    app.url_map.strict_slashes = False

    services = services or build_services()
    app.extensions[EXTENSION_KEY] = services

    @app.before_request
    def _before_request():
        _set_request_id()

    # JSON API and webhooks carry no CSRF token; the webhook is authenticated by its signature.
    for bp in (webhooks_bp, jobs_bp, orders_bp, health_bp):
        csrf.exempt(bp)
        app.register_blueprint(bp)
        app.logger.debug("Registered blueprint: %s", bp.name)

    if register_worker:
        services.start(poll=enable_polling)
        app.logger.info("Print worker started")

    if config_overrides:
        app.config.update(config_overrides)

    app.logger.info("Print Bridge app created")
    return app


__all__ = ["create_app", "csrf"]
