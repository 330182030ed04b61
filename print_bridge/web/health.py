from __future__ import annotations

"""
Health and printer endpoints for Print Bridge.

- GET  /healthz                 : overall status, worker/queue status, store and printer reachability
- GET  /api/printer/status      : TCP probe of the configured printer
- POST /api/printer/test-print  : print the test page now (shares the device slot with the worker)
"""

from typing import Any, Dict

from flask import Blueprint, current_app, jsonify

from . import schemas
from .common import get_services

health_bp = Blueprint("health", __name__)


@health_bp.get("/healthz")
def healthz():
    services = get_services()
    status: Dict[str, Any] = {"status": "ok"}
    status.update(services.scheduler.status())

    status["database_ok"] = services.store.ping()
    if not status["database_ok"]:
        status["status"] = "degraded"
        status["reason"] = "database_unavailable"

    try:
        status["printer_ok"] = services.scheduler.probe()
    except Exception as e:
        current_app.logger.warning("Printer probe failed: %s", e)
        status["printer_ok"] = False
    if not status["printer_ok"] and status["status"] == "ok":
        status["status"] = "degraded"
        status["reason"] = "printer_unreachable"

    if not status.get("worker_alive") and status["status"] == "ok":
        status["status"] = "degraded"
        status["reason"] = "worker_stopped"

    return status, 200


@health_bp.get("/api/printer/status")
def printer_status():
    services = get_services()
    settings = services.settings_provider()
    connected = services.scheduler.probe()
    body = schemas.ProbeResponse(connected=connected, address=settings.printer_ip, port=settings.printer_port)
    return jsonify(body.model_dump())


@health_bp.post("/api/printer/test-print")
def printer_test_print():
    result = get_services().scheduler.print_test_page()
    if result.ok:
        current_app.logger.info("Test print sent in %.2fs", result.elapsed)
        return jsonify({"success": True})
    current_app.logger.warning("Test print failed: %s", result.message)
    return jsonify({"success": False, "error": result.message}), 502
