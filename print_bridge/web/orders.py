from __future__ import annotations

"""
Order endpoints for Print Bridge.

Endpoints:
- GET  /api/orders/<order_id>         : Stored order with its print jobs
- POST /api/orders/<order_id>/reprint : Queue new jobs; body {"kind": "receipt|kitchen|both"}
"""

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError as PydanticValidationError

from print_bridge.core.errors import NotFoundError

from . import schemas
from .common import get_services, json_error, register_error_handlers

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")
register_error_handlers(orders_bp)


@orders_bp.get("/<int:order_id>")
def order_detail(order_id: int):
    services = get_services()
    order = services.store.get_order(order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    body = order.to_dict()
    body["print_jobs"] = [j.to_dict() for j in services.store.list_jobs_for_order(order_id)]
    return jsonify(body)


@orders_bp.post("/<int:order_id>/reprint")
def order_reprint(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        req = schemas.ReprintRequest.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        return json_error(first.get("msg") or str(e), 400)
    jobs = get_services().reconciler.reprint(order_id, req.kind)
    current_app.logger.info("POST /api/orders/%d/reprint kind=%s jobs=%d", order_id, req.kind, len(jobs))
    return jsonify({"success": True, "jobs": [j.to_dict() for j in jobs]})
