"""
Helpers shared by the Print Bridge blueprints.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from print_bridge.core.errors import JobStateError, NotFoundError, ValidationError
from print_bridge.services import Services

EXTENSION_KEY = "print_bridge"


def get_services() -> Services:
    """
    The Services instance the current app was created with.
    """
    return current_app.extensions[EXTENSION_KEY]


def json_error(msg: str, code: int = 400):
    return jsonify({"error": msg}), code


def register_error_handlers(bp: Blueprint) -> None:
    """Map core exceptions to JSON error responses for every route in `bp`."""

    @bp.errorhandler(NotFoundError)
    def _not_found(e: NotFoundError):
        return json_error(str(e), 404)

    @bp.errorhandler(JobStateError)
    def _conflict(e: JobStateError):
        return json_error(str(e), 409)

    @bp.errorhandler(ValidationError)
    def _invalid(e: ValidationError):
        return json_error(str(e), 400)


__all__ = ["EXTENSION_KEY", "get_services", "json_error", "register_error_handlers"]
