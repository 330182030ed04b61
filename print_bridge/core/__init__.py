"""
Core utilities for Print Bridge.

This package groups the non-Flask building blocks:
- config: config path, JSON load/save, Settings and env-driven tunables
- logging: request-id aware filters/formatters and root logger config
- errors: the exception hierarchy
- models: Order / PrintJob records and the DocumentKind / JobStatus enums
- db: the SQLite Store

Exports are explicit to keep static analyzers (e.g., Pyright) happy.
"""

from .config import (
    SchedulerConfig,
    Settings,
    UpstreamConfig,
    default_config_path,
    get_config_path,
    load_config,
    load_settings,
    save_config,
)
from .db import Store, get_db_path
from .errors import (
    AuthenticityError,
    ExhaustedRetriesError,
    JobStateError,
    NotFoundError,
    PrintBridgeError,
    TransientDeliveryError,
    UpstreamError,
    ValidationError,
)
from .logging import JsonFormatter, RequestIdFilter, configure_logging
from .models import DocumentKind, ImportResult, JobStatus, LineItem, Order, PrintJob, Variation

__all__ = [
    # config
    "SchedulerConfig",
    "Settings",
    "UpstreamConfig",
    "default_config_path",
    "get_config_path",
    "load_config",
    "load_settings",
    "save_config",
    # db
    "Store",
    "get_db_path",
    # errors
    "AuthenticityError",
    "ExhaustedRetriesError",
    "JobStateError",
    "NotFoundError",
    "PrintBridgeError",
    "TransientDeliveryError",
    "UpstreamError",
    "ValidationError",
    # logging
    "JsonFormatter",
    "RequestIdFilter",
    "configure_logging",
    # models
    "DocumentKind",
    "ImportResult",
    "JobStatus",
    "LineItem",
    "Order",
    "PrintJob",
    "Variation",
]
