"""
Config utilities for Print Bridge.

Responsibilities:
- Resolve the config path with environment and XDG support
- Provide JSON load/save helpers for the app's config
- Build the read-only Settings snapshot used by the encoder and transport
- Read upstream (order source) and scheduler tunables from the environment
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping, Optional


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name, default))
    except Exception:
        return default


def default_config_path() -> str:
    """
    Resolve the default config path using:
    1) $XDG_CONFIG_HOME/printbridge/config.json
    2) ~/.config/printbridge/config.json
    """
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return str(Path(xdg) / "printbridge" / "config.json")
    return str(Path.home() / ".config" / "printbridge" / "config.json")


def get_config_path() -> str:
    """
    Return the config path honoring PRINTBRIDGE_CONFIG_PATH override.
    """
    return os.environ.get("PRINTBRIDGE_CONFIG_PATH", default_config_path())


def load_config(path: Optional[str] = None) -> Optional[dict[str, Any]]:
    """
    Load the JSON config if it exists; return None if missing.

    Raises:
        json.JSONDecodeError if the file exists but contains invalid JSON.
        OSError for I/O errors other than missing file.
    """
    cfg_path = Path(path or get_config_path())
    if not cfg_path.exists():
        return None
    with cfg_path.open("r", encoding="utf-8") as f:
        return json.load(f)


def save_config(data: dict[str, Any], path: Optional[str] = None) -> None:
    """
    Save the JSON config, creating parent directories as needed.

    Writes atomically by using a temporary file and os.replace().
    Raises OSError on I/O failures.
    """
    cfg_path = Path(path or get_config_path())
    cfg_path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = cfg_path.with_suffix(cfg_path.suffix + ".tmp")
    with tmp_path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp_path, cfg_path)


@dataclass(frozen=True)
class Settings:
    """
    Printer address and display strings. Owned by the config file; the core only reads it.
    """

    printer_ip: str = "192.168.1.100"
    printer_port: int = 9100
    store_name: str = "My Store"
    store_address: str = ""
    store_phone: str = ""
    store_footer: str = "Thank you for your order!"
    receipt_width: int = 48
    kitchen_width: int = 42
    currency_symbol: str = "$"
    timezone: str = "UTC"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            printer_ip=os.environ.get("PRINTBRIDGE_PRINTER_IP", cls.printer_ip),
            printer_port=_env_int("PRINTBRIDGE_PRINTER_PORT", cls.printer_port),
            store_name=os.environ.get("PRINTBRIDGE_STORE_NAME", cls.store_name),
            store_address=os.environ.get("PRINTBRIDGE_STORE_ADDRESS", cls.store_address),
            store_phone=os.environ.get("PRINTBRIDGE_STORE_PHONE", cls.store_phone),
            store_footer=os.environ.get("PRINTBRIDGE_STORE_FOOTER", cls.store_footer),
            timezone=os.environ.get("PRINTBRIDGE_TIMEZONE", cls.timezone),
        )

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]], base: Optional["Settings"] = None) -> "Settings":
        """
        Overlay config-file values on top of `base` (env defaults when omitted).
        Unknown keys are ignored; int fields are coerced.
        """
        base = base or cls.from_env()
        values: dict[str, Any] = {}
        for f in fields(cls):
            current = getattr(base, f.name)
            raw = (data or {}).get(f.name)
            if raw is None or raw == "":
                values[f.name] = current
                continue
            if isinstance(current, int):
                try:
                    values[f.name] = int(str(raw))
                except ValueError:
                    values[f.name] = current
            else:
                values[f.name] = str(raw)
        return cls(**values)


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Current settings: env defaults overlaid with the JSON config file, if any.
    """
    return Settings.from_mapping(load_config(path))


@dataclass(frozen=True)
class UpstreamConfig:
    """Order source (WooCommerce REST API) and webhook credentials."""

    base_url: str = ""
    consumer_key: str = ""
    consumer_secret: str = ""
    webhook_secret: str = ""
    poll_interval: float = 60.0

    @classmethod
    def from_env(cls) -> "UpstreamConfig":
        return cls(
            base_url=os.environ.get("PRINTBRIDGE_WOO_URL", "").rstrip("/"),
            consumer_key=os.environ.get("PRINTBRIDGE_WOO_KEY", ""),
            consumer_secret=os.environ.get("PRINTBRIDGE_WOO_SECRET", ""),
            webhook_secret=os.environ.get("PRINTBRIDGE_WEBHOOK_SECRET", ""),
            poll_interval=_env_float("PRINTBRIDGE_POLL_INTERVAL", 60.0),
        )


@dataclass(frozen=True)
class SchedulerConfig:
    max_attempts: int = 5
    backoff_base: float = 5.0
    stale_after: float = 60.0

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        return cls(
            max_attempts=_env_int("PRINTBRIDGE_MAX_ATTEMPTS", 5),
            backoff_base=_env_float("PRINTBRIDGE_BACKOFF_BASE", 5.0),
            stale_after=_env_float("PRINTBRIDGE_STALE_AFTER", 60.0),
        )


__all__ = [
    "SchedulerConfig",
    "Settings",
    "UpstreamConfig",
    "default_config_path",
    "get_config_path",
    "load_config",
    "load_settings",
    "save_config",
]
