"""
Raw TCP session to a network receipt printer (port 9100 style).

send():  connect, write the whole payload, wait a short drain window so slow
         firmware can consume its buffer, half-close the write side, then wait
         for the printer to close the connection. That close is the success
         signal.
probe(): connect and hang up immediately; no bytes are written.

Both block the calling thread for their full duration. Failures are returned,
not raised, so the scheduler can account for them as ordinary attempts.
"""

from __future__ import annotations

import logging
import socket
import time
from dataclasses import dataclass
from typing import Optional

from print_bridge.core.errors import TransientDeliveryError

logger = logging.getLogger(__name__)

SEND_TIMEOUT = 10.0
DRAIN_WINDOW = 0.5
PROBE_TIMEOUT = 3.0


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    error: Optional[TransientDeliveryError] = None
    elapsed: float = 0.0

    @property
    def message(self) -> Optional[str]:
        return str(self.error) if self.error else None


def send(
    address: str,
    port: int,
    data: bytes,
    *,
    timeout: float = SEND_TIMEOUT,
    drain: float = DRAIN_WINDOW,
) -> DeliveryResult:
    """
    Deliver `data` to address:port. `timeout` bounds the connect and every
    subsequent wait on the socket (idle timeout).
    """
    started = time.monotonic()
    try:
        with socket.create_connection((address, int(port)), timeout=timeout) as sock:
            sock.sendall(data)
            if drain > 0:
                time.sleep(drain)
            sock.shutdown(socket.SHUT_WR)
            # Printers do not answer; anything they send back is discarded.
            while sock.recv(1024):
                pass
    except socket.timeout:
        err = TransientDeliveryError(f"Printer connection timeout ({address}:{port})")
        logger.warning("send to %s:%s timed out after %.1fs", address, port, time.monotonic() - started)
        return DeliveryResult(False, err, time.monotonic() - started)
    except OSError as e:
        err = TransientDeliveryError(f"Printer connection error ({address}:{port}): {e}")
        logger.warning("send to %s:%s failed: %s", address, port, e)
        return DeliveryResult(False, err, time.monotonic() - started)

    elapsed = time.monotonic() - started
    logger.info("Sent %d bytes to %s:%s in %.2fs", len(data), address, port, elapsed)
    return DeliveryResult(True, None, elapsed)


def probe(address: str, port: int, *, timeout: float = PROBE_TIMEOUT) -> bool:
    """
    True when a TCP connection to address:port opens within `timeout`.
    """
    try:
        with socket.create_connection((address, int(port)), timeout=timeout):
            return True
    except OSError as e:
        logger.debug("probe %s:%s failed: %s", address, port, e)
        return False


__all__ = ["DRAIN_WINDOW", "DeliveryResult", "PROBE_TIMEOUT", "SEND_TIMEOUT", "probe", "send"]
