"""Connectivity gate — decides whether writes go to the server or the outbox."""

import logging
from typing import Callable, Optional

import httpx
import psutil

logger = logging.getLogger(__name__)


def has_network_interface() -> bool:
    """True when any non-loopback network interface is up."""
    try:
        stats = psutil.net_if_stats()
    except (OSError, RuntimeError) as e:
        logger.debug(f"Cannot read network interfaces: {e}")
        return False
    for name, stat in stats.items():
        if not stat.isup:
            continue
        if name == "lo" or name.lower().startswith("loopback"):
            continue
        return True
    return False


class ConnectivityGate:
    """Device network check followed by a reachability probe.

    Computed fresh on every call. The probe is ``GET {base_url}/web`` with a
    short timeout and only a 200 counts as reachable. Nothing here raises.
    """

    PROBE_PATH = "/web"

    def __init__(self, base_url: str, timeout: float = 5.0,
                 interface_check: Optional[Callable[[], bool]] = None,
                 transport: Optional[httpx.BaseTransport] = None):
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self._interface_check = interface_check or has_network_interface
        self._transport = transport

    def probe(self) -> bool:
        """Ask the server for its web entry point."""
        if not self.base_url:
            return False
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport,
                              follow_redirects=True) as http:
                response = http.get(f"{self.base_url}{self.PROBE_PATH}")
            return response.status_code == 200
        except Exception as e:
            logger.debug(f"Reachability probe to {self.base_url} failed: {e}")
            return False

    def is_online(self) -> bool:
        try:
            if not self._interface_check():
                logger.debug("No active network interface")
                return False
        except Exception as e:
            logger.debug(f"Interface check failed: {e}")
            return False
        return self.probe()
