"""
Connectivity probe used to enforce the Wi-Fi-only upload policy.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass, field
from typing import Optional, Sequence

import psutil

DEFAULT_WIFI_PREFIXES = ("wl", "wifi", "wi-fi", "airport")


@dataclass
class NetworkProbe:
    """Report whether the machine currently has a usable wireless connection.

    Interfaces count as Wi-Fi when their name starts with one of
    ``wifi_prefixes`` (case-insensitive) or is listed in ``wifi_interfaces``.
    """

    wifi_interfaces: Sequence[str] = ()
    wifi_prefixes: Sequence[str] = DEFAULT_WIFI_PREFIXES
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("backup_uploader"))

    def is_wifi_connected(self) -> bool:
        stats = psutil.net_if_stats()
        addresses = psutil.net_if_addrs()
        for name, stat in stats.items():
            if not stat.isup or not self._is_wifi_name(name):
                continue
            if self._has_ip_address(addresses.get(name, [])):
                return True
        self.logger.debug("No connected Wi-Fi interface among %s", sorted(stats))
        return False

    def network_type(self) -> Optional[str]:
        """Return 'wifi', 'other' or None when no interface is up."""
        if self.is_wifi_connected():
            return "wifi"
        stats = psutil.net_if_stats()
        addresses = psutil.net_if_addrs()
        for name, stat in stats.items():
            if name.lower().startswith("lo"):
                continue
            if stat.isup and self._has_ip_address(addresses.get(name, [])):
                return "other"
        return None

    def _is_wifi_name(self, name: str) -> bool:
        if name in self.wifi_interfaces:
            return True
        lowered = name.lower()
        return any(lowered.startswith(prefix.lower()) for prefix in self.wifi_prefixes)

    @staticmethod
    def _has_ip_address(addrs) -> bool:
        return any(addr.family in (socket.AF_INET, socket.AF_INET6) for addr in addrs)
