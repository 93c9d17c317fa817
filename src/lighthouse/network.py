"""
Local network detection.

Lists the IPv4 networks this host is attached to, skipping loopback,
interfaces that are down and virtual/tunnel interfaces, and picks the
primary one to scan when no target is given.
"""

from __future__ import annotations

import ipaddress
import logging
import socket
from typing import Iterable, Optional

import psutil

from ._types import Network
from .config import DEFAULT_SKIP_PREFIXES
from .errors import NoNetworkFound

logger = logging.getLogger(__name__)


class NetworkEnumerator:
    """
    Enumerate local networks from the host's interfaces.

    Every call takes a fresh snapshot; nothing is cached.
    """

    def __init__(
        self,
        preferred_interfaces: Optional[Iterable[str]] = None,
        skip_prefixes: Optional[Iterable[str]] = None,
    ):
        """
        Initialize network enumerator.

        Args:
            preferred_interfaces: Interface names tried first when picking the primary network
            skip_prefixes: Interface name prefixes that are never scanned
        """
        self.preferred_interfaces = list(
            preferred_interfaces if preferred_interfaces is not None else ["en0"]
        )
        self.skip_prefixes = tuple(
            skip_prefixes if skip_prefixes is not None else DEFAULT_SKIP_PREFIXES
        )

    def skip_interface(self, name: str) -> bool:
        """Check if an interface is virtual, a bridge or a tunnel."""
        return name.lower().startswith(self.skip_prefixes)

    def list_networks(self) -> list[Network]:
        """
        Detect IPv4 networks on active, non-virtual interfaces.

        Returns networks in interface enumeration order.
        """
        networks = []
        iface_stats = psutil.net_if_stats()

        for iface, addrs in psutil.net_if_addrs().items():
            stats = iface_stats.get(iface)
            if not stats or not stats.isup:
                continue
            if self.skip_interface(iface):
                logger.debug(f"Skipping virtual interface {iface}")
                continue

            for addr in addrs:
                if addr.family != socket.AF_INET or not addr.address:
                    continue

                try:
                    ip = ipaddress.IPv4Address(addr.address)
                    if ip.is_loopback:
                        continue
                    mask = addr.netmask or "255.255.255.255"
                    network = ipaddress.IPv4Network(f"{addr.address}/{mask}", strict=False)
                except ValueError as e:
                    logger.debug(f"Ignoring address {addr.address} on {iface}: {e}")
                    continue

                networks.append(Network(
                    interface=iface,
                    ip=str(ip),
                    cidr=str(network),
                ))

        logger.debug(f"Detected {len(networks)} network(s)")
        return networks

    def primary_network(self) -> Network:
        """
        Pick the network to scan by default.

        Preference: configured interface names, then wireless (wlan*),
        then ethernet (eth*, en*), then whatever was found first.
        """
        networks = self.list_networks()
        if not networks:
            raise NoNetworkFound("No active IPv4 network detected")

        for name in self.preferred_interfaces:
            for net in networks:
                if net.interface == name:
                    return net

        for net in networks:
            if net.interface.startswith("wlan"):
                return net

        for net in networks:
            if net.interface.startswith(("eth", "en")):
                return net

        return networks[0]
