"""
Nmap-based host discovery.

Runs an nmap ping sweep (no port scan) through python-nmap. MAC
addresses and vendors are only reported by nmap when it runs with
privileges on the local segment.
"""

from __future__ import annotations

import logging
from typing import Optional

import nmap

from .._types import Observation
from ..errors import ProbeFailed
from .base import Prober, parse_cidr

logger = logging.getLogger(__name__)


class NmapProber(Prober):
    """
    Discover live hosts with an nmap ping sweep.

    Hosts that nmap does not report as "up" are ignored.
    """

    def __init__(self, arguments: str = "-sn -T4", host_timeout: Optional[int] = None):
        """
        Initialize nmap prober.

        Args:
            arguments: nmap command arguments
            host_timeout: Timeout per host in seconds
        """
        self.arguments = arguments
        self.host_timeout = host_timeout

    @property
    def name(self) -> str:
        return "nmap"

    def is_available(self) -> bool:
        return self._which("nmap")

    def scan(self, cidr: str) -> list[Observation]:
        network = parse_cidr(cidr)

        args = self.arguments
        if self.host_timeout:
            args = f"{args} --host-timeout {self.host_timeout}s"

        try:
            scanner = nmap.PortScanner()
            logger.debug(f"Running nmap: {network} {args}")
            scanner.scan(hosts=str(network), arguments=args)
        except nmap.PortScannerError as e:
            raise ProbeFailed(f"nmap scan failed: {e}") from e

        observations = []
        for host in scanner.all_hosts():
            observation = self._parse_host(scanner[host], host)
            if observation:
                observations.append(observation)

        logger.info(f"Nmap sweep of {network} found {len(observations)} hosts")
        return observations

    def _parse_host(self, host_info, host: str) -> Optional[Observation]:
        """Parse nmap results for a single host."""
        if host_info.state() != "up":
            return None

        addresses = host_info.get("addresses", {})
        ip_address = addresses.get("ipv4") or host

        hostname = None
        for hn in host_info.get("hostnames", []):
            if hn.get("name"):
                hostname = hn["name"]
                break

        mac_address = addresses.get("mac")
        vendor = None
        if mac_address:
            vendor = host_info.get("vendor", {}).get(mac_address)

        return Observation(
            ip_address=ip_address,
            mac_address=mac_address,
            hostname=hostname,
            vendor=vendor,
        )
