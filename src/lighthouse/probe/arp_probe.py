"""
ARP cache discovery.

Reads the local ARP cache to find hosts on the target network that have
communicated with this machine recently. Fast and unprivileged, but it
only sees hosts already in the cache.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import subprocess
from typing import Optional

from .._types import Observation
from ..errors import ProbeFailed
from .base import Prober, parse_cidr

logger = logging.getLogger(__name__)

# Matches both Linux and macOS formats:
#   ? (192.168.1.1) at aa:bb:cc:dd:ee:ff [ether] on eth0
#   gateway (192.168.88.1) at 0:50:56:c0:0:8 on en0 ifscope [ethernet]
ARP_LINE = re.compile(r"(?:(\S+)\s+)?\((\d+\.\d+\.\d+\.\d+)\)\s+at\s+([0-9a-fA-F:]+|\(incomplete\))")

# Common OUI prefixes
OUI_MAP = {
    "00:50:56": "VMware",
    "00:0c:29": "VMware",
    "08:00:27": "VirtualBox",
    "52:54:00": "QEMU/KVM",
    "00:1e:67": "HP",
    "3c:d9:2b": "HP",
    "f0:9f:c2": "Apple",
    "3c:22:fb": "Apple",
    "b8:27:eb": "Raspberry Pi",
    "dc:a6:32": "Raspberry Pi",
    "00:1b:63": "Cisco",
}


class ARPCacheProber(Prober):
    """Discover devices from the ARP cache."""

    def __init__(self, interface: Optional[str] = None, timeout: float = 10.0):
        """
        Initialize ARP cache prober.

        Args:
            interface: Network interface to query (None for all)
            timeout: Timeout for the arp command in seconds
        """
        self.interface = interface
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "arp"

    def is_available(self) -> bool:
        return self._which("arp")

    def scan(self, cidr: str) -> list[Observation]:
        network = parse_cidr(cidr)

        cmd = ["arp", "-an"]
        if self.interface:
            cmd.extend(["-i", self.interface])

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ProbeFailed("arp command not found") from e
        except subprocess.TimeoutExpired as e:
            raise ProbeFailed(f"arp timed out after {self.timeout}s") from e

        if result.returncode != 0:
            raise ProbeFailed(f"arp exited with status {result.returncode}", output=result.stderr)

        observations = []
        for line in result.stdout.splitlines():
            if not line.strip():
                continue
            observation = self._parse_arp_line(line)
            if observation and ipaddress.IPv4Address(observation.ip_address) in network:
                observations.append(observation)

        logger.info(f"ARP cache has {len(observations)} hosts in {network}")
        return observations

    def _parse_arp_line(self, line: str) -> Optional[Observation]:
        """Parse a single ARP output line."""
        match = ARP_LINE.search(line)
        if not match:
            return None

        hostname = match.group(1) if match.group(1) != "?" else None
        ip_address = match.group(2)
        mac_address = match.group(3).lower()

        # Skip incomplete and broadcast entries
        if mac_address in ("(incomplete)", "ff:ff:ff:ff:ff:ff"):
            return None

        mac_address = _normalize_mac(mac_address)

        return Observation(
            ip_address=ip_address,
            mac_address=mac_address,
            hostname=hostname,
            vendor=self._lookup_oui(mac_address),
        )

    def _lookup_oui(self, mac_address: str) -> Optional[str]:
        """Look up manufacturer from the first three MAC octets."""
        return OUI_MAP.get(mac_address.lower()[:8])


def _normalize_mac(mac: str) -> str:
    """Zero-pad octets; macOS prints 0:50:56:c0:0:8."""
    return ":".join(octet.zfill(2) for octet in mac.split(":"))
