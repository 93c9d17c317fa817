"""
Probers for network discovery.

Each prober implements the same interface:
- scan(cidr) -> list[Observation]

Probers:
- External: run a scanner program that prints a JSON array
- Nmap: ping sweep through python-nmap
- ARP: read the local ARP cache
"""

from __future__ import annotations

from ..config import LighthouseConfig
from .base import Prober, parse_cidr
from .external import ExternalProber
from .nmap_probe import NmapProber
from .arp_probe import ARPCacheProber


def build_prober(config: LighthouseConfig) -> Prober:
    """Prober factory: returns the prober selected in the configuration."""
    if config.probe == "external":
        return ExternalProber(config.probe_command, timeout=config.probe_timeout_seconds)
    if config.probe == "nmap":
        return NmapProber(arguments=config.nmap_arguments)
    if config.probe == "arp":
        return ARPCacheProber()
    raise ValueError(f"Unsupported probe type: {config.probe}")


__all__ = [
    "Prober",
    "parse_cidr",
    "build_prober",
    "ExternalProber",
    "NmapProber",
    "ARPCacheProber",
]
