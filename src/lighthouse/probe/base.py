"""
Base class for probers.
"""

from __future__ import annotations

import ipaddress
import shutil
from abc import ABC, abstractmethod

from .._types import Observation
from ..errors import ProbeFailed


def parse_cidr(cidr: str) -> ipaddress.IPv4Network:
    """Parse an IPv4 CIDR target, raising ProbeFailed when it is invalid."""
    try:
        return ipaddress.IPv4Network(cidr.strip(), strict=False)
    except (ValueError, AttributeError) as e:
        raise ProbeFailed(f"invalid network {cidr!r}: {e}") from e


class Prober(ABC):
    """
    Base class for discovery mechanisms.

    A scan is synchronous and may take minutes. Implementations raise
    ProbeFailed when the mechanism itself fails, so callers can tell a
    broken scan apart from an empty network.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Name of this prober."""
        pass

    @abstractmethod
    def scan(self, cidr: str) -> list[Observation]:
        """
        Scan a network.

        Returns list of observed devices.
        """
        pass

    def is_available(self) -> bool:
        """Check if this prober can run on this host."""
        return True

    @staticmethod
    def _which(executable: str) -> bool:
        return shutil.which(executable) is not None
