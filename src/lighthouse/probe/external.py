"""
External discovery process.

Runs a scanner program with the target CIDR as its only argument and
expects a JSON array on its output:

    [{"ip": "192.168.1.1", "mac": "aa:bb:cc:dd:ee:ff", "hostname": "router", "vendor": "Netgear"}]

Only "ip" is required.
"""

from __future__ import annotations

import json
import logging
import subprocess
from typing import Optional

from .._types import Observation
from ..errors import ProbeFailed
from .base import Prober, parse_cidr

logger = logging.getLogger(__name__)


class ExternalProber(Prober):
    """Discover devices by invoking an external scanner program."""

    def __init__(self, command: list[str], timeout: Optional[float] = None):
        """
        Initialize external prober.

        Args:
            command: Program and leading arguments; the CIDR is appended
            timeout: Kill the program after this many seconds (None waits forever)
        """
        if not command:
            raise ValueError("External prober needs a command")
        self.command = list(command)
        self.timeout = timeout

    @property
    def name(self) -> str:
        return "external"

    def is_available(self) -> bool:
        return self._which(self.command[0])

    def scan(self, cidr: str) -> list[Observation]:
        network = parse_cidr(cidr)
        cmd = self.command + [str(network)]
        logger.debug(f"Running probe: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise ProbeFailed(f"probe executable not found: {self.command[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise ProbeFailed(f"probe timed out after {self.timeout}s") from e
        except OSError as e:
            raise ProbeFailed(f"could not start probe: {e}") from e

        output = result.stdout or ""
        if result.returncode != 0:
            raise ProbeFailed(f"probe exited with status {result.returncode}", output=output)

        return self.parse_output(output)

    @staticmethod
    def parse_output(output: str) -> list[Observation]:
        """Parse the probe's JSON array into observations."""
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ProbeFailed(f"failed to parse scan results: {e}", output=output) from e

        # "null" means nothing was found
        if data is None:
            return []
        if not isinstance(data, list):
            raise ProbeFailed("scan results are not a JSON array", output=output)

        observations = []
        for entry in data:
            if not isinstance(entry, dict) or not isinstance(entry.get("ip"), str) or not entry["ip"].strip():
                raise ProbeFailed(f"scan result entry without ip: {entry!r}", output=output)

            observations.append(Observation(
                ip_address=entry["ip"],
                mac_address=_as_str(entry.get("mac")),
                hostname=_as_str(entry.get("hostname")),
                vendor=_as_str(entry.get("vendor")),
            ))

        return observations


def _as_str(value) -> Optional[str]:
    if value is None:
        return None
    return str(value)
