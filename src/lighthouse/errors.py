"""
Exceptions raised by lighthouse.

None of these are retried automatically; callers decide whether to
re-run a scan or surface the failure.
"""

from __future__ import annotations

from typing import Optional


class LighthouseError(Exception):
    """Base exception for lighthouse errors."""
    pass


class NoNetworkFound(LighthouseError):
    """Interface enumeration produced no usable network."""
    pass


class ProbeFailed(LighthouseError):
    """The discovery mechanism errored or returned unparseable output."""

    def __init__(self, cause: str, output: str = ""):
        self.cause = cause
        self.output = output
        super().__init__(f"Probe failed: {cause}")


class PersistenceError(LighthouseError):
    """The device store is unavailable or a write failed."""
    pass


class ScanInProgress(LighthouseError):
    """A scan is already running on this service."""

    def __init__(self, network: Optional[str] = None):
        self.network = network
        super().__init__(f"Scan already in progress ({network or 'auto'})")
