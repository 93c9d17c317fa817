"""
Lighthouse - local network device discovery and presence tracking.

Discovers devices on the local network and keeps a durable view of which
of them are currently reachable:

    NetworkEnumerator  - finds the local networks to scan
    Prober             - runs a scan and returns raw observations
    DeviceStore        - merges observations into device records (SQLite)
    PresenceService    - swept device lists and stats for the CLI and API
"""

__version__ = "0.1.0"

from ._types import (
    Device,
    DeviceStats,
    ImportResult,
    Network,
    Observation,
    ScanResult,
    ScanStatus,
)
from .errors import (
    LighthouseError,
    NoNetworkFound,
    PersistenceError,
    ProbeFailed,
    ScanInProgress,
)

__all__ = [
    "__version__",
    "Device",
    "DeviceStats",
    "ImportResult",
    "Network",
    "Observation",
    "ScanResult",
    "ScanStatus",
    "LighthouseError",
    "NoNetworkFound",
    "PersistenceError",
    "ProbeFailed",
    "ScanInProgress",
]
