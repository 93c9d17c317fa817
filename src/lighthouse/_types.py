"""
Type definitions for lighthouse.

These dataclasses define the domain model for device presence tracking:
persisted devices, raw probe observations, detected networks and the
derived summaries returned by the presence API.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def now_utc() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(timezone.utc)


def clean_field(value: Optional[str]) -> Optional[str]:
    """Normalize an optional string field: empty or blank means unknown."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class ScanStatus(str, Enum):
    """Scan lifecycle status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class Network:
    """A local IPv4 network reachable through one interface."""
    interface: str
    ip: str    # Address of this host on the network
    cidr: str  # Network address, e.g. 192.168.1.0/24

    def to_dict(self) -> dict:
        return {"interface": self.interface, "ip": self.ip, "cidr": self.cidr}


@dataclass
class Observation:
    """
    One raw probe result for a single address.

    Observations are partial: only the IP is guaranteed. Empty strings
    are normalized to None so "unknown" has a single representation.
    """
    ip_address: str
    mac_address: Optional[str] = None
    hostname: Optional[str] = None
    vendor: Optional[str] = None

    def __post_init__(self) -> None:
        self.ip_address = self.ip_address.strip()
        self.mac_address = clean_field(self.mac_address)
        self.hostname = clean_field(self.hostname)
        self.vendor = clean_field(self.vendor)


@dataclass
class Device:
    """
    A device ever observed on the network, keyed by IP address.

    `online` is only set by observations and only cleared by the
    staleness sweep.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ip_address: str = ""
    mac_address: Optional[str] = None
    hostname: Optional[str] = None
    vendor: Optional[str] = None
    online: bool = True
    first_seen_at: datetime = field(default_factory=now_utc)
    last_seen_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ip_address": self.ip_address,
            "mac_address": self.mac_address,
            "hostname": self.hostname,
            "vendor": self.vendor,
            "online": self.online,
            "first_seen_at": self.first_seen_at.isoformat(),
            "last_seen_at": self.last_seen_at.isoformat(),
        }


@dataclass(frozen=True)
class DeviceStats:
    """Device counts at query time. offline is always total - online."""
    total: int = 0
    online: int = 0

    @property
    def offline(self) -> int:
        return self.total - self.online

    def to_dict(self) -> dict:
        return {"total": self.total, "online": self.online, "offline": self.offline}


@dataclass
class ImportResult:
    """Outcome of saving a batch of observations."""
    attempted: int = 0
    saved: int = 0
    new: int = 0
    failed_ips: list[str] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failed_ips)


@dataclass
class ScanResult:
    """Result of a network scan operation."""
    scan_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    network: Optional[str] = None
    interface: Optional[str] = None
    started_at: datetime = field(default_factory=now_utc)
    completed_at: Optional[datetime] = None

    # Results
    devices_found: int = 0
    devices_saved: int = 0
    new_devices: int = 0
    failed_ips: list[str] = field(default_factory=list)

    # Status
    status: ScanStatus = ScanStatus.RUNNING
    error_message: Optional[str] = None
    triggered_by: str = "manual"  # manual, api, cli

    def to_dict(self) -> dict:
        return {
            "scan_id": self.scan_id,
            "network": self.network,
            "interface": self.interface,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "devices_found": self.devices_found,
            "devices_saved": self.devices_saved,
            "new_devices": self.new_devices,
            "failed_ips": list(self.failed_ips),
            "status": self.status.value,
            "error_message": self.error_message,
            "triggered_by": self.triggered_by,
        }
