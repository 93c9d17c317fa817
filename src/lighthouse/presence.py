"""
Presence service - the query and scan surface used by the CLI and API.

Every read sweeps stale devices offline first, so callers never see a
device reported online long after it disappeared.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional

from ._types import (
    Device,
    DeviceStats,
    ImportResult,
    Network,
    Observation,
    ScanResult,
    ScanStatus,
    now_utc,
)
from .config import LighthouseConfig
from .device_store import DeviceStore
from .errors import NoNetworkFound, PersistenceError, ProbeFailed, ScanInProgress
from .network import NetworkEnumerator
from .probe import Prober, build_prober

logger = logging.getLogger(__name__)

DEFAULT_STALE_MINUTES = 10


class PresenceService:
    """
    Presence API over a device store.

    Orchestrates network detection, probing and storage of observations,
    and serves swept snapshots of the device inventory.
    """

    def __init__(
        self,
        store: DeviceStore,
        enumerator: NetworkEnumerator,
        prober: Prober,
        stale_after_minutes: int = DEFAULT_STALE_MINUTES,
    ):
        """
        Initialize presence service.

        Args:
            store: Open device store
            enumerator: Local network detection
            prober: Discovery mechanism used by run_scan
            stale_after_minutes: Devices not seen for this long are reported offline
        """
        if stale_after_minutes < 0:
            raise ValueError(f"Staleness threshold must be >= 0, got {stale_after_minutes}")

        self.store = store
        self.enumerator = enumerator
        self.prober = prober
        self.stale_after_minutes = stale_after_minutes

        self.last_scan: Optional[ScanResult] = None
        self._scan_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: LighthouseConfig, store: DeviceStore) -> "PresenceService":
        """Build a service from configuration around an already open store."""
        return cls(
            store=store,
            enumerator=NetworkEnumerator(
                preferred_interfaces=config.preferred_interfaces,
                skip_prefixes=config.skip_interface_prefixes,
            ),
            prober=build_prober(config),
            stale_after_minutes=config.stale_after_minutes,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def sweep(self) -> int:
        """Mark devices not seen within the threshold offline."""
        return self.store.sweep_stale(self.stale_after_minutes)

    def get_devices(self) -> list[Device]:
        """Sweep, then list all devices (online first)."""
        self.sweep()
        return self.store.list_all()

    def get_stats(self) -> DeviceStats:
        """Sweep, then count devices."""
        self.sweep()
        return self.store.stats()

    def get_networks(self) -> list[Network]:
        return self.enumerator.list_networks()

    def primary_network(self) -> Network:
        return self.enumerator.primary_network()

    # -------------------------------------------------------------------------
    # Scanning
    # -------------------------------------------------------------------------

    @property
    def scan_running(self) -> bool:
        return self._scan_lock.locked()

    def try_begin_scan(self) -> bool:
        """
        Reserve the scan slot without blocking.

        Returns False when a scan is already running. On True the caller
        must follow up with run_scan(..., lock_held=True), which releases it.
        """
        return self._scan_lock.acquire(blocking=False)

    def import_observations(
        self,
        observations: Iterable[Observation],
        on_saved: Optional[Callable[[Observation], None]] = None,
    ) -> ImportResult:
        """
        Save each observation independently.

        A failure to save one device is logged and counted; the rest of
        the batch is still saved.
        """
        result = ImportResult()

        for observation in observations:
            result.attempted += 1
            try:
                is_new = self.store.upsert(
                    observation.ip_address,
                    mac=observation.mac_address,
                    hostname=observation.hostname,
                    vendor=observation.vendor,
                )
            except (PersistenceError, ValueError) as e:
                logger.error(f"Failed to save {observation.ip_address}: {e}")
                result.failed_ips.append(observation.ip_address)
                continue

            result.saved += 1
            if is_new:
                result.new += 1
                logger.info(f"New device: {observation.ip_address} ({observation.hostname or 'unknown'})")
            if on_saved:
                on_saved(observation)

        return result

    def run_scan(
        self,
        cidr: Optional[str] = None,
        triggered_by: str = "manual",
        on_saved: Optional[Callable[[Observation], None]] = None,
        lock_held: bool = False,
    ) -> ScanResult:
        """
        Scan a network and store what was found.

        Scans the primary network when no CIDR is given. Blocks until the
        probe finishes. Any error propagates after being recorded on
        last_scan as a failed scan.

        Args:
            lock_held: The scan slot was already taken with try_begin_scan
        """
        if not lock_held and not self._scan_lock.acquire(blocking=False):
            raise ScanInProgress(cidr)
        try:
            return self._run_scan(cidr, triggered_by, on_saved)
        finally:
            self._scan_lock.release()

    def _run_scan(
        self,
        cidr: Optional[str],
        triggered_by: str,
        on_saved: Optional[Callable[[Observation], None]],
    ) -> ScanResult:
        result = ScanResult(network=cidr, triggered_by=triggered_by)
        self.last_scan = result

        try:
            if cidr is None:
                primary = self.enumerator.primary_network()
                result.network = primary.cidr
                result.interface = primary.interface
                logger.info(f"Auto-detected network {primary.cidr} on {primary.interface}")

            logger.info(f"Starting {self.prober.name} scan of {result.network} (id={result.scan_id})")
            observations = self.prober.scan(result.network)

            unique = self._dedupe_by_ip(observations)
            imported = self.import_observations(unique, on_saved=on_saved)

        except (NoNetworkFound, ProbeFailed) as e:
            self._mark_failed(result, e)
            logger.error(f"Scan failed: {e}")
            raise
        except Exception as e:
            self._mark_failed(result, e)
            logger.exception(f"Scan failed unexpectedly: {e}")
            raise

        result.devices_found = len(unique)
        result.devices_saved = imported.saved
        result.new_devices = imported.new
        result.failed_ips = imported.failed_ips
        result.status = ScanStatus.COMPLETED
        result.completed_at = now_utc()

        logger.info(
            f"Scan completed: {result.devices_found} devices found, "
            f"{result.devices_saved} saved, {result.new_devices} new"
        )
        if imported.failed:
            logger.warning(f"{imported.failed} of {imported.attempted} devices could not be saved")

        return result

    def _mark_failed(self, result: ScanResult, error: Exception) -> None:
        result.status = ScanStatus.FAILED
        result.error_message = str(error) or type(error).__name__
        result.completed_at = now_utc()

    def _dedupe_by_ip(self, observations: list[Observation]) -> list[Observation]:
        """Deduplicate observations by IP, preferring richer data."""
        by_ip: dict[str, Observation] = {}

        for observation in observations:
            ip = observation.ip_address
            if ip in by_ip:
                existing = by_ip[ip]
                if not existing.mac_address and observation.mac_address:
                    existing.mac_address = observation.mac_address
                if not existing.hostname and observation.hostname:
                    existing.hostname = observation.hostname
                if not existing.vendor and observation.vendor:
                    existing.vendor = observation.vendor
            else:
                by_ip[ip] = observation

        return list(by_ip.values())
