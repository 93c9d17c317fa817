"""
Device store for lighthouse.

SQLite database holding one row per IP address ever observed. Merges
partial observations into device records, tracks first/last seen times
and the online flag, and answers list/stats queries.

Every operation opens its own connection, so one store handle can be
shared between the CLI, the HTTP handlers and scan worker threads.
Writes run in IMMEDIATE transactions; WAL mode keeps readers on a
consistent snapshot while a write is in flight.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional

from ._types import Device, DeviceStats, clean_field, now_utc
from .errors import PersistenceError

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS devices (
    id TEXT PRIMARY KEY,
    ip_address TEXT NOT NULL UNIQUE,
    mac_address TEXT,
    hostname TEXT,
    vendor TEXT,
    online BOOLEAN NOT NULL DEFAULT 1,
    first_seen_at TEXT NOT NULL,
    last_seen_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_devices_mac ON devices(mac_address);
CREATE INDEX IF NOT EXISTS idx_devices_online ON devices(online);
"""


def _iso_format(dt: datetime) -> str:
    """
    Format datetime as a fixed-width UTC ISO string.

    Fixed width keeps string comparison in SQL equal to time comparison.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse ISO datetime string."""
    if not s:
        return None
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        return None


class DeviceStore:
    """
    SQLite store for device presence.

    Open it once at startup, pass the handle to whoever needs it and
    close it at shutdown. All failures surface as PersistenceError.
    """

    def __init__(
        self,
        db_path: Path | str = "./data/lighthouse.db",
        clock: Callable[[], datetime] = now_utc,
    ):
        self.db_path = Path(db_path)
        self._clock = clock
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "DeviceStore":
        """Create the database and schema if needed."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create directory for {self.db_path}: {e}") from e

        with self._get_connection() as conn:
            conn.executescript(SCHEMA)
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")

        self._open = True
        logger.debug(f"Device store opened at {self.db_path}")
        return self

    def close(self) -> None:
        """Close the store. Later calls raise PersistenceError."""
        if self._open:
            logger.debug(f"Device store closed at {self.db_path}")
        self._open = False

    def __enter__(self) -> "DeviceStore":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory, in autocommit mode."""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0, isolation_level=None)
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open {self.db_path}: {e}") from e

        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as e:
            raise PersistenceError(f"Device store error: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block in a write transaction, rolling back on error."""
        if not self._open:
            raise PersistenceError("Device store is not open")

        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        if not self._open:
            raise PersistenceError("Device store is not open")
        with self._get_connection() as conn:
            yield conn

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert(
        self,
        ip: str,
        mac: Optional[str] = None,
        hostname: Optional[str] = None,
        vendor: Optional[str] = None,
    ) -> bool:
        """
        Record an observation of a device.

        Creates the device on first sight. Otherwise marks it online,
        bumps last_seen_at and fills in any field the observation knows;
        an empty field never erases a stored value.

        Returns: True if a new device was created.
        """
        ip = (ip or "").strip()
        if not ip:
            raise ValueError("IP address is required")

        now = _iso_format(self._clock())

        with self._transaction() as conn:
            existing = conn.execute(
                "SELECT 1 FROM devices WHERE ip_address = ?", (ip,)
            ).fetchone()

            conn.execute("""
                INSERT INTO devices (
                    id, ip_address, mac_address, hostname, vendor,
                    online, first_seen_at, last_seen_at
                ) VALUES (?, ?, ?, ?, ?, 1, ?, ?)
                ON CONFLICT(ip_address) DO UPDATE SET
                    mac_address = COALESCE(excluded.mac_address, devices.mac_address),
                    hostname = COALESCE(excluded.hostname, devices.hostname),
                    vendor = COALESCE(excluded.vendor, devices.vendor),
                    online = 1,
                    last_seen_at = MAX(devices.last_seen_at, excluded.last_seen_at)
            """, (
                str(uuid.uuid4()),
                ip,
                clean_field(mac),
                clean_field(hostname),
                clean_field(vendor),
                now,
                now,
            ))

        return existing is None

    def sweep_stale(self, threshold_minutes: int) -> int:
        """
        Mark devices offline when not seen within the threshold.

        Returns: number of devices that went offline.
        """
        if threshold_minutes < 0:
            raise ValueError(f"Staleness threshold must be >= 0, got {threshold_minutes}")

        cutoff = _iso_format(self._clock() - timedelta(minutes=threshold_minutes))

        with self._transaction() as conn:
            cursor = conn.execute("""
                UPDATE devices SET online = 0
                WHERE online = 1 AND last_seen_at < ?
            """, (cutoff,))
            swept = cursor.rowcount

        if swept:
            logger.info(f"Marked {swept} device(s) offline (not seen in {threshold_minutes} min)")
        return swept

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_all(self) -> list[Device]:
        """Get all devices, online first, then by IP address."""
        with self._reader() as conn:
            rows = conn.execute("""
                SELECT * FROM devices
                ORDER BY online DESC, ip_address ASC
            """).fetchall()
            return [self._row_to_device(row) for row in rows]

    def get_device_by_ip(self, ip_address: str) -> Optional[Device]:
        """Get device by IP address."""
        with self._reader() as conn:
            row = conn.execute(
                "SELECT * FROM devices WHERE ip_address = ?", (ip_address,)
            ).fetchone()
            if row:
                return self._row_to_device(row)
            return None

    def stats(self) -> DeviceStats:
        """Get total and online counts from a single snapshot."""
        with self._reader() as conn:
            row = conn.execute("""
                SELECT COUNT(*) AS total, COALESCE(SUM(online), 0) AS online
                FROM devices
            """).fetchone()
            return DeviceStats(total=row["total"], online=row["online"])

    def _row_to_device(self, row: sqlite3.Row) -> Device:
        """Convert database row to Device object."""
        first_seen = _parse_datetime(row["first_seen_at"]) or self._clock()
        return Device(
            id=row["id"],
            ip_address=row["ip_address"],
            mac_address=row["mac_address"],
            hostname=row["hostname"],
            vendor=row["vendor"],
            online=bool(row["online"]),
            first_seen_at=first_seen,
            last_seen_at=_parse_datetime(row["last_seen_at"]) or first_seen,
        )
