"""Tests for device store operations."""

import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from lighthouse.device_store import DeviceStore
from lighthouse.errors import PersistenceError


class FakeClock:
    """Controllable clock for staleness tests."""

    def __init__(self):
        self.now = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    """Open a store in a temporary directory."""
    s = DeviceStore(tmp_path / "lighthouse.db", clock=clock)
    s.open()
    yield s
    s.close()


def snapshot(store: DeviceStore) -> list[tuple]:
    return [
        (d.id, d.ip_address, d.mac_address, d.hostname, d.vendor, d.online, d.first_seen_at, d.last_seen_at)
        for d in store.list_all()
    ]


class TestLifecycle:
    """Tests for opening and closing the store."""

    def test_open_creates_database(self, tmp_path):
        """Should create parent directories and the schema."""
        db_path = tmp_path / "nested" / "dir" / "lighthouse.db"
        store = DeviceStore(db_path).open()

        assert db_path.exists()
        assert store.is_open
        assert store.list_all() == []

    def test_context_manager(self, tmp_path):
        """Should open on enter and close on exit."""
        with DeviceStore(tmp_path / "lighthouse.db") as store:
            assert store.is_open
            store.upsert("10.0.0.1")

        assert not store.is_open

    def test_closed_store_raises(self, tmp_path):
        """Operations on a closed store should raise PersistenceError."""
        store = DeviceStore(tmp_path / "lighthouse.db")

        with pytest.raises(PersistenceError):
            store.upsert("10.0.0.1")
        with pytest.raises(PersistenceError):
            store.list_all()

    def test_open_failure_raises_persistence_error(self, tmp_path):
        """A path that cannot hold a database should fail to open."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(PersistenceError):
            DeviceStore(blocker / "lighthouse.db").open()

    def test_data_survives_reopen(self, tmp_path):
        """Devices should persist across store handles."""
        db_path = tmp_path / "lighthouse.db"
        with DeviceStore(db_path) as store:
            store.upsert("10.0.0.1", hostname="nas")

        with DeviceStore(db_path) as store:
            device = store.get_device_by_ip("10.0.0.1")

        assert device is not None
        assert device.hostname == "nas"


class TestUpsert:
    """Tests for recording observations."""

    def test_insert_new_device(self, store, clock):
        """First observation should create an online device."""
        is_new = store.upsert("192.168.1.10", "aa:bb:cc:dd:ee:ff", "laptop", "Apple")

        assert is_new is True
        device = store.get_device_by_ip("192.168.1.10")
        assert device.mac_address == "aa:bb:cc:dd:ee:ff"
        assert device.hostname == "laptop"
        assert device.vendor == "Apple"
        assert device.online is True
        assert device.first_seen_at == clock.now
        assert device.last_seen_at == clock.now
        assert device.id

    def test_empty_strings_stored_as_unknown(self, store):
        """Empty optional fields should be stored as None."""
        store.upsert("192.168.1.10", "", "", "")

        device = store.get_device_by_ip("192.168.1.10")
        assert device.mac_address is None
        assert device.hostname is None
        assert device.vendor is None

    def test_update_existing_device(self, store, clock):
        """Later observations should bump last_seen_at but keep first_seen_at and id."""
        store.upsert("192.168.1.10", hostname="laptop")
        original = store.get_device_by_ip("192.168.1.10")

        clock.advance(minutes=3)
        is_new = store.upsert("192.168.1.10", hostname="laptop")

        assert is_new is False
        device = store.get_device_by_ip("192.168.1.10")
        assert device.id == original.id
        assert device.first_seen_at == original.first_seen_at
        assert device.last_seen_at == clock.now

    def test_merge_keeps_learned_fields(self, store):
        """Empty fields never erase known values; non-empty fields fill gaps."""
        store.upsert("10.0.0.5", mac="", hostname="printer", vendor="")
        store.upsert("10.0.0.5", mac="AA:BB:CC:DD:EE:FF", hostname="", vendor="HP")

        device = store.get_device_by_ip("10.0.0.5")
        assert device.mac_address == "AA:BB:CC:DD:EE:FF"
        assert device.hostname == "printer"
        assert device.vendor == "HP"

    @pytest.mark.parametrize("stored", [None, "old"])
    @pytest.mark.parametrize("incoming", [None, "", "new"])
    def test_merge_rule_for_every_combination(self, store, stored, incoming):
        """Stored value is replaced only by a non-empty incoming value."""
        store.upsert("10.0.0.9", mac=stored, hostname=stored, vendor=stored)
        store.upsert("10.0.0.9", mac=incoming, hostname=incoming, vendor=incoming)

        expected = incoming if incoming else stored
        device = store.get_device_by_ip("10.0.0.9")
        assert device.mac_address == expected
        assert device.hostname == expected
        assert device.vendor == expected

    def test_non_empty_value_replaces_non_empty(self, store):
        """A new hostname should replace an old one."""
        store.upsert("10.0.0.5", hostname="printer")
        store.upsert("10.0.0.5", hostname="printer-2nd-floor")

        assert store.get_device_by_ip("10.0.0.5").hostname == "printer-2nd-floor"

    def test_one_device_per_ip(self, store):
        """Repeated upserts of the same IP should never duplicate rows."""
        for hostname in ["a", "", "b", None, "c"]:
            store.upsert("10.0.0.1", hostname=hostname)
        store.upsert(" 10.0.0.1 ")
        store.upsert("10.0.0.2")

        ips = [d.ip_address for d in store.list_all()]
        assert sorted(ips) == ["10.0.0.1", "10.0.0.2"]

    def test_requires_ip(self, store):
        """Should reject observations without an IP."""
        with pytest.raises(ValueError):
            store.upsert("")

    def test_concurrent_upserts_and_sweeps(self, store):
        """Threads merging, sweeping and counting at once lose no device or field."""
        threads_count = 8
        per_thread = 30
        barrier = threading.Barrier(threads_count)
        errors = []

        def mac_for(n):
            return f"aa:bb:cc:00:00:{n:02x}"

        def worker(t):
            try:
                barrier.wait(5)
                last_total = 0
                for i in range(per_thread):
                    n = (t * per_thread + i) % 90
                    # Even threads know the MAC, odd threads only the hostname
                    if t % 2 == 0:
                        store.upsert(f"10.0.0.{n}", mac=mac_for(n))
                    else:
                        store.upsert(f"10.0.0.{n}", hostname=f"host-{t}")
                    store.sweep_stale(10)

                    stats = store.stats()
                    assert 0 <= stats.online <= stats.total
                    assert stats.offline == stats.total - stats.online
                    assert stats.total >= last_total
                    last_total = stats.total
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(t,)) for t in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(60)

        assert errors == []
        devices = store.list_all()
        assert len(devices) == 90
        assert len({d.ip_address for d in devices}) == 90
        for device in devices:
            n = int(device.ip_address.rsplit(".", 1)[1])
            assert device.mac_address == mac_for(n)
            assert device.online is True
        stats = store.stats()
        assert (stats.total, stats.online) == (90, 90)

    def test_last_seen_never_moves_backwards(self, store, clock):
        """A clock step backwards should not break first_seen <= last_seen."""
        store.upsert("10.0.0.1")
        clock.advance(minutes=-5)
        store.upsert("10.0.0.1")

        device = store.get_device_by_ip("10.0.0.1")
        assert device.first_seen_at <= device.last_seen_at


class TestSweepStale:
    """Tests for the staleness sweep."""

    def test_marks_old_devices_offline(self, store, clock):
        """Devices not seen within the threshold should go offline."""
        store.upsert("10.0.0.1")
        clock.advance(minutes=5)
        store.upsert("10.0.0.2")
        clock.advance(minutes=6)

        swept = store.sweep_stale(10)

        assert swept == 1
        assert store.get_device_by_ip("10.0.0.1").online is False
        assert store.get_device_by_ip("10.0.0.2").online is True

    def test_recent_devices_stay_online(self, store, clock):
        """A device seen exactly at the threshold is not stale."""
        store.upsert("10.0.0.1")
        clock.advance(minutes=10)

        assert store.sweep_stale(10) == 0
        assert store.get_device_by_ip("10.0.0.1").online is True

    def test_sweep_is_idempotent(self, store, clock):
        """Two sweeps without new observations leave identical state."""
        store.upsert("10.0.0.1", hostname="old")
        clock.advance(minutes=30)
        store.upsert("10.0.0.2", hostname="fresh")

        store.sweep_stale(10)
        after_first = snapshot(store)
        swept_again = store.sweep_stale(10)
        after_second = snapshot(store)

        assert swept_again == 0
        assert after_first == after_second

    def test_sweep_keeps_last_seen(self, store, clock):
        """Sweeping should not touch timestamps or learned fields."""
        store.upsert("10.0.0.1", mac="aa:bb:cc:dd:ee:ff")
        before = store.get_device_by_ip("10.0.0.1")
        clock.advance(hours=2)

        store.sweep_stale(10)

        after = store.get_device_by_ip("10.0.0.1")
        assert after.online is False
        assert after.last_seen_at == before.last_seen_at
        assert after.mac_address == "aa:bb:cc:dd:ee:ff"

    def test_observation_revives_offline_device(self, store, clock):
        """An upsert brings an offline device back online immediately."""
        store.upsert("10.0.0.1")
        clock.advance(days=30)
        store.sweep_stale(10)
        assert store.get_device_by_ip("10.0.0.1").online is False

        store.upsert("10.0.0.1")

        assert store.get_device_by_ip("10.0.0.1").online is True

    def test_zero_threshold(self, store, clock):
        """A zero threshold marks everything not seen right now offline."""
        store.upsert("10.0.0.1")
        clock.advance(seconds=1)

        assert store.sweep_stale(0) == 1

    def test_negative_threshold_rejected(self, store):
        with pytest.raises(ValueError):
            store.sweep_stale(-1)


class TestListAll:
    """Tests for listing devices."""

    def test_empty_store(self, store):
        assert store.list_all() == []

    def test_online_first_then_by_ip(self, store, clock):
        """Online devices come first, each group ordered by IP string."""
        store.upsert("10.0.0.2")
        clock.advance(minutes=20)
        store.upsert("10.0.0.3")
        store.upsert("10.0.0.1")
        store.sweep_stale(10)

        ips = [d.ip_address for d in store.list_all()]

        assert ips == ["10.0.0.1", "10.0.0.3", "10.0.0.2"]

    def test_ip_order_is_lexicographic(self, store):
        """IP ordering compares strings, not numeric addresses."""
        for ip in ["10.0.0.9", "10.0.0.10", "10.0.0.100"]:
            store.upsert(ip)

        ips = [d.ip_address for d in store.list_all()]

        assert ips == ["10.0.0.10", "10.0.0.100", "10.0.0.9"]


class TestStats:
    """Tests for device statistics."""

    def test_empty_stats(self, store):
        stats = store.stats()
        assert (stats.total, stats.online, stats.offline) == (0, 0, 0)

    def test_counts(self, store, clock):
        """Offline should always be total minus online."""
        store.upsert("10.0.0.1")
        store.upsert("10.0.0.2")
        clock.advance(minutes=15)
        store.upsert("10.0.0.3")
        store.sweep_stale(10)

        stats = store.stats()

        assert stats.total == 3
        assert stats.online == 1
        assert stats.offline == 2
        assert stats.total == stats.online + stats.offline


class TestSchema:
    """Tests for the persisted layout."""

    def test_ip_address_unique_constraint(self, store):
        """The table itself should reject duplicate IPs."""
        store.upsert("10.0.0.1")

        conn = sqlite3.connect(str(store.db_path))
        try:
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO devices (id, ip_address, first_seen_at, last_seen_at) VALUES ('x', '10.0.0.1', '', '')"
                )
        finally:
            conn.close()

    def test_unparseable_timestamps_use_store_clock(self, store, clock):
        """Corrupt timestamps fall back to the injected clock."""
        conn = sqlite3.connect(str(store.db_path))
        try:
            conn.execute(
                "INSERT INTO devices (id, ip_address, first_seen_at, last_seen_at) "
                "VALUES ('x', '10.0.0.9', 'garbage', 'garbage')"
            )
            conn.commit()
        finally:
            conn.close()

        device = store.get_device_by_ip("10.0.0.9")

        assert device.first_seen_at == clock.now
        assert device.last_seen_at == clock.now

    def test_write_failure_raises_persistence_error(self, store):
        """A failed write should surface as PersistenceError."""
        conn = sqlite3.connect(str(store.db_path))
        try:
            conn.execute("DROP TABLE devices")
            conn.commit()
        finally:
            conn.close()

        with pytest.raises(PersistenceError):
            store.upsert("10.0.0.1")
