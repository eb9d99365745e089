import time
from datetime import datetime

import pytest

from clutterpaper.clickhouse import (
    ClickHouseStorage,
    EventData,
    Storage,
    StorageError,
)


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection

    def execute(self, statement, params=()):
        for marker in self.connection.fail_on:
            if marker in statement:
                raise RuntimeError("boom")
        self.connection.executed.append((statement, tuple(params)))

    def close(self):
        pass


class FakeConnection:
    def __init__(self, fail_on=()):
        self.fail_on = list(fail_on)
        self.executed = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def rollback(self):
        self.rollbacks += 1

    def close(self):
        self.closed = True

    def inserts(self):
        return [p for s, p in self.executed if "INSERT INTO events" in s]


def make_event(n=0):
    return EventData(
        visitor_ip=f"10.0.0.{n}",
        visitor_user_agent="agent",
        site_id="site",
        referrer="ref",
        page=f"/page/{n}",
    )


def test_startup_creates_events_table():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 5, 0)
    statements = [s for s, _ in conn.executed]
    assert any("CREATE TABLE IF NOT EXISTS events" in s for s in statements)
    assert isinstance(storage, Storage)


def test_ping_failure_raises():
    conn = FakeConnection(fail_on=["SELECT 1"])
    with pytest.raises(StorageError, match="failed to ping ClickHouse"):
        ClickHouseStorage(conn, 5, 0)


def test_table_creation_failure_raises():
    conn = FakeConnection(fail_on=["CREATE TABLE"])
    with pytest.raises(StorageError, match="failed to ensure tables"):
        ClickHouseStorage(conn, 5, 0)


def test_events_wait_until_batch_is_full():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 3, 0)
    storage.insert_event(make_event(1))
    storage.insert_event(make_event(2))
    assert conn.inserts() == []
    assert conn.commits == 0
    storage.insert_event(make_event(3))
    assert len(conn.inserts()) == 3
    assert conn.commits == 1


def test_insert_parameters_in_column_order():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 10, 0)
    storage.insert_event(make_event(7))
    storage.flush()
    (params,) = conn.inserts()
    assert params[:4] == ("10.0.0.7", "agent", "site", "ref")
    assert isinstance(params[4], datetime)
    assert params[5] == "/page/7"


def test_batch_shares_one_timestamp():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 10, 0)
    for n in range(4):
        storage.insert_event(make_event(n))
    storage.flush()
    assert len({p[4] for p in conn.inserts()}) == 1


def test_flush_of_empty_batch_does_nothing():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 10, 0)
    storage.flush()
    assert conn.commits == 0
    assert conn.inserts() == []


def test_flush_clears_batch():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 10, 0)
    storage.insert_event(make_event(1))
    storage.flush()
    storage.flush()
    assert len(conn.inserts()) == 1
    assert conn.commits == 1


def test_failed_insert_rolls_back_and_keeps_batch():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 10, 0)
    storage.insert_event(make_event(1))
    conn.fail_on.append("INSERT INTO events")
    with pytest.raises(StorageError, match="failed to execute statement"):
        storage.flush()
    assert conn.rollbacks == 1
    assert conn.commits == 0
    conn.fail_on.clear()
    storage.flush()
    assert [p[5] for p in conn.inserts()] == ["/page/1"]


def test_close_flushes_and_closes_connection():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 10, 0)
    storage.insert_event(make_event(2))
    storage.close()
    assert len(conn.inserts()) == 1
    assert conn.closed is True


def test_close_reports_flush_failure():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 10, 0)
    storage.insert_event(make_event(2))
    conn.fail_on.append("INSERT INTO events")
    with pytest.raises(StorageError, match="failed to flush events on close"):
        storage.close()
    assert conn.closed is False


def test_context_manager_closes():
    conn = FakeConnection()
    with ClickHouseStorage(conn, 10, 0) as storage:
        storage.insert_event(make_event(3))
    assert conn.closed is True
    assert len(conn.inserts()) == 1


def test_periodic_flush_writes_pending_events():
    conn = FakeConnection()
    storage = ClickHouseStorage(conn, 100, 0.02)
    storage.insert_event(make_event(4))
    deadline = time.monotonic() + 3
    while not conn.inserts() and time.monotonic() < deadline:
        time.sleep(0.01)
    storage.close()
    assert len(conn.inserts()) == 1
    assert conn.closed is True