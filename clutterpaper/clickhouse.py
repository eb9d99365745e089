"""Batched event storage backed by a ClickHouse DB-API connection."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

_TABLE_SCHEMAS = (
    """
    CREATE TABLE IF NOT EXISTS events (
        id UUID DEFAULT generateUUIDv4(),
        visitor_ip String,
        visitor_user_agent String,
        site_id String,
        referrer String,
        created_on DateTime,
        page String,
        PRIMARY KEY (id)
    ) ENGINE = MergeTree()
    """,
)

_INSERT_EVENT = """
    INSERT INTO events (
        visitor_ip,
        visitor_user_agent,
        site_id,
        referrer,
        created_on,
        page
    ) VALUES (
        ?, ?, ?, ?, ?, ?
    )
"""


class StorageError(Exception):
    """Raised when a storage backend fails."""


class Storage(ABC):
    """A backend holding resources that must be released."""

    @abstractmethod
    def close(self) -> None:
        """Release the backend's resources."""


@dataclass(frozen=True)
class EventData:
    """One page-view event as it is stored."""

    visitor_ip: str
    visitor_user_agent: str
    site_id: str
    referrer: str
    page: str


class ClickHouseStorage(Storage):
    """Collects events in memory and writes them to ClickHouse in batches.

    A batch is written when it reaches ``batch_size`` events, on every
    ``flush_interval`` seconds (when positive), and on close.
    """

    def __init__(self, connection: Any, batch_size: int, flush_interval: float) -> None:
        self._connection = connection
        self._batch_size = batch_size
        self._batch: list[EventData] = []
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

        try:
            self._execute("SELECT 1")
        except Exception as exc:
            raise StorageError(f"failed to ping ClickHouse: {exc}") from exc

        try:
            self._ensure_tables()
        except StorageError as exc:
            raise StorageError(f"failed to ensure tables: {exc}") from exc

        if flush_interval > 0:
            self._thread = threading.Thread(
                target=self._flush_periodically, args=(flush_interval,), daemon=True
            )
            self._thread.start()

    def _execute(self, statement: str) -> None:
        cursor = self._connection.cursor()
        try:
            cursor.execute(statement)
        finally:
            cursor.close()

    def _ensure_tables(self) -> None:
        for schema in _TABLE_SCHEMAS:
            try:
                self._execute(schema)
            except Exception as exc:
                raise StorageError(f"failed to create table: {exc}") from exc

    def _flush_periodically(self, interval: float) -> None:
        while not self._stop.wait(interval):
            try:
                self.flush()
            except StorageError as exc:
                print(f"Error flushing batch: {exc}")

    def insert_event(self, data: EventData) -> None:
        """Queue an event, writing the batch once it is full."""
        with self._lock:
            self._batch.append(data)
            if len(self._batch) >= self._batch_size:
                self._flush_locked()

    def flush(self) -> None:
        """Write every queued event."""
        with self._lock:
            self._flush_locked()

    def _flush_locked(self) -> None:
        if not self._batch:
            return

        try:
            cursor = self._connection.cursor()
        except Exception as exc:
            raise StorageError(f"failed to begin transaction: {exc}") from exc

        now = datetime.now()
        try:
            for event in self._batch:
                try:
                    cursor.execute(
                        _INSERT_EVENT,
                        (
                            event.visitor_ip,
                            event.visitor_user_agent,
                            event.site_id,
                            event.referrer,
                            now,
                            event.page,
                        ),
                    )
                except Exception as exc:
                    self._connection.rollback()
                    raise StorageError(f"failed to execute statement: {exc}") from exc
        finally:
            cursor.close()

        try:
            self._connection.commit()
        except Exception as exc:
            raise StorageError(f"failed to commit transaction: {exc}") from exc

        self._batch.clear()

    def close(self) -> None:
        """Stop the periodic flush, write what is left and close the connection."""
        if self._thread is not None:
            self._stop.set()
            self._thread.join()
            self._thread = None

        try:
            self.flush()
        except StorageError as exc:
            raise StorageError(f"failed to flush events on close: {exc}") from exc

        self._connection.close()

    def __enter__(self) -> ClickHouseStorage:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()