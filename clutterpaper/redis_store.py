"""Cache of known site IDs kept in a Redis set."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

import redis

from clutterpaper.clickhouse import Storage, StorageError

SITE_IDS_KEY = "site_ids"


@contextmanager
def _redis_errors(prefix: str = "") -> Iterator[None]:
    try:
        yield
    except (redis.RedisError, ValueError) as exc:
        raise StorageError(f"{prefix}{exc}") from exc


class RedisStorage(Storage):
    """Keeps the IDs of verified sites in a Redis set."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisStorage:
        """Connect to the Redis server at ``url`` and check that it answers."""
        with _redis_errors("failed to connect to Redis: "):
            client = redis.Redis.from_url(url)
            client.ping()
        return cls(client)

    def add_site_id(self, site_id: str) -> None:
        """Remember ``site_id`` as a known site."""
        with _redis_errors():
            self._client.sadd(SITE_IDS_KEY, site_id)

    def site_id_exists(self, site_id: str) -> bool:
        """Return True when ``site_id`` has been remembered."""
        with _redis_errors():
            return bool(self._client.sismember(SITE_IDS_KEY, site_id))

    def close(self) -> None:
        self._client.close()