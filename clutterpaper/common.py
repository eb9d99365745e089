"""State shared by the request handlers and the site ID check."""

from __future__ import annotations

from dataclasses import dataclass

from clutterpaper.clickhouse import ClickHouseStorage, StorageError
from clutterpaper.postgres import PostgresStorage
from clutterpaper.redis_store import RedisStorage


class SiteCheckError(Exception):
    """Raised when a store fails while a site ID is checked."""


@dataclass
class Server:
    """The storage backends a request handler works with."""

    clickhouse: ClickHouseStorage
    redis: RedisStorage
    postgres: PostgresStorage


def check_site_id(site_id: str, server: Server) -> None:
    """Check the Redis cache, then PostgreSQL, caching a site found there."""
    stage = "redis check failed"
    try:
        if server.redis.site_id_exists(site_id):
            return
        stage = "postgres check failed"
        if server.postgres.site_id_exists(site_id):
            stage = "failed to cache site ID"
            server.redis.add_site_id(site_id)
    except StorageError as exc:
        raise SiteCheckError(f"{stage}: {exc}") from exc