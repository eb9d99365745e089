"""Site lookups against the PostgreSQL database of registered sites."""

from __future__ import annotations

from typing import Any

from clutterpaper.clickhouse import Storage, StorageError


class PostgresStorage(Storage):
    """Answers whether a site ID is registered, using a DB-API connection."""

    query = "SELECT EXISTS(SELECT 1 FROM sites WHERE id = %s)"

    def __init__(self, connection: Any) -> None:
        self._connection = connection

    def site_id_exists(self, site_id: str) -> bool:
        """Return True when the ``sites`` table holds ``site_id``."""
        try:
            cursor = self._connection.cursor()
            try:
                cursor.execute(self.query, (site_id,))
                row = cursor.fetchone()
            finally:
                cursor.close()
        except Exception as exc:
            raise StorageError(f"failed to check if site ID exists: {exc}") from exc

        if row is None:
            raise StorageError("failed to check if site ID exists: no row returned")
        return bool(row[0])

    def close(self) -> None:
        """Close the underlying connection."""
        self._connection.close()