"""WSGI event ingestion for website analytics, with batched ClickHouse storage and site checks via Redis and PostgreSQL."""

__version__ = "0.1.0"