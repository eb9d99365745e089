# clutterpaper

A small WSGI application that collects page-view events for websites. Each
event's site id is checked against the set of known sites, and accepted
events are buffered in memory and written to ClickHouse in batches.

## Endpoints

- `POST /api/event` takes a JSON object with the string fields
  `visitor_user_agent`, `site_id`, `referrer` and `page`. Field names are
  matched without regard to case, `null` counts as an empty string, and any
  other field is rejected. `visitor_user_agent`, `site_id` and `page` must
  not be blank. On success the answer is
  `{"message":"Data received successfully"}` with status 200.
  - a method other than `POST` gets `405 Invalid request method`;
  - a body that is not such a JSON object, or has a blank required field,
    gets `400 Invalid JSON: <reason>`;
  - a failure of Redis or PostgreSQL while checking the site id gets
    `400 Invalid Site ID`;
  - a failure to write to ClickHouse gets `500 Failed to store event: <reason>`.
- Every other path answers `Hello, World!` with status 200.

Every response carries permissive CORS headers (`Access-Control-Allow-Origin: *`
and friends). `OPTIONS` requests are answered at once with status 200 and an
empty body. All other requests are logged to standard output when they arrive
(`[INC] ...`) and when their response is done (`[OUT] ...`, with status,
body size and duration in milliseconds).

## How events are handled

- `clutterpaper.common.check_site_id` first looks the site id up in the Redis
  set `site_ids`. If it is not there, PostgreSQL is asked
  (`SELECT EXISTS(SELECT 1 FROM sites WHERE id = %s)`), and a site found there
  is added to the Redis set. An unknown site id that both stores report as
  absent is not an error; only a store failure raises `SiteCheckError`.
- The visitor address is the `X-Forwarded-For` header, or the peer address
  (`host:port`) when that header is absent.
- `ClickHouseStorage` queues events and writes them inside one transaction,
  all stamped with the same `created_on` time, when the batch reaches its
  size, every `flush_interval` seconds (when positive) from a background
  thread, and on `close()`. On construction it runs `SELECT 1` and creates
  the `events` table if it does not exist; failures raise `StorageError`.

## Using it

The ClickHouse and PostgreSQL stores take ready-made DB-API connections.
ClickHouse inserts use the `?` parameter style, PostgreSQL lookups the `%s`
style, so pick drivers that accept those. Redis is reached through the
`redis` library.

```python
from clutterpaper.clickhouse import ClickHouseStorage
from clutterpaper.postgres import PostgresStorage
from clutterpaper.redis_store import RedisStorage
from clutterpaper.server import start

clickhouse_connection = ...  # a DB-API connection to ClickHouse
postgres_connection = ...    # a DB-API connection to PostgreSQL

clickhouse = ClickHouseStorage(clickhouse_connection, 500, 15.0)
redis = RedisStorage.from_url("redis://localhost:6379/0")
postgres = PostgresStorage(postgres_connection)

try:
    start("0.0.0.0", 8080, clickhouse, redis, postgres)
finally:
    clickhouse.close()
    redis.close()
    postgres.close()
```

`start` serves with Werkzeug's threaded development server (an empty address
means `0.0.0.0`); if the socket cannot be opened it prints
`Server failed to start: ...` and returns.

To run the application under another WSGI server, build it with
`create_app`:

```python
from clutterpaper.common import Server
from clutterpaper.server import create_app

app = create_app(Server(clickhouse=clickhouse, redis=redis, postgres=postgres))
```

`ClickHouseStorage` is also a context manager; leaving the `with` block stops
the flush thread, writes any queued events and closes the connection.

## What it does not do

There is no command-line program and no configuration loading: addresses,
ports and database locations are passed in by your own code. The package
opens no ClickHouse or PostgreSQL connections itself, and it does not create
or fill the `sites` table in PostgreSQL.