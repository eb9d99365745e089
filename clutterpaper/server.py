"""HTTP application wiring and the server entry point."""

from __future__ import annotations

from typing import Callable

from werkzeug import serving
from werkzeug.wrappers import Request, Response

from clutterpaper import log
from clutterpaper.clickhouse import ClickHouseStorage
from clutterpaper.common import Server
from clutterpaper.middlewares import cors, logger
from clutterpaper.postgres import PostgresStorage
from clutterpaper.redis_store import RedisStorage
from clutterpaper.routes import post_event


def create_app(server: Server) -> Callable:
    """Build the WSGI application, wrapped in logging and CORS middleware."""

    def app(environ, start_response):
        request = Request(environ)
        if request.path == "/api/event":
            response = post_event(request, server)
        else:
            response = Response("Hello, World!", status=200)
        return response(environ, start_response)

    return cors(logger(app))


def start(
    address: str,
    port: int,
    clickhouse: ClickHouseStorage,
    redis: RedisStorage,
    postgres: PostgresStorage,
) -> None:
    """Serve the API on ``address:port`` until the server stops."""
    app = create_app(Server(clickhouse=clickhouse, redis=redis, postgres=postgres))
    log.info(f"API server listening on {address}:{port}")
    try:
        serving.run_simple(address or "0.0.0.0", port, app, threaded=True)
    except OSError as exc:
        log.info(f"Server failed to start: {exc}")