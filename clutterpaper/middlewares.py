"""WSGI middleware: permissive CORS headers and request logging."""

from __future__ import annotations

import sys
import time
from datetime import datetime
from typing import Callable, TextIO

_CORS_HEADERS = [
    ("Access-Control-Allow-Origin", "*"),
    ("Access-Control-Allow-Methods", "GET, POST, PUT, DELETE, OPTIONS"),
    ("Access-Control-Allow-Headers", "Content-Type, Authorization"),
    ("Access-Control-Allow-Credentials", "false"),
]


def cors(app: Callable) -> Callable:
    """Allow every origin, and answer preflight OPTIONS requests directly."""

    def middleware(environ, start_response):
        def start_with_cors(status, headers, exc_info=None):
            return start_response(status, _CORS_HEADERS + list(headers), exc_info)

        if environ.get("REQUEST_METHOD") == "OPTIONS":
            start_with_cors("200 OK", [("Content-Length", "0")])
            return []
        return app(environ, start_with_cors)

    return middleware


def _remote_addr(environ) -> str:
    host, port = environ.get("REMOTE_ADDR", ""), environ.get("REMOTE_PORT")
    if not port:
        return host
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


def logger(app: Callable, stream: TextIO | None = None) -> Callable:
    """Log each request when it arrives and again when its response is done."""

    def emit(tag: str, line: str) -> None:
        now = datetime.now().strftime("%Y/%m/%d %H:%M:%S")
        print(f"[{tag}] {now} {line}", file=stream or sys.stdout, flush=True)

    def middleware(environ, start_response):
        query = environ.get("QUERY_STRING")
        uri = environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "") or "/"
        if query:
            uri += f"?{query}"
        request_line = (
            f'"{environ.get("REQUEST_METHOD", "")} {uri} '
            f'{environ.get("SERVER_PROTOCOL", "")}" from {_remote_addr(environ)}'
        )
        emit("INC", request_line)
        started = time.monotonic()
        status_code, written = 200, 0

        def start_logged(status, headers, exc_info=None):
            nonlocal status_code
            status_code = int(status.split(" ", 1)[0])
            return start_response(status, headers, exc_info)

        result = app(environ, start_logged)

        def body():
            nonlocal written
            try:
                for chunk in result:
                    written += len(chunk)
                    yield chunk
            finally:
                if hasattr(result, "close"):
                    result.close()
                elapsed = (time.monotonic() - started) * 1000
                emit("OUT", f"{request_line} - {status_code} {written}B in {elapsed:.3f}ms")

        return body()

    return middleware