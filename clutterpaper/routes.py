"""The endpoint that receives page-view events."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields

from werkzeug.wrappers import Request, Response

from clutterpaper.clickhouse import EventData, StorageError
from clutterpaper.common import Server, SiteCheckError, check_site_id
from clutterpaper.middlewares import _remote_addr


@dataclass
class RequestData:
    """The JSON body of an event request."""

    visitor_user_agent: str = ""
    site_id: str = ""
    referrer: str = ""
    page: str = ""


_FIELD_NAMES = {field.name for field in fields(RequestData)}


def validate(data: RequestData) -> None:
    """Raise ValueError when a required field is blank."""
    for value, label in (
        (data.visitor_user_agent, "visitor user agent"),
        (data.site_id, "site ID"),
        (data.page, "page"),
    ):
        if not value.strip():
            raise ValueError(f"{label} is required")


def _decode(body: bytes) -> RequestData:
    text = body.decode("utf-8", errors="replace").lstrip(" \t\r\n")
    if not text:
        raise ValueError("EOF")
    try:
        value, _ = json.JSONDecoder().raw_decode(text)
    except json.JSONDecodeError as exc:
        raise ValueError(str(exc)) from exc
    if value is None:
        return RequestData()
    if not isinstance(value, dict):
        raise ValueError("json: cannot unmarshal into value of type RequestData")
    values = {}
    for key, item in value.items():
        name = key.lower()
        if name not in _FIELD_NAMES:
            raise ValueError(f'json: unknown field "{key}"')
        if item is not None and not isinstance(item, str):
            raise ValueError(f"json: cannot unmarshal into field {name} of type string")
        if item is not None:
            values[name] = item
    return RequestData(**values)


def _error(message: str, status: int) -> Response:
    return Response(
        message + "\n",
        status=status,
        content_type="text/plain; charset=utf-8",
        headers={"X-Content-Type-Options": "nosniff"},
    )


def post_event(request: Request, server: Server) -> Response:
    """Validate an event request and queue the event for storage."""
    if request.method != "POST":
        return _error("Invalid request method", 405)
    try:
        data = _decode(request.get_data())
        validate(data)
    except ValueError as exc:
        return _error(f"Invalid JSON: {exc}", 400)
    try:
        check_site_id(data.site_id, server)
    except SiteCheckError:
        return _error("Invalid Site ID", 400)

    event = EventData(
        visitor_ip=request.headers.get("X-Forwarded-For", "")
        or _remote_addr(request.environ),
        visitor_user_agent=data.visitor_user_agent,
        site_id=data.site_id,
        referrer=data.referrer,
        page=data.page,
    )
    try:
        server.clickhouse.insert_event(event)
    except StorageError as exc:
        return _error(f"Failed to store event: {exc}", 500)

    body = json.dumps({"message": "Data received successfully"}, separators=(",", ":"))
    return Response(body + "\n", status=200, content_type="application/json")