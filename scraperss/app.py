"""HTTP API for users and their RSS feeds."""

from __future__ import annotations

import argparse
import functools
import json
import logging
import re
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional

from flask import Blueprint, Flask, Response, request

from scraperss.auth import AuthError, get_api_key
from scraperss.database import Database, DatabaseError, NoRowsError, User
from scraperss.models import feed_payload, feeds_payload, user_payload, users_payload
from scraperss.scrape import start_scraping

_log = logging.getLogger(__name__)

_ALLOWED_ORIGIN_PREFIXES = ("https://", "http://")
_ALLOWED_METHODS = frozenset(("POST", "GET", "PUT", "DELETE"))
_EXPOSED_HEADERS = "Link"
_CORS_MAX_AGE = "300"

_HTML_ESCAPES = {
    "<": "\\u003c",
    ">": "\\u003e",
    "&": "\\u0026",
    "\u2028": "\\u2028",
    "\u2029": "\\u2029",
}
_HTML_ESCAPE_RE = re.compile("[<>&\u2028\u2029]")
_HEX32 = re.compile(r"[0-9a-fA-F]{32}")
_HEX36 = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)


def _marshal(payload: Any) -> str:
    text = json.dumps(payload, separators=(",", ":"), ensure_ascii=False, allow_nan=False)
    return _HTML_ESCAPE_RE.sub(lambda match: _HTML_ESCAPES[match.group()], text)


def _body_allowed(code: int) -> bool:
    return not (100 <= code < 200 or code in (204, 304))


def respond_with_json(code: int, payload: Any) -> Response:
    """Serialise ``payload`` as JSON into a response with status ``code``."""
    try:
        body = _marshal(payload)
    except (TypeError, ValueError) as exc:
        _log.error("Failed to marshal JSON response: %s", exc)
        return Response(status=500)
    if not _body_allowed(code):
        body = ""
    return Response(body, status=code, content_type="application/json")


def respond_with_error(code: int, msg: str) -> Response:
    """Respond with ``{"error": msg}``; server errors are logged."""
    if code > 499:
        _log.error("Responding with 5XX error %s", msg)
    return respond_with_json(code, {"error": msg})


def _parse_uuid(text: str) -> uuid.UUID:
    size = len(text)
    if size == 32:
        if not _HEX32.fullmatch(text):
            raise ValueError("invalid UUID format")
        return uuid.UUID(hex=text)
    if size == 45:
        if text[:9].lower() != "urn:uuid:":
            raise ValueError(f"invalid urn prefix: {text[:9]!r}")
        text = text[9:]
    elif size == 38:
        if text[0] != "{" or text[-1] != "}":
            raise ValueError("invalid bracketed UUID format")
        text = text[1:-1]
    elif size != 36:
        raise ValueError(f"invalid UUID length: {size}")
    if not _HEX36.fullmatch(text):
        raise ValueError("invalid UUID format")
    return uuid.UUID(text)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid character {name[0]!r} looking for beginning of value")


def _json_kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "string"


def _decode_params(body: bytes, fields: tuple[str, ...]) -> dict[str, str]:
    """Decode the first JSON value of ``body`` into string ``fields``.

    Keys match fields case-insensitively; unknown keys are ignored and missing
    ones are left empty.
    """
    params = dict.fromkeys(fields, "")
    text = body.decode("utf-8", errors="replace").lstrip(" \t\r\n")
    if not text:
        raise ValueError("EOF")
    decoder = json.JSONDecoder(parse_constant=_reject_constant)
    try:
        value, _ = decoder.raw_decode(text)
    except json.JSONDecodeError as exc:
        raise ValueError(str(exc)) from exc
    if value is None:
        return params
    if not isinstance(value, dict):
        raise ValueError(
            f"cannot unmarshal {_json_kind(value)} into request parameters"
        )
    lowered = {field.lower(): field for field in fields}
    for key, item in value.items():
        field = lowered.get(key.lower())
        if field is None or item is None:
            continue
        if not isinstance(item, str):
            raise ValueError(
                f"cannot unmarshal {_json_kind(item)} into field {field} of type string"
            )
        params[field] = item
    return params


def _origin_allowed(origin: str) -> bool:
    return origin.lower().startswith(_ALLOWED_ORIGIN_PREFIXES)


def _method_allowed(method: str) -> bool:
    method = method.upper()
    return method == "OPTIONS" or method in _ALLOWED_METHODS


def _is_preflight() -> bool:
    return request.method == "OPTIONS" and bool(
        request.headers.get("Access-Control-Request-Method")
    )


def _canonical_header(name: str) -> str:
    return "-".join(part.capitalize() for part in name.strip().split("-"))


def _preflight() -> Response:
    response = Response(status=200)
    headers = response.headers
    headers.add("Vary", "Origin")
    headers.add("Vary", "Access-Control-Request-Method")
    headers.add("Vary", "Access-Control-Request-Headers")
    origin = request.headers.get("Origin", "")
    if not origin or not _origin_allowed(origin):
        return response
    method = request.headers.get("Access-Control-Request-Method", "").upper()
    if not _method_allowed(method):
        return response
    headers["Access-Control-Allow-Origin"] = origin
    headers["Access-Control-Allow-Methods"] = method
    requested = [
        _canonical_header(name)
        for name in request.headers.get("Access-Control-Request-Headers", "").split(",")
        if name.strip()
    ]
    if requested:
        headers["Access-Control-Allow-Headers"] = ", ".join(requested)
    headers["Access-Control-Max-Age"] = _CORS_MAX_AGE
    return response


def _apply_cors(response: Response) -> Response:
    if _is_preflight():
        return response
    response.headers.add("Vary", "Origin")
    origin = request.headers.get("Origin", "")
    if not origin or not _origin_allowed(origin) or not _method_allowed(request.method):
        return response
    response.headers["Access-Control-Allow-Origin"] = origin
    response.headers["Access-Control-Expose-Headers"] = _EXPOSED_HEADERS
    return response


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _v1_blueprint(db: Database) -> Blueprint:
    v1 = Blueprint("v1", __name__, url_prefix="/v1")

    def authorized(handler: Callable[..., Response]) -> Callable[..., Response]:
        @functools.wraps(handler)
        def view(**kwargs: Any) -> Response:
            try:
                api_key = get_api_key(request.headers)
            except AuthError as exc:
                return respond_with_error(400, str(exc))
            try:
                user = db.get_user_by_api_key(api_key)
            except NoRowsError:
                return respond_with_error(404, f"No user found for this ApiKey: {api_key}")
            except DatabaseError:
                return respond_with_error(500, "Error finding the user with this API Key")
            return handler(user, **kwargs)

        return view

    @v1.get("/healthz")
    def readiness() -> Response:
        return respond_with_json(200, "Server is ready")

    @v1.get("/err")
    def error() -> Response:
        return respond_with_error(400, "Something went wrong")

    @v1.post("/users")
    def create_user() -> Response:
        try:
            params = _decode_params(request.get_data(), ("name",))
        except ValueError as exc:
            return respond_with_error(400, f"Error parsing JSON in the request body: {exc}")
        try:
            user = db.create_user(uuid.uuid4(), params["name"], _now(), _now())
        except DatabaseError as exc:
            return respond_with_error(500, f"Error creating user: {exc}")
        return respond_with_json(201, user_payload(user))

    @v1.get("/users")
    def get_users() -> Response:
        try:
            users = db.get_users()
        except DatabaseError as exc:
            return respond_with_error(500, f"Error fetching users: {exc}")
        if not users:
            return respond_with_error(404, "No users found.")
        return respond_with_json(200, users_payload(users))

    @v1.get("/users/<user_id>")
    def get_user_by_id(user_id: str) -> Response:
        try:
            uid = _parse_uuid(user_id)
        except ValueError as exc:
            return respond_with_error(500, f"Error parsing user ID: {exc}")
        try:
            user = db.get_user_by_id(uid)
        except NoRowsError:
            return respond_with_error(404, f"User with ID {uid} does not exist.")
        except DatabaseError as exc:
            return respond_with_error(500, f"Error fetching users: {exc}")
        return respond_with_json(200, user_payload(user))

    @v1.delete("/users/<user_id>")
    def delete_user(user_id: str) -> Response:
        try:
            uid = _parse_uuid(user_id)
        except ValueError as exc:
            return respond_with_error(500, f"Error parsing user ID: {exc}")
        try:
            db.delete_user(uid)
        except DatabaseError as exc:
            return respond_with_error(400, f"Couldn't delete user: {exc}")
        return respond_with_json(204, {})

    @v1.post("/feeds")
    @authorized
    def create_feed(user: User) -> Response:
        try:
            params = _decode_params(request.get_data(), ("name", "url"))
        except ValueError as exc:
            return respond_with_error(400, f"Error parsing JSON in the request body: {exc}")
        try:
            db.get_feed_by_url(user.id, params["url"])
        except DatabaseError:
            pass
        else:
            return respond_with_error(400, "An RSS feed with this URL already exists.")
        try:
            feed = db.create_feed(
                uuid.uuid4(), params["name"], params["url"], _now(), _now(), user.id
            )
        except DatabaseError as exc:
            return respond_with_error(500, f"Couldn't create feed: {exc}")
        return respond_with_json(201, feed_payload(feed))

    @v1.get("/feeds")
    @authorized
    def get_feeds(user: User) -> Response:
        try:
            feeds = db.get_feeds_of_user(user.id)
        except DatabaseError as exc:
            return respond_with_error(500, f"Error fetching feeds: {exc}")
        if not feeds:
            return respond_with_error(404, f"No feeds exist for user with ID {user.id}")
        return respond_with_json(200, feeds_payload(feeds))

    @v1.delete("/feeds/<feed_id>")
    @authorized
    def delete_feed(user: User, feed_id: str) -> Response:
        try:
            fid = _parse_uuid(feed_id)
        except ValueError as exc:
            return respond_with_error(500, f"Error parsing feed ID: {exc}")
        try:
            db.delete_feed(user.id, fid)
        except DatabaseError as exc:
            return respond_with_error(500, f"Couldn't delete feed: {exc}")
        return respond_with_json(204, {})

    return v1


def create_app(db: Database) -> Flask:
    """Build the application serving the v1 API over ``db``."""
    app = Flask(__name__)

    @app.before_request
    def cors_preflight() -> Optional[Response]:
        return _preflight() if _is_preflight() else None

    app.after_request(_apply_cors)
    app.register_blueprint(_v1_blueprint(db))
    return app


def main(argv: Optional[list[str]] = None) -> int:
    """Migrate the database, start the scraper and serve the API."""
    parser = argparse.ArgumentParser(prog="scraperss", description=__doc__)
    parser.add_argument("--database", default="scraperss.db", help="SQLite database file")
    parser.add_argument("--host", default="0.0.0.0", help="address to listen on")
    parser.add_argument("--port", type=int, default=80, help="port to listen on")
    parser.add_argument(
        "--concurrency", type=int, default=10, help="feeds scraped in parallel"
    )
    parser.add_argument(
        "--interval", type=float, default=60.0, help="seconds between scraping rounds"
    )
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    try:
        db = Database(args.database)
    except DatabaseError as exc:
        _log.critical("Couldn't connect to DB: %s", exc)
        return 1
    try:
        db.migrate()
    except DatabaseError as exc:
        _log.critical("Couldn't run migrations: %s", exc)
        db.close()
        return 1

    stop = threading.Event()
    scraper = threading.Thread(
        target=start_scraping,
        args=(db, args.concurrency, args.interval, stop),
        daemon=True,
    )
    scraper.start()

    app = create_app(db)
    _log.info("Starting server on port %d", args.port)
    try:
        app.run(host=args.host, port=args.port, threaded=True)
    except OSError as exc:
        _log.critical("Couldn't start server: %s", exc)
        return 1
    finally:
        stop.set()
    return 0