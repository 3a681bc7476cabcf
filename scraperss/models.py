"""JSON payloads for users and feeds."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any, Optional

from scraperss.database import Feed, User

_ZERO_TIME = "0001-01-01T00:00:00Z"


def _format_time(value: Optional[datetime]) -> str:
    """Format a time as RFC 3339 with trailing fractional zeros dropped."""
    if value is None:
        return _ZERO_TIME
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    offset = value.utcoffset()
    minutes = int(offset.total_seconds()) // 60 if offset else 0
    if minutes == 0:
        return text + "Z"
    sign = "+" if minutes > 0 else "-"
    hours, mins = divmod(abs(minutes), 60)
    return f"{text}{sign}{hours:02d}:{mins:02d}"


def user_payload(user: User) -> dict[str, Any]:
    return {
        "id": str(user.id),
        "name": user.name,
        "apiKey": user.api_key,
        "createdAt": _format_time(user.created_at),
        "updatedAt": _format_time(user.updated_at),
    }


def feed_payload(feed: Feed) -> dict[str, Any]:
    return {
        "id": str(feed.id),
        "name": feed.name,
        "url": feed.url,
        "createdAt": _format_time(feed.created_at),
        "updatedAt": _format_time(feed.updated_at),
        "userId": str(feed.user_id),
        "lastFetchedAt": _format_time(feed.last_fetched_at),
    }


def users_payload(users: Iterable[User]) -> list[dict[str, Any]]:
    return [user_payload(user) for user in users]


def feeds_payload(feeds: Iterable[Feed]) -> list[dict[str, Any]]:
    return [feed_payload(feed) for feed in feeds]