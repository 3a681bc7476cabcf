"""Periodic scraping of stored feeds into posts."""

from __future__ import annotations

import logging
import re
import threading
import uuid
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from scraperss.database import Database, DatabaseError, DuplicateKeyError, Feed
from scraperss.rss import RSSFeed, fetch_feed

_log = logging.getLogger(__name__)

_WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
_MONTHS = ("jan", "feb", "mar", "apr", "may", "jun",
           "jul", "aug", "sep", "oct", "nov", "dec")
_RFC1123 = re.compile(
    r"([A-Za-z]{3}), (\d{2}) ([A-Za-z]{3}) (\d{4}) "
    r"(\d{2}):(\d{2}):(\d{2})(?:[.,](\d+))? (\S+)"
)


def _zone(name: str) -> timezone:
    """Resolve a zone abbreviation; abbreviations other than GMT offsets are UTC."""
    gmt = re.fullmatch(r"GMT([+-]\d+)?", name)
    if gmt:
        if gmt.group(1) is None:
            return timezone.utc
        hours = int(gmt.group(1))
        if abs(hours) > 23:
            raise ValueError(f"zone offset out of range: {name!r}")
        return timezone(timedelta(hours=hours), name)
    if name == "UTC":
        return timezone.utc
    valid = name in ("ChST", "MeST") or (
        name.isascii() and name.isalpha() and name.isupper()
        and (len(name) == 3 or (len(name) in (4, 5) and name[-1] == "T") or name == "WITA")
    )
    if not valid:
        raise ValueError(f"unknown time zone {name!r}")
    return timezone(timedelta(0), name)


def parse_pub_date(value: str) -> datetime:
    """Parse an RFC 1123 time such as ``Mon, 02 Jan 2006 15:04:05 MST``."""
    match = _RFC1123.fullmatch(value)
    if match is None:
        raise ValueError(f"cannot parse {value!r} as an RFC 1123 time")
    weekday, day, month, year, hour, minute, second, fraction, zone = match.groups()
    if weekday.lower() not in _WEEKDAYS:
        raise ValueError(f"bad day of week in {value!r}")
    if month.lower() not in _MONTHS:
        raise ValueError(f"bad month in {value!r}")
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    return datetime(
        int(year), _MONTHS.index(month.lower()) + 1, int(day),
        int(hour), int(minute), int(second), microsecond, tzinfo=_zone(zone),
    )


def scrape_feed(
    db: Database,
    feed: Feed,
    fetch: Callable[[str], RSSFeed] = fetch_feed,
) -> int:
    """Mark ``feed`` fetched, download it and store its items as posts.

    Returns the number of posts newly stored. Failures are logged, not raised.
    """
    try:
        db.mark_feed_as_fetched(feed.id)
    except DatabaseError as exc:
        _log.error("Error marking the feed as fetched: %s", exc)
        return 0
    try:
        rss_feed = fetch(feed.url)
    except Exception as exc:  # any fetch failure only skips this feed
        _log.error("couldn't fetch feed from its url: %s", exc)
        return 0

    stored = 0
    for item in rss_feed.items:
        try:
            published_at = parse_pub_date(item.pub_date)
        except ValueError as exc:
            _log.warning("Error parsing pubDate %s with error: %s", item.pub_date, exc)
            continue
        now = datetime.now(timezone.utc)
        try:
            db.create_post(uuid.uuid4(), now, now, item.title, item.link, published_at, feed.id)
        except DuplicateKeyError:
            continue
        except DatabaseError as exc:
            _log.error("Couldn't create post: %s", exc)
        else:
            stored += 1
        _log.info("Found post %s on feed %s", item.title, feed.name)
    _log.info("Collected %d posts from feed %s", len(rss_feed.items), feed.name)
    return stored


def start_scraping(
    db: Database,
    concurrency: int,
    interval: Union[float, timedelta],
    stop: Optional[threading.Event] = None,
) -> None:
    """Scrape up to ``concurrency`` feeds in parallel, at once and then every ``interval``.

    ``interval`` is seconds or a timedelta. Runs until ``stop`` is set.
    """
    seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
    if seconds <= 0:
        raise ValueError("non-positive interval for ticker")
    stop = stop or threading.Event()
    _log.info("Scraping feeds using %d workers every %s seconds", concurrency, seconds)

    while True:
        try:
            feeds = db.get_next_feeds_to_fetch(concurrency)
        except DatabaseError as exc:
            _log.error("couldn't fetch feeds: %s", exc)
        else:
            if feeds:
                with ThreadPoolExecutor(max_workers=len(feeds)) as pool:
                    list(pool.map(lambda feed: scrape_feed(db, feed), feeds))
        if stop.wait(seconds):
            return