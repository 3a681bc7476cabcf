"""Fetching and parsing of RSS 2.0 documents."""

from __future__ import annotations

import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Union
from xml.etree.ElementTree import Element, ParseError

from defusedxml import ElementTree as SafeElementTree


@dataclass(frozen=True)
class RSSItem:
    """One entry of an RSS channel."""

    title: str = ""
    link: str = ""
    pub_date: str = ""


@dataclass(frozen=True)
class RSSFeed:
    """The channel of an RSS document with its items."""

    title: str = ""
    link: str = ""
    items: tuple[RSSItem, ...] = ()


def _children(element: Element, name: str) -> list[Element]:
    return [c for c in element if isinstance(c.tag, str) and c.tag.rsplit("}", 1)[-1] == name]


def _last_text(element: Element, name: str, default: str = "") -> str:
    matches = _children(element, name)
    if not matches:
        return default
    last = matches[-1]
    return (last.text or "") + "".join(child.tail or "" for child in last)


def parse_feed(data: Union[bytes, str]) -> RSSFeed:
    """Parse an RSS document; raise ValueError if it is not well-formed XML."""
    try:
        root = SafeElementTree.fromstring(data)
    except ParseError as exc:
        raise ValueError(f"invalid RSS document: {exc}") from exc

    title = link = ""
    items: list[RSSItem] = []
    for channel in _children(root, "channel"):
        title = _last_text(channel, "title", title)
        link = _last_text(channel, "link", link)
        items.extend(
            RSSItem(_last_text(i, "title"), _last_text(i, "link"), _last_text(i, "pubDate"))
            for i in _children(channel, "item")
        )
    return RSSFeed(title=title, link=link, items=tuple(items))


def fetch_feed(url: str, timeout: float = 10.0) -> RSSFeed:
    """Download the document at ``url`` and parse it as RSS, whatever the status."""
    scheme = urllib.parse.urlsplit(url).scheme
    if scheme not in ("http", "https"):
        raise ValueError(f'unsupported protocol scheme "{scheme}"')
    try:
        with urllib.request.urlopen(url, timeout=timeout) as response:
            data = response.read()
    except urllib.error.HTTPError as exc:
        with exc:
            data = exc.read()
    return parse_feed(data)