"""SQLite storage for users, feeds and posts."""

from __future__ import annotations

import hashlib
import secrets
import sqlite3
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional


class DatabaseError(Exception):
    """Any failure reported by the storage layer."""


class NoRowsError(DatabaseError):
    """A query that must return one row returned none."""

    def __init__(self, message: str = "sql: no rows in result set") -> None:
        super().__init__(message)


class DuplicateKeyError(DatabaseError):
    """An insert violated a uniqueness constraint."""


@dataclass(frozen=True)
class User:
    id: uuid.UUID
    name: str
    api_key: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class Feed:
    id: uuid.UUID
    name: str
    url: str
    created_at: datetime
    updated_at: datetime
    user_id: uuid.UUID
    last_fetched_at: Optional[datetime]


@dataclass(frozen=True)
class Post:
    id: uuid.UUID
    created_at: datetime
    updated_at: datetime
    title: str
    url: str
    published_at: datetime
    feed_id: uuid.UUID


_MIGRATIONS = (
    """
    CREATE TABLE users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        api_key TEXT NOT NULL UNIQUE,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE feeds (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        url TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        last_fetched_at TEXT
    )
    """,
    """
    CREATE TABLE posts (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        title TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        published_at TEXT NOT NULL,
        feed_id TEXT NOT NULL REFERENCES feeds(id) ON DELETE CASCADE
    )
    """,
)

_USER_COLUMNS = "id, name, api_key, created_at, updated_at"
_FEED_COLUMNS = "id, name, url, created_at, updated_at, user_id, last_fetched_at"
_POST_COLUMNS = "id, created_at, updated_at, title, url, published_at, feed_id"


def _encode_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="microseconds")


def _decode_time(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _user(row: tuple) -> User:
    return User(
        id=uuid.UUID(row[0]),
        name=row[1],
        api_key=row[2],
        created_at=_decode_time(row[3]),
        updated_at=_decode_time(row[4]),
    )


def _feed(row: tuple) -> Feed:
    return Feed(
        id=uuid.UUID(row[0]),
        name=row[1],
        url=row[2],
        created_at=_decode_time(row[3]),
        updated_at=_decode_time(row[4]),
        user_id=uuid.UUID(row[5]),
        last_fetched_at=_decode_time(row[6]) if row[6] is not None else None,
    )


def _post(row: tuple) -> Post:
    return Post(
        id=uuid.UUID(row[0]),
        created_at=_decode_time(row[1]),
        updated_at=_decode_time(row[2]),
        title=row[3],
        url=row[4],
        published_at=_decode_time(row[5]),
        feed_id=uuid.UUID(row[6]),
    )


class Database:
    """Queries over one SQLite connection, safe to share between threads."""

    def __init__(self, path: str) -> None:
        try:
            self._conn = sqlite3.connect(
                path, check_same_thread=False, isolation_level=None
            )
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as exc:
            raise DatabaseError(str(exc)) from exc
        self._lock = threading.RLock()
        self._in_transaction = False

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()

    def _run(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.IntegrityError as exc:
                if "UNIQUE" in str(exc):
                    raise DuplicateKeyError(
                        f"duplicate key value violates unique constraint: {exc}"
                    ) from exc
                raise DatabaseError(str(exc)) from exc
            except sqlite3.Error as exc:
                raise DatabaseError(str(exc)) from exc

    def _one(self, sql: str, params: tuple = ()) -> tuple:
        rows = self._run(sql, params)
        if not rows:
            raise NoRowsError()
        return rows[0]

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run the enclosed queries atomically; roll back on any exception."""
        with self._lock:
            if self._in_transaction:
                yield self
                return
            self._run("BEGIN")
            self._in_transaction = True
            try:
                yield self
            except BaseException:
                self._in_transaction = False
                self._run("ROLLBACK")
                raise
            self._in_transaction = False
            self._run("COMMIT")

    def migrate(self) -> None:
        """Apply every schema migration not yet applied."""
        with self.transaction():
            version = self._one("PRAGMA user_version")[0]
            for number, statement in enumerate(
                _MIGRATIONS[version:], start=version + 1
            ):
                self._run(statement)
                self._run(f"PRAGMA user_version = {number}")

    # users

    def create_user(
        self, user_id: uuid.UUID, name: str, created_at: datetime, updated_at: datetime
    ) -> User:
        api_key = hashlib.sha256(secrets.token_bytes(32)).hexdigest()
        with self._lock:
            self._run(
                f"INSERT INTO users ({_USER_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                (
                    str(user_id),
                    name,
                    api_key,
                    _encode_time(created_at),
                    _encode_time(updated_at),
                ),
            )
            return self.get_user_by_id(user_id)

    def delete_user(self, user_id: uuid.UUID) -> None:
        self._run("DELETE FROM users WHERE id = ?", (str(user_id),))

    def get_user_by_api_key(self, api_key: str) -> User:
        return _user(
            self._one(f"SELECT {_USER_COLUMNS} FROM users WHERE api_key = ?", (api_key,))
        )

    def get_user_by_id(self, user_id: uuid.UUID) -> User:
        return _user(
            self._one(f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (str(user_id),))
        )

    def get_users(self) -> list[User]:
        return [_user(row) for row in self._run(f"SELECT {_USER_COLUMNS} FROM users")]

    # feeds

    def create_feed(
        self,
        feed_id: uuid.UUID,
        name: str,
        url: str,
        created_at: datetime,
        updated_at: datetime,
        user_id: uuid.UUID,
    ) -> Feed:
        with self._lock:
            self._run(
                "INSERT INTO feeds (id, name, url, created_at, updated_at, user_id) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    str(feed_id),
                    name,
                    url,
                    _encode_time(created_at),
                    _encode_time(updated_at),
                    str(user_id),
                ),
            )
            return self._feed_by_id(feed_id)

    def _feed_by_id(self, feed_id: uuid.UUID) -> Feed:
        return _feed(
            self._one(f"SELECT {_FEED_COLUMNS} FROM feeds WHERE id = ?", (str(feed_id),))
        )

    def delete_feed(self, user_id: uuid.UUID, feed_id: uuid.UUID) -> None:
        self._run(
            "DELETE FROM feeds WHERE user_id = ? AND id = ?",
            (str(user_id), str(feed_id)),
        )

    def get_feed_by_url(self, user_id: uuid.UUID, url: str) -> Feed:
        return _feed(
            self._one(
                f"SELECT {_FEED_COLUMNS} FROM feeds WHERE user_id = ? AND url = ?",
                (str(user_id), url),
            )
        )

    def get_feeds_of_user(self, user_id: uuid.UUID) -> list[Feed]:
        rows = self._run(
            f"SELECT {_FEED_COLUMNS} FROM feeds WHERE user_id = ?", (str(user_id),)
        )
        return [_feed(row) for row in rows]

    def get_next_feeds_to_fetch(self, limit: int) -> list[Feed]:
        """Feeds never fetched first, then those fetched longest ago."""
        rows = self._run(
            f"SELECT {_FEED_COLUMNS} FROM feeds "
            "ORDER BY last_fetched_at IS NOT NULL, last_fetched_at ASC "
            "LIMIT ?",
            (limit,),
        )
        return [_feed(row) for row in rows]

    def mark_feed_as_fetched(self, feed_id: uuid.UUID) -> Feed:
        now = _encode_time(datetime.now(timezone.utc))
        with self._lock:
            self._run(
                "UPDATE feeds SET last_fetched_at = ?, updated_at = ? WHERE id = ?",
                (now, now, str(feed_id)),
            )
            return self._feed_by_id(feed_id)

    # posts

    def create_post(
        self,
        post_id: uuid.UUID,
        created_at: datetime,
        updated_at: datetime,
        title: str,
        url: str,
        published_at: datetime,
        feed_id: uuid.UUID,
    ) -> Post:
        with self._lock:
            self._run(
                f"INSERT INTO posts ({_POST_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    str(post_id),
                    _encode_time(created_at),
                    _encode_time(updated_at),
                    title,
                    url,
                    _encode_time(published_at),
                    str(feed_id),
                ),
            )
            return _post(
                self._one(
                    f"SELECT {_POST_COLUMNS} FROM posts WHERE id = ?", (str(post_id),)
                )
            )