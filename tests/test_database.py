import string
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from scraperss.database import (
    Database,
    DatabaseError,
    DuplicateKeyError,
    NoRowsError,
)

T0 = datetime(2024, 5, 1, 12, 30, 15, 250000, tzinfo=timezone.utc)


@pytest.fixture
def db():
    database = Database(":memory:")
    database.migrate()
    yield database
    database.close()


def make_user(db, name="Test User"):
    return db.create_user(uuid.uuid4(), name, T0, T0)


def make_feed(db, user, url="https://example.com/feed.xml", name="Feed"):
    return db.create_feed(uuid.uuid4(), name, url, T0, T0, user.id)


def test_create_user_round_trip(db):
    user_id = uuid.uuid4()
    user = db.create_user(user_id, "Test User", T0, T0)
    assert user.id == user_id
    assert user.name == "Test User"
    assert user.created_at == T0
    assert user.updated_at == T0
    assert db.get_user_by_id(user_id) == user


def test_api_key_is_hex_sha256(db):
    user = make_user(db)
    assert len(user.api_key) == 64
    assert set(user.api_key) <= set(string.hexdigits.lower())


def test_api_keys_differ(db):
    assert make_user(db).api_key != make_user(db).api_key or False
    keys = {make_user(db).api_key for _ in range(5)}
    assert len(keys) == 5


def test_get_user_by_api_key(db):
    user = make_user(db)
    assert db.get_user_by_api_key(user.api_key) == user


def test_missing_user_raises_no_rows(db):
    with pytest.raises(NoRowsError) as info:
        db.get_user_by_id(uuid.uuid4())
    assert "no rows in result set" in str(info.value)
    with pytest.raises(NoRowsError):
        db.get_user_by_api_key("placeholder")


def test_get_users(db):
    assert db.get_users() == []
    first = make_user(db, "a")
    second = make_user(db, "b")
    assert db.get_users() == [first, second]


def test_delete_user(db):
    user = make_user(db)
    db.delete_user(user.id)
    with pytest.raises(NoRowsError):
        db.get_user_by_id(user.id)


def test_duplicate_user_id(db):
    user = make_user(db)
    with pytest.raises(DuplicateKeyError) as info:
        db.create_user(user.id, "again", T0, T0)
    assert "duplicate key" in str(info.value)


def test_naive_times_are_treated_as_utc(db):
    naive = T0.replace(tzinfo=None)
    user = db.create_user(uuid.uuid4(), "n", naive, naive)
    assert user.created_at == T0


def test_offset_times_are_stored_as_utc(db):
    other = T0.astimezone(timezone(timedelta(hours=5)))
    user = db.create_user(uuid.uuid4(), "o", other, other)
    assert user.created_at == T0
    assert user.created_at.utcoffset() == timedelta(0)


def test_create_feed_round_trip(db):
    user = make_user(db)
    feed = make_feed(db, user)
    assert feed.user_id == user.id
    assert feed.last_fetched_at is None
    assert db.get_feed_by_url(user.id, feed.url) == feed
    assert db.get_feeds_of_user(user.id) == [feed]


def test_feed_by_url_is_per_user(db):
    owner = make_user(db)
    other = make_user(db)
    feed = make_feed(db, owner)
    with pytest.raises(NoRowsError):
        db.get_feed_by_url(other.id, feed.url)


def test_feed_for_unknown_user_fails(db):
    with pytest.raises(DatabaseError):
        db.create_feed(uuid.uuid4(), "x", "https://example.com/x", T0, T0, uuid.uuid4())


def test_delete_feed(db):
    user = make_user(db)
    feed = make_feed(db, user)
    db.delete_feed(uuid.uuid4(), feed.id)
    assert db.get_feeds_of_user(user.id) == [feed]
    db.delete_feed(user.id, feed.id)
    assert db.get_feeds_of_user(user.id) == []


def test_deleting_user_removes_feeds(db):
    user = make_user(db)
    make_feed(db, user)
    db.delete_user(user.id)
    assert db.get_feeds_of_user(user.id) == []
    assert db.get_next_feeds_to_fetch(10) == []


def test_mark_feed_as_fetched(db):
    user = make_user(db)
    feed = make_feed(db, user)
    before = datetime.now(timezone.utc)
    marked = db.mark_feed_as_fetched(feed.id)
    assert marked.id == feed.id
    assert marked.last_fetched_at is not None
    assert marked.last_fetched_at >= before - timedelta(seconds=1)
    assert marked.updated_at == marked.last_fetched_at
    assert marked.created_at == feed.created_at


def test_mark_unknown_feed_raises(db):
    with pytest.raises(NoRowsError):
        db.mark_feed_as_fetched(uuid.uuid4())


def test_next_feeds_to_fetch_order_and_limit(db):
    user = make_user(db)
    first = make_feed(db, user, "https://example.com/1")
    second = make_feed(db, user, "https://example.com/2")
    third = make_feed(db, user, "https://example.com/3")
    db.mark_feed_as_fetched(first.id)
    db.mark_feed_as_fetched(second.id)
    ids = [feed.id for feed in db.get_next_feeds_to_fetch(3)]
    assert ids == [third.id, first.id, second.id]
    assert [feed.id for feed in db.get_next_feeds_to_fetch(1)] == [third.id]


def test_create_post_round_trip(db):
    user = make_user(db)
    feed = make_feed(db, user)
    post_id = uuid.uuid4()
    published = T0 - timedelta(days=2)
    post = db.create_post(
        post_id, T0, T0, "Title", "https://example.com/p/1", published, feed.id
    )
    assert post.id == post_id
    assert post.title == "Title"
    assert post.published_at == published
    assert post.feed_id == feed.id


def test_duplicate_post_url(db):
    user = make_user(db)
    feed = make_feed(db, user)
    db.create_post(uuid.uuid4(), T0, T0, "a", "https://example.com/p", T0, feed.id)
    with pytest.raises(DuplicateKeyError) as info:
        db.create_post(uuid.uuid4(), T0, T0, "b", "https://example.com/p", T0, feed.id)
    assert "duplicate key" in str(info.value)


def test_transaction_rolls_back(db):
    user_id = uuid.uuid4()
    with pytest.raises(RuntimeError):
        with db.transaction():
            db.create_user(user_id, "gone", T0, T0)
            raise RuntimeError("boom")
    with pytest.raises(NoRowsError):
        db.get_user_by_id(user_id)


def test_transaction_commits(db):
    user_id = uuid.uuid4()
    with db.transaction() as tx:
        tx.create_user(user_id, "kept", T0, T0)
    assert db.get_user_by_id(user_id).name == "kept"


def test_migrate_is_idempotent(db):
    user = make_user(db)
    db.migrate()
    assert db.get_users() == [user]


def test_closed_database_raises():
    database = Database(":memory:")
    database.migrate()
    database.close()
    with pytest.raises(DatabaseError):
        database.get_users()