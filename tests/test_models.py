import json
import uuid
from datetime import datetime, timedelta, timezone

from scraperss.database import Feed, User
from scraperss.models import feed_payload, feeds_payload, user_payload, users_payload

T0 = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def make_user(name="Test User", when=T0):
    return User(uuid.uuid4(), name, "placeholder", when, when)


def make_feed(last=None, when=T0):
    return Feed(
        uuid.uuid4(),
        "Feed",
        "https://example.com/feed.xml",
        when,
        when,
        uuid.uuid4(),
        last,
    )


def test_user_payload_fields():
    user = make_user()
    payload = user_payload(user)
    assert set(payload) == {"id", "name", "apiKey", "createdAt", "updatedAt"}
    assert payload["id"] == str(user.id)
    assert payload["name"] == "Test User"
    assert payload["apiKey"] == "placeholder"
    assert payload["createdAt"] == "2024-01-02T03:04:05Z"


def test_user_payload_is_json_serialisable():
    payload = user_payload(make_user())
    assert json.loads(json.dumps(payload)) == payload


def test_fractional_seconds_trimmed():
    user = make_user(when=T0.replace(microsecond=500000))
    assert user_payload(user)["createdAt"].endswith("05.5Z")


def test_naive_and_utc_format_alike():
    naive = make_user(when=T0.replace(tzinfo=None))
    aware = make_user(when=T0)
    assert user_payload(naive)["createdAt"] == user_payload(aware)["createdAt"]


def test_offset_is_kept():
    zone = timezone(timedelta(hours=5, minutes=30))
    user = make_user(when=T0.astimezone(zone))
    assert user_payload(user)["createdAt"].endswith("+05:30")


def test_feed_payload_fields():
    feed = make_feed(last=T0)
    payload = feed_payload(feed)
    assert set(payload) == {
        "id",
        "name",
        "url",
        "createdAt",
        "updatedAt",
        "userId",
        "lastFetchedAt",
    }
    assert payload["userId"] == str(feed.user_id)
    assert payload["url"] == "https://example.com/feed.xml"
    assert payload["lastFetchedAt"] == payload["createdAt"]


def test_feed_never_fetched_uses_zero_time():
    assert feed_payload(make_feed())["lastFetchedAt"] == "0001-01-01T00:00:00Z"


def test_list_payloads_keep_order():
    users = [make_user("a"), make_user("b")]
    assert [p["name"] for p in users_payload(users)] == ["a", "b"]
    feeds = [make_feed(), make_feed()]
    assert [p["id"] for p in feeds_payload(feeds)] == [str(f.id) for f in feeds]


def test_empty_lists():
    assert users_payload([]) == []
    assert feeds_payload([]) == []