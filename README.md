# scraperss

scraperss collects RSS feeds for its users. Users register through a small JSON HTTP
API and add the feeds they follow. A background scraper fetches those feeds at a fixed
interval and stores every item it finds as a post. All data is kept in a SQLite file.

## Running the server

```
scraperss
```

This command opens the SQLite database and applies the schema migrations it still
needs. It then starts the background scraper in a thread and serves the API with
Flask's built-in server. The options are:

| Option          | Default        | Meaning                           |
|-----------------|----------------|-----------------------------------|
| `--database`    | `scraperss.db` | SQLite database file              |
| `--host`        | `0.0.0.0`      | address to listen on              |
| `--port`        | `80`           | port to listen on                 |
| `--concurrency` | `10`           | feeds scraped in parallel         |
| `--interval`    | `60.0`         | seconds between scraping rounds   |

The command exits with status 1 in three cases: the database cannot be opened, the
migrations fail, or the server cannot bind its port.

### The scraper

The scraper runs one round at once and then one round every interval. In each round it
takes up to `--concurrency` feeds, those fetched least recently first, with feeds never
fetched ahead of them all. It fetches these feeds in parallel. Each feed is marked as
fetched before it is downloaded, with a timeout of 10 seconds. The scraper stores every
channel item whose `pubDate` parses as an RFC 1123 date, such as
`Mon, 02 Jan 2006 15:04:05 GMT`. Items with any other date are skipped. A post's URL is
unique, so an item whose link is already stored is left as it is. Failures are logged
and never stop the scraper.

## The API

All endpoints live under `/v1`, and every response body is JSON. Errors come back as
`{"error": "<message>"}`.

| Method | Path                 | Auth   | Success                          |
|--------|----------------------|--------|----------------------------------|
| GET    | `/v1/healthz`        | none   | 200, `"Server is ready"`         |
| GET    | `/v1/err`            | none   | 400, always an error             |
| POST   | `/v1/users`          | none   | 201, the new user with `apiKey`  |
| GET    | `/v1/users`          | none   | 200, all users (404 if none)     |
| GET    | `/v1/users/{userID}` | none   | 200, one user (404 if unknown)   |
| DELETE | `/v1/users/{userID}` | none   | 204                              |
| POST   | `/v1/feeds`          | ApiKey | 201, the new feed                |
| GET    | `/v1/feeds`          | ApiKey | 200, the caller's feeds (404 if none) |
| DELETE | `/v1/feeds/{feedID}` | ApiKey | 204                              |

To create a user, send `{"name": "..."}`. To create a feed, send
`{"name": "...", "url": "..."}`. Field names are matched without regard to case, and
unknown fields are ignored. If the body is not valid JSON, the response is 400. A user
cannot add the same feed URL twice. A malformed user or feed ID in the path gets a 500
response. Deleting a user also deletes that user's feeds and their posts.

Feed endpoints need an `Authorization` header that holds the API key returned when the
user was created:

```
Authorization: ApiKey token
```

A missing or malformed header gets a 400 response. A key that matches no user gets a
404 response.

Users are returned with `id`, `name`, `apiKey`, `createdAt` and `updatedAt`. Feeds are
returned with `id`, `name`, `url`, `createdAt`, `updatedAt`, `userId` and
`lastFetchedAt`. Times use RFC 3339 format. A feed that has never been fetched shows
`lastFetchedAt` as `0001-01-01T00:00:00Z`.

The server answers CORS requests from any `http://` or `https://` origin, for the
methods GET, POST, PUT and DELETE, and exposes the `Link` header. Preflight results may
be cached for 300 seconds.

## Using it from Python

The application can be assembled from a database and served by any WSGI server:

```python
from scraperss.database import Database
from scraperss.app import create_app

db = Database("scraperss.db")
db.migrate()
app = create_app(db)
```

`scraperss.database.Database` also offers the queries directly, such as `create_user`,
`get_users`, `create_feed`, `get_feeds_of_user`, `get_next_feeds_to_fetch`,
`mark_feed_as_fetched` and `create_post`. A query that must find exactly one row raises
`NoRowsError` when it finds none. A uniqueness violation raises `DuplicateKeyError`.
Every other failure raises `DatabaseError`. Use `Database.transaction()` as a context
manager to run several queries atomically.

The scraper can also be driven on its own. `start_scraping` blocks until `stop`, a
`threading.Event`, is set:

```python
import threading
from scraperss.scrape import start_scraping

stop = threading.Event()
start_scraping(db, 10, 60.0, stop)
```

`scraperss.scrape.scrape_feed(db, feed)` runs a single feed once and returns the number
of posts it newly stored. `scraperss.rss.parse_feed` parses an RSS document you already
have. It returns an `RSSFeed` whose `items` are `RSSItem` values, each with a `title`, a
`link` and a `pub_date`. `scraperss.rss.fetch_feed(url)` downloads a document and
parses it the same way.

## What it does not do

Posts are stored, but the API has no endpoint to list or read them. To get at the
posts, query the SQLite database directly. The package keeps its data only in a local
SQLite file and has no support for other database servers.