"""RSS feed aggregator: a JSON HTTP API, SQLite storage and a background scraper."""

__version__ = "0.1.0"
__all__ = ["__version__"]