"""Hotel listing crawler: field resolver cascade plus a bounded-concurrency crawl queue."""

__version__ = "1.0.0"
