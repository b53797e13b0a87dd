"""On-disk page cache for pagecrawl.

This package provides :class:`CacheStore`, an index over a directory holding
one append-only log of request/response exchanges per page, and the record
codec in :mod:`pagecrawl.cache.records` that defines the file format.

The store is consumed by :class:`~pagecrawl.client.caching.CachingTransport`
and is controlled by the ``cache`` section of the global configuration
(:class:`~pagecrawl.models.CacheConfig`).
"""

from pagecrawl.cache.records import deserialize_records, serialize_records
from pagecrawl.cache.store import CacheStore

__all__ = ["CacheStore", "deserialize_records", "serialize_records"]
