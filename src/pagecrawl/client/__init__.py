"""Transports and API endpoints for pagecrawl.

Classes:
    :class:`Transport` -- abstract request/response interface.
    :class:`LiveTransport` -- blocking transport backed by :class:`httpx.Client`.
    :class:`CachingTransport` -- cache-first transport scoped to one page.
    :class:`ContentAPI` -- page-download and version-query endpoints.
    :class:`VersionOracle` -- batch lookup of current page versions.

Example::

    from pagecrawl.client import ContentAPI, LiveTransport

    with LiveTransport(token=token) as live:
        page = ContentAPI().download_page(page_id, live)
"""

from pagecrawl.client.api import ContentAPI
from pagecrawl.client.base import Transport
from pagecrawl.client.caching import CacheMiss, CachingTransport, CrawlSession, ScopeMode
from pagecrawl.client.live import LiveTransport
from pagecrawl.client.oracle import VersionOracle

__all__ = [
    "CacheMiss",
    "CachingTransport",
    "ContentAPI",
    "CrawlSession",
    "LiveTransport",
    "ScopeMode",
    "Transport",
    "VersionOracle",
]
