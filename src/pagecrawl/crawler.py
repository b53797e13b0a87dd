"""Breadth-first crawl over a page graph with per-page cache scoping.

:class:`Crawler` downloads one page at a time through a
:class:`~pagecrawl.client.caching.CachingTransport`. For every page it:

1. scopes the transport to the page,
2. hands the transport to the page downloader (usually
   :meth:`ContentAPI.download_page <pagecrawl.client.api.ContentAPI.download_page>`),
3. flushes the page's newly recorded exchanges to the cache and unbinds the
   scope, whether or not the download succeeded.

When the transport checks versions, a cached page is first rebuilt from the
cache alone; it is returned as is if it is still current and downloaded
again otherwise.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from typing import Callable, Optional

from pagecrawl.cache import CacheStore
from pagecrawl.client.base import Transport
from pagecrawl.client.caching import CacheMiss, CachingTransport, CrawlSession, ScopeMode
from pagecrawl.events import DownloadCompleted, ErrorEvent, EventObserver, ServedFromCache, emit
from pagecrawl.exceptions import CacheWriteError
from pagecrawl.identity import parse_identity, require_identity, to_no_dash
from pagecrawl.models import Page

logger = logging.getLogger(__name__)

PageDownloader = Callable[[str, Transport], Page]
"""Downloads the page with the given no-dash id, sending every request
through the given transport."""

PageCallback = Callable[[Page], None]


class Crawler:
    """Downloads pages and page trees through a caching transport.

    Args:
        transport: The caching transport; its store and session are shared
            by every download made through this crawler.
        downloader: Callable that fetches one page through a transport.
        observer: Optional event observer.

    Example::

        crawler = Crawler(caching, ContentAPI().download_page)
        pages = crawler.crawl(start_id, on_each_page=lambda p: print(p.title))
    """

    def __init__(
        self,
        transport: CachingTransport,
        downloader: PageDownloader,
        observer: Optional[EventObserver] = None,
    ) -> None:
        self._transport = transport
        self._downloader = downloader
        self._observer = observer

    @property
    def session(self) -> CrawlSession:
        return self._transport.session

    @property
    def store(self) -> CacheStore:
        return self._transport.store

    def download_page(self, page_id: str) -> Page:
        """Download a single page, using the cache where allowed.

        Raises:
            InvalidIdentityError: If *page_id* is not a valid page id.
            RemoteTransportError: If a live request fails.
        """
        pid = require_identity(page_id).no_dash
        transport = self._transport
        session = transport.session
        time_start = time.monotonic()
        live_before = session.requests_not_from_cache

        mode = ScopeMode.NORMAL
        if transport.read_cache and transport.redownload_newer_versions and pid in transport.store:
            hits_before = session.requests_from_cache
            cached = self._replay_from_cache(pid)
            if cached is not None:
                if transport.is_fresh(cached):
                    emit(self._observer, ServedFromCache(pid, time.monotonic() - time_start))
                    return cached
                # The replayed answers are discarded; do not count them.
                session.requests_from_cache = hits_before
                mode = ScopeMode.LIVE_ONLY

        page = self._download(pid, mode)
        duration = time.monotonic() - time_start
        if session.requests_not_from_cache > live_before:
            emit(self._observer, DownloadCompleted(pid, duration))
        else:
            emit(self._observer, ServedFromCache(pid, duration))
        return page

    def crawl(self, start_id: str, on_each_page: Optional[PageCallback] = None) -> list[Page]:
        """Download *start_id* and every page reachable from it, breadth first.

        Each page is downloaded once, no matter how often it is referenced.
        *on_each_page* is called right after each download; an exception
        from it aborts the crawl.

        Returns:
            The downloaded pages sorted by id; empty if none were downloaded.

        Raises:
            InvalidIdentityError: If a page id in the graph is invalid.
            RemoteTransportError: If a live request fails.
        """
        to_visit: deque[str] = deque([start_id])
        downloaded: dict[str, Page] = {}

        while to_visit:
            page_id = _dedup_key(to_visit.popleft())
            if page_id in downloaded:
                continue

            page = self.download_page(page_id)
            downloaded[page_id] = page
            logger.debug(
                "Crawled %s (%d done, %d queued)", page_id, len(downloaded), len(to_visit)
            )
            if on_each_page is not None:
                on_each_page(page)
            to_visit.extend(page.child_ids)

        return [downloaded[pid] for pid in sorted(downloaded)]

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _download(self, pid: str, mode: ScopeMode) -> Page:
        with self._transport.scope(pid, mode):
            try:
                return self._downloader(pid, self._transport)
            finally:
                self._flush(pid)

    def _replay_from_cache(self, pid: str) -> Optional[Page]:
        """Rebuild the page from cached exchanges only; ``None`` if any is missing."""
        with self._transport.scope(pid, ScopeMode.CACHE_ONLY):
            try:
                return self._downloader(pid, self._transport)
            except CacheMiss as exc:
                logger.debug("Cache for %s is incomplete: %s", pid, exc)
                return None

    def _flush(self, pid: str) -> None:
        try:
            self._transport.store.flush(pid)
        except CacheWriteError as exc:
            if self._observer is None:
                logger.warning("%s", exc)
            emit(self._observer, ErrorEvent(message=str(exc)))


def _dedup_key(page_id: str) -> str:
    ident = parse_identity(page_id)
    return ident.no_dash if ident is not None else to_no_dash(page_id)
