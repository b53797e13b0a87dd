"""Transport that answers page-download requests from the page cache.

:class:`CachingTransport` sits between a page downloader and the
:class:`~pagecrawl.client.live.LiveTransport`. While it is scoped to a page
(see :meth:`CachingTransport.scope`) every request is first looked up in that
page's cached log; misses go to the network and the exchange is queued in the
:class:`~pagecrawl.cache.CacheStore` to be flushed when the download ends.

With ``redownload_newer_versions`` enabled, :meth:`CachingTransport.is_fresh`
compares a cached page's version against the server's current version (via
:class:`~pagecrawl.client.oracle.VersionOracle`) so the crawler can decide to
fetch the page again.

All mutable state lives in a :class:`CrawlSession`, one per crawl.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional, Sequence

from pagecrawl.cache import CacheStore
from pagecrawl.client.base import Transport
from pagecrawl.client.oracle import VersionOracle
from pagecrawl.events import ErrorEvent, EventObserver, emit
from pagecrawl.exceptions import VersionQueryError
from pagecrawl.identity import to_no_dash
from pagecrawl.models import CacheRecord, Page

logger = logging.getLogger(__name__)


class ScopeMode(str, Enum):
    """How requests are answered while the transport is scoped to a page.

    ``NORMAL`` tries the cache then the network. ``CACHE_ONLY`` raises
    :class:`CacheMiss` instead of going to the network. ``LIVE_ONLY`` skips
    the cache lookup but still records every exchange.
    """

    NORMAL = "normal"
    CACHE_ONLY = "cache_only"
    LIVE_ONLY = "live_only"


class CacheMiss(Exception):
    """Raised in ``CACHE_ONLY`` mode when a request has no cached answer."""


@dataclass
class CrawlSession:
    """Mutable state of one crawl.

    Attributes:
        requests_from_cache: Requests answered from the cache.
        requests_not_from_cache: Requests sent to the network and recorded.
        latest_versions: No-dash page id to the latest server version seen
            this session. Entries are never replaced once set.
        checked_cached_versions: Whether the one-time batch version check of
            all cached pages has succeeded.
        current_page: No-dash id of the page being downloaded, if any.
        mode: Interception mode for :attr:`current_page`.
    """

    requests_from_cache: int = 0
    requests_not_from_cache: int = 0
    latest_versions: dict[str, int] = field(default_factory=dict)
    checked_cached_versions: bool = False
    current_page: Optional[str] = None
    mode: ScopeMode = ScopeMode.NORMAL


class CachingTransport(Transport):
    """Cache-first transport for page downloads.

    Args:
        store: The loaded page cache.
        live: Transport used on cache misses and for unscoped requests.
        oracle: Version oracle; required when *redownload_newer_versions*
            is set.
        read_cache: When ``False`` every request goes to the network; results
            are still recorded.
        redownload_newer_versions: Enable the version freshness check.
        session: State holder; a fresh :class:`CrawlSession` by default.
        observer: Optional event observer for error events.
    """

    def __init__(
        self,
        store: CacheStore,
        live: Transport,
        oracle: Optional[VersionOracle] = None,
        read_cache: bool = True,
        redownload_newer_versions: bool = False,
        session: Optional[CrawlSession] = None,
        observer: Optional[EventObserver] = None,
    ) -> None:
        if redownload_newer_versions and oracle is None:
            raise ValueError("redownload_newer_versions requires a version oracle")
        self.store = store
        self.read_cache = read_cache
        self.redownload_newer_versions = redownload_newer_versions
        self.session = session if session is not None else CrawlSession()
        self._live = live
        self._oracle = oracle
        self._observer = observer

    # ------------------------------------------------------------------ #
    # Scoping
    # ------------------------------------------------------------------ #

    @contextmanager
    def scope(self, page_id: str, mode: ScopeMode = ScopeMode.NORMAL) -> Iterator[CachingTransport]:
        """Bind request interception to *page_id* for the duration of the block.

        Raises:
            RuntimeError: If the transport is already scoped to a page.
        """
        if self.session.current_page is not None:
            raise RuntimeError(
                f"Already downloading {self.session.current_page}; scopes do not nest"
            )
        self.session.current_page = to_no_dash(page_id)
        self.session.mode = mode
        try:
            yield self
        finally:
            self.session.current_page = None
            self.session.mode = ScopeMode.NORMAL

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def request(self, method: str, url: str, body: bytes) -> bytes:
        """Answer from the cache when allowed, otherwise go live and record.

        Requests made outside a page scope are sent live and not recorded.

        Raises:
            CacheMiss: In ``CACHE_ONLY`` mode when nothing is cached.
            RemoteTransportError: Passed through unchanged from the live
                transport.
        """
        session = self.session
        page_id = session.current_page
        if page_id is None:
            return self._live.request(method, url, body)

        if self.read_cache and session.mode != ScopeMode.LIVE_ONLY:
            cached = self.store.lookup(page_id, method, url, body)
            if cached is not None:
                session.requests_from_cache += 1
                return cached

        if session.mode == ScopeMode.CACHE_ONLY:
            raise CacheMiss(f"{method} {url} is not cached for page {page_id}")

        response = self._live.request(method, url, body)
        session.requests_not_from_cache += 1
        self.store.append(
            page_id, CacheRecord(method=method, url=url, body=body, response=response)
        )
        return response

    # ------------------------------------------------------------------ #
    # Freshness
    # ------------------------------------------------------------------ #

    def is_fresh(self, page: Page) -> bool:
        """Decide whether a page rebuilt from the cache may be returned.

        Always ``True`` unless ``redownload_newer_versions`` is set. Otherwise
        the page's version must be at least the latest server version. The
        first call checks every cached page in one batch; pages still unknown
        afterwards are queried individually. A failed version query makes
        the page count as stale.
        """
        if not self.redownload_newer_versions:
            return True

        self._check_versions_of_cached_pages()
        page_id = to_no_dash(page.id)
        if page_id not in self.session.latest_versions:
            try:
                self._update_versions([page_id])
            except VersionQueryError as exc:
                self._report_error(f"Version check for {page_id} failed: {exc}")
                return False

        newest = self.session.latest_versions[page_id]
        if page.version < newest:
            logger.debug("Cached %s is at version %d, server has %d", page_id, page.version, newest)
            return False
        return True

    def _check_versions_of_cached_pages(self) -> None:
        if self.session.checked_cached_versions:
            return
        ids = self.store.page_ids()
        try:
            self._update_versions(ids)
        except VersionQueryError as exc:
            self._report_error(f"Version check for {len(ids)} cached pages failed: {exc}")
            return
        self.session.checked_cached_versions = True

    def _update_versions(self, ids: Sequence[str]) -> None:
        assert self._oracle is not None
        if not ids:
            return
        for page_id, version in self._oracle.fetch_versions(ids).items():
            self.session.latest_versions.setdefault(page_id, version)

    def _report_error(self, message: str) -> None:
        if self._observer is None:
            logger.warning(message)
        emit(self._observer, ErrorEvent(message=message))
