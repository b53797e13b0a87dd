"""Crawl commands -- download a page or a whole page tree through the cache.

Provides the top-level ``pagecrawl crawl`` and ``pagecrawl download``
commands. Both resolve the effective configuration, open the page cache,
wrap a :class:`~pagecrawl.client.live.LiveTransport` in a
:class:`~pagecrawl.client.caching.CachingTransport`, and drive a
:class:`~pagecrawl.crawler.Crawler`.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from pagecrawl.cache import CacheStore
from pagecrawl.client import CachingTransport, ContentAPI, LiveTransport, VersionOracle
from pagecrawl.crawler import Crawler
from pagecrawl.exceptions import PagecrawlError
from pagecrawl.models import GlobalConfig
from pagecrawl.output import error, info, print_pages, progress, report_event, success


def make_live_transport(config: GlobalConfig, token: Optional[str]) -> LiveTransport:
    """Build the live transport for *config*. Replaced in tests."""
    return LiveTransport(config.request, token=token, token_cookie=config.api.token_cookie)


@contextmanager
def open_crawler(config: GlobalConfig) -> Iterator[Crawler]:
    """Wire store, transports, oracle and crawler for *config*.

    Raises:
        CacheLoadError: If the cache directory cannot be read.
        ConfigError: If the session token cannot be resolved.
    """
    from pagecrawl.config import get_pages_cache_dir, resolve_token

    store = CacheStore.open(get_pages_cache_dir(config))
    token = resolve_token(config)
    api = ContentAPI(config.api.base_url)

    with make_live_transport(config, token) as live:
        caching = CachingTransport(
            store,
            live,
            oracle=VersionOracle(api, live, observer=report_event),
            read_cache=config.cache.read_cache,
            redownload_newer_versions=config.cache.redownload_newer_versions,
            observer=report_event,
        )
        yield Crawler(caching, api.download_page, observer=report_event)


def _resolve(
    cache_dir: Optional[str],
    base_url: Optional[str],
    no_read_cache: bool,
    redownload_newer: bool,
) -> GlobalConfig:
    from pagecrawl.config import resolve_config

    return resolve_config(
        cli_base_url=base_url,
        cli_cache_dir=cache_dir,
        cli_read_cache=False if no_read_cache else None,
        cli_redownload_newer=True if redownload_newer else None,
    )


def _summary(crawler: Crawler) -> str:
    session = crawler.session
    return (
        f"{session.requests_from_cache} requests from cache, "
        f"{session.requests_not_from_cache} live, "
        f"{crawler.store.records_written} records written"
    )


_CACHE_DIR_OPT = typer.Option(None, "--cache-dir", help="Page cache directory.")
_BASE_URL_OPT = typer.Option(None, "--base-url", help="Content API base URL.")
_NO_READ_CACHE_OPT = typer.Option(
    False, "--no-read-cache", help="Always download; still write to the cache."
)
_REDOWNLOAD_OPT = typer.Option(
    False, "--redownload-newer", help="Re-download pages with a newer server version."
)


def crawl_command(
    page_id: str = typer.Argument(help="Id or URL of the page to start from."),
    cache_dir: Optional[str] = _CACHE_DIR_OPT,
    base_url: Optional[str] = _BASE_URL_OPT,
    no_read_cache: bool = _NO_READ_CACHE_OPT,
    redownload_newer: bool = _REDOWNLOAD_OPT,
) -> None:
    """Download a page and every sub-page reachable from it.

    Example::

        pagecrawl crawl 0367c2db381a4f8b9ce360f388a6b2e3
        pagecrawl crawl https://www.notion.so/Docs-0367c2db381a4f8b9ce360f388a6b2e3 --redownload-newer
    """
    try:
        config = _resolve(cache_dir, base_url, no_read_cache, redownload_newer)
        with open_crawler(config) as crawler:
            pages = crawler.crawl(
                page_id,
                on_each_page=lambda p: progress(f"Downloaded {p.id} {p.title}"),
            )
            summary = _summary(crawler)
    except PagecrawlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    print_pages(pages)
    success(f"Crawled {len(pages)} pages")
    info(summary)


def download_command(
    page_id: str = typer.Argument(help="Id or URL of the page."),
    cache_dir: Optional[str] = _CACHE_DIR_OPT,
    base_url: Optional[str] = _BASE_URL_OPT,
    no_read_cache: bool = _NO_READ_CACHE_OPT,
    redownload_newer: bool = _REDOWNLOAD_OPT,
) -> None:
    """Download a single page (no sub-pages).

    Example::

        pagecrawl download 0367c2db-381a-4f8b-9ce3-60f388a6b2e3
    """
    try:
        config = _resolve(cache_dir, base_url, no_read_cache, redownload_newer)
        with open_crawler(config) as crawler:
            page = crawler.download_page(page_id)
            summary = _summary(crawler)
    except PagecrawlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    print_pages([page], title="Page")
    info(summary)
