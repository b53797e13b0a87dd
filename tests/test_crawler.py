"""Tests for the crawler: BFS traversal, cache reuse and freshness."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import pytest

from conftest import PAGE_A, PAGE_B, PAGE_C, FakeContentServer
from pagecrawl.cache import CacheStore
from pagecrawl.client import CachingTransport, ContentAPI, VersionOracle
from pagecrawl.client.base import Transport
from pagecrawl.crawler import Crawler
from pagecrawl.events import DownloadCompleted, ErrorEvent, Event, ServedFromCache, VersionsFetched
from pagecrawl.exceptions import InvalidIdentityError
from pagecrawl.identity import to_dashed
from pagecrawl.models import CacheRecord, Page


def _crawler(
    directory: Path,
    live: Transport,
    read_cache: bool = True,
    redownload: bool = False,
    events: Optional[list[Event]] = None,
) -> Crawler:
    observer = events.append if events is not None else None
    api = ContentAPI()
    caching = CachingTransport(
        CacheStore.open(directory),
        live,
        oracle=VersionOracle(api, live, observer=observer),
        read_cache=read_cache,
        redownload_newer_versions=redownload,
        observer=observer,
    )
    return Crawler(caching, api.download_page, observer=observer)


def _snapshot(directory: Path) -> dict[str, bytes]:
    return {p.name: p.read_bytes() for p in sorted(directory.iterdir())}


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


class TestCrawl:
    def test_cycle_downloads_each_page_once(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        crawler = _crawler(tmp_path, live)
        pages = crawler.crawl(PAGE_A)

        assert [p.id for p in pages] == [PAGE_A, PAGE_B]
        assert server.count("loadPageChunk") == 2
        assert sorted(_snapshot(tmp_path)) == [f"{PAGE_A}.txt", f"{PAGE_B}.txt"]
        assert crawler.session.requests_not_from_cache == 2
        assert crawler.session.requests_from_cache == 0
        assert crawler.store.records_written == 2

    def test_result_sorted_by_id(self, tmp_path: Path, server: FakeContentServer, live) -> None:
        server.add_page(PAGE_C, title="C", children=[PAGE_A])
        pages = _crawler(tmp_path, live).crawl(to_dashed(PAGE_C))
        assert [p.id for p in pages] == [PAGE_A, PAGE_B, PAGE_C]

    def test_breadth_first_order(self, tmp_path: Path, server: FakeContentServer, live) -> None:
        server.add_page(PAGE_C, children=[PAGE_B, PAGE_A])
        seen: list[str] = []
        _crawler(tmp_path, live).crawl(PAGE_C, on_each_page=lambda p: seen.append(p.id))
        assert seen == [PAGE_C, PAGE_B, PAGE_A]

    def test_callback_error_aborts(self, tmp_path: Path, server: FakeContentServer, live) -> None:
        class Stop(Exception):
            pass

        def stop(page: Page) -> None:
            raise Stop

        with pytest.raises(Stop):
            _crawler(tmp_path, live).crawl(PAGE_A, on_each_page=stop)
        assert server.count("loadPageChunk") == 1
        assert (tmp_path / f"{PAGE_A}.txt").is_file()

    def test_invalid_start_id(self, tmp_path: Path, server: FakeContentServer, live) -> None:
        with pytest.raises(InvalidIdentityError):
            _crawler(tmp_path, live).crawl("not-a-page")
        assert server.requests == []

    def test_events(self, tmp_path: Path, server: FakeContentServer, live) -> None:
        events: list[Event] = []
        _crawler(tmp_path, live, events=events).crawl(PAGE_A)
        assert [type(e) for e in events] == [DownloadCompleted, DownloadCompleted]
        assert [e.page_id for e in events] == [PAGE_A, PAGE_B]


# ---------------------------------------------------------------------------
# Cache reuse
# ---------------------------------------------------------------------------


class TestCacheReuse:
    def test_second_run_needs_no_network(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        first = _crawler(tmp_path, live).crawl(PAGE_A)
        files = _snapshot(tmp_path)

        server.fail = True
        events: list[Event] = []
        crawler = _crawler(tmp_path, live, events=events)
        second = crawler.crawl(PAGE_A)

        assert second == first
        assert crawler.session.requests_from_cache == 2
        assert crawler.session.requests_not_from_cache == 0
        assert all(isinstance(e, ServedFromCache) for e in events)
        assert _snapshot(tmp_path) == files

    def test_cached_responses_are_json_equivalent(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        _crawler(tmp_path, live).crawl(PAGE_A)
        [record] = CacheStore.open(tmp_path).records(PAGE_A)
        live_response = server.page_chunk(PAGE_A)
        assert json.loads(record.response) == live_response

    def test_no_read_cache_downloads_and_rewrites(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        _crawler(tmp_path, live).crawl(PAGE_A)
        server.add_page(PAGE_B, version=6, title="Page B v6", children=[PAGE_A])

        crawler = _crawler(tmp_path, live, read_cache=False)
        pages = crawler.crawl(PAGE_A)

        assert server.count("loadPageChunk") == 4
        assert crawler.session.requests_from_cache == 0
        assert pages[1].title == "Page B v6"
        assert CacheStore.open(tmp_path).records(PAGE_B)[0].response.count(b"Page B v6") == 1

    def test_failed_download_still_flushes_recorded_requests(self, tmp_path: Path) -> None:
        url = ContentAPI().page_chunk_url

        class Echo(Transport):
            def request(self, method: str, url: str, body: bytes) -> bytes:
                return b"{}"

        def partial(page_id: str, transport: Transport) -> Page:
            transport.post(url, b'{"first": true}')
            raise RuntimeError("parse failure")

        store = CacheStore.open(tmp_path)
        crawler = Crawler(CachingTransport(store, Echo()), partial)

        with pytest.raises(RuntimeError):
            crawler.download_page(PAGE_A)

        assert [r.body for r in store.records(PAGE_A)] == [b'{"first": true}']
        assert crawler.session.current_page is None

    def test_flush_failure_reported_not_raised(
        self, tmp_path: Path, server: FakeContentServer, live, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def _fail(self: Path, data: bytes) -> int:
            raise OSError("read-only file system")

        events: list[Event] = []
        crawler = _crawler(tmp_path, live, events=events)
        monkeypatch.setattr(Path, "write_bytes", _fail)

        page = crawler.download_page(PAGE_A)

        assert page.id == PAGE_A
        errors = [e for e in events if isinstance(e, ErrorEvent)]
        assert len(errors) == 1
        assert "read-only" in errors[0].message
        assert not (tmp_path / f"{PAGE_A}.txt").exists()


# ---------------------------------------------------------------------------
# Freshness
# ---------------------------------------------------------------------------


class TestRedownloadNewer:
    def test_fresh_page_served_from_cache(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        _crawler(tmp_path, live).crawl(PAGE_A)
        events: list[Event] = []
        crawler = _crawler(tmp_path, live, redownload=True, events=events)

        page = crawler.download_page(PAGE_A)

        assert page.version == 3
        assert server.count("loadPageChunk") == 2
        assert server.count("getRecordValues") == 1
        assert [type(e) for e in events] == [VersionsFetched, ServedFromCache]

    def test_stale_page_downloaded_again(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        _crawler(tmp_path, live).crawl(PAGE_A)
        server.blocks[PAGE_A]["version"] = 4
        events: list[Event] = []
        crawler = _crawler(tmp_path, live, redownload=True, events=events)

        page = crawler.download_page(PAGE_A)

        assert page.version == 4
        assert server.count("loadPageChunk") == 3
        assert crawler.session.requests_from_cache == 0
        assert crawler.session.requests_not_from_cache == 1
        assert isinstance(events[-1], DownloadCompleted)
        assert b'"version": 4' in (tmp_path / f"{PAGE_A}.txt").read_bytes()

    def test_whole_crawl_checks_versions_once(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        _crawler(tmp_path, live).crawl(PAGE_A)
        server.blocks[PAGE_B]["version"] = 9

        pages = _crawler(tmp_path, live, redownload=True).crawl(PAGE_A)

        assert [p.version for p in pages] == [3, 9]
        assert server.count("getRecordValues") == 1
        assert server.count("loadPageChunk") == 3

    def test_incomplete_cache_falls_back_to_normal_download(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        store = CacheStore.open(tmp_path)
        store.append(
            PAGE_A,
            CacheRecord(method="POST", url="https://elsewhere/", body=b"{}", response=b"{}"),
        )
        store.flush(PAGE_A)

        crawler = _crawler(tmp_path, live, redownload=True)
        page = crawler.download_page(PAGE_A)

        assert page.version == 3
        assert server.count("getRecordValues") == 0
        assert server.count("loadPageChunk") == 1

    def test_version_check_failure_redownloads(
        self, tmp_path: Path, server: FakeContentServer, live
    ) -> None:
        _crawler(tmp_path, live).crawl(PAGE_A)
        server.failing.add("getRecordValues")
        events: list[Event] = []
        crawler = _crawler(tmp_path, live, redownload=True, events=events)
        page = crawler.download_page(PAGE_A)

        assert page.id == PAGE_A
        assert any(isinstance(e, ErrorEvent) for e in events)
        assert isinstance(events[-1], DownloadCompleted)
