"""Tests for CacheStore -- indexing, lookup, pending records and flushing."""

from __future__ import annotations

from pathlib import Path

import pytest

from pagecrawl.cache import CacheStore, serialize_records
from pagecrawl.cache.store import cache_file_identity
from pagecrawl.exceptions import CacheLoadError, CacheWriteError
from pagecrawl.models import CacheRecord

PAGE = "0367c2db381a4f8b9ce360f388a6b2e3"
DASHED = "0367c2db-381a-4f8b-9ce3-60f388a6b2e3"
OTHER = "1c7a5c8d2e0f4b6a9d3e5f7a8b9c0d1e"
URL = "https://www.notion.so/api/v3/loadPageChunk"


def _rec(body: bytes, response: bytes, method: str = "POST") -> CacheRecord:
    return CacheRecord(method=method, url=URL, body=body, response=response)


def _write_log(directory: Path, page_id: str, *records: CacheRecord) -> Path:
    path = directory / f"{page_id}.txt"
    path.write_bytes(serialize_records(records, pretty_response=False))
    return path


# ------------------------------------------------------------------ #
# File names
# ------------------------------------------------------------------ #


class TestCacheFileIdentity:
    def test_no_dash_name(self) -> None:
        assert cache_file_identity(f"{PAGE}.txt") == PAGE

    @pytest.mark.parametrize(
        "name",
        [
            f"{DASHED}.txt",
            f"{PAGE}.json",
            f"{PAGE.upper()}.txt",
            f"Title-{PAGE}.txt",
            f"{PAGE}",
            "notes.txt",
        ],
    )
    def test_rejected_names(self, name: str) -> None:
        assert cache_file_identity(name) is None


# ------------------------------------------------------------------ #
# Loading
# ------------------------------------------------------------------ #


class TestLoad:
    def test_creates_missing_directory(self, tmp_path: Path) -> None:
        directory = tmp_path / "a" / "b"
        store = CacheStore.open(directory)
        assert directory.is_dir()
        assert store.page_ids() == []

    def test_indexes_only_page_files(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE, _rec(b"1", b"r1"))
        (tmp_path / "README.txt").write_text("not a cache file")
        (tmp_path / f"{OTHER}.bak").write_text("ignored")
        (tmp_path / OTHER).mkdir()

        store = CacheStore.open(tmp_path)
        assert store.page_ids() == [PAGE]
        assert PAGE in store
        assert DASHED in store
        assert OTHER not in store

    def test_upper_case_file_name_not_indexed(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE.upper(), _rec(b"1", b"r1"))
        store = CacheStore.open(tmp_path)
        assert store.page_ids() == []
        assert store.lookup(PAGE, "POST", URL, b"1") is None

    def test_malformed_file_is_skipped(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE, _rec(b"1", b"r1"))
        (tmp_path / f"{OTHER}.txt").write_bytes(b"garbage\n")

        store = CacheStore.open(tmp_path)
        assert store.page_ids() == [PAGE]

    def test_unusable_directory_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x")
        with pytest.raises(CacheLoadError):
            CacheStore.open(blocker / "pages")


# ------------------------------------------------------------------ #
# Lookup
# ------------------------------------------------------------------ #


class TestLookup:
    def test_exact_match_on_method_url_and_body(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE, _rec(b"1", b"r1"), _rec(b"2", b"r2"))
        store = CacheStore.open(tmp_path)

        assert store.lookup(PAGE, "POST", URL, b"2") == b"r2"
        assert store.lookup(DASHED, "POST", URL, b"1") == b"r1"
        assert store.lookup(PAGE, "GET", URL, b"1") is None
        assert store.lookup(PAGE, "POST", URL + "x", b"1") is None
        assert store.lookup(PAGE, "POST", URL, b"1 ") is None

    def test_first_match_wins(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE, _rec(b"1", b"first"), _rec(b"1", b"second"))
        store = CacheStore.open(tmp_path)
        assert store.lookup(PAGE, "POST", URL, b"1") == b"first"

    def test_lookup_is_scoped_to_page(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE, _rec(b"1", b"r1"))
        store = CacheStore.open(tmp_path)
        assert store.lookup(OTHER, "POST", URL, b"1") is None


# ------------------------------------------------------------------ #
# Pending records and flush
# ------------------------------------------------------------------ #


class TestFlush:
    def test_appended_records_invisible_until_flush(self, tmp_path: Path) -> None:
        store = CacheStore.open(tmp_path)
        store.append(PAGE, _rec(b"1", b"r1"))

        assert store.lookup(PAGE, "POST", URL, b"1") is None
        assert len(store.pending(PAGE)) == 1

        assert store.flush(PAGE) == 1
        assert store.lookup(PAGE, "POST", URL, b"1") == b"r1"
        assert store.pending(PAGE) == []
        assert store.records_written == 1

    def test_flush_overwrites_previous_file(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE, _rec(b"old", b"old"))
        store = CacheStore.open(tmp_path)
        store.append(DASHED, _rec(b"new", b"new"))
        store.flush(PAGE)

        reloaded = CacheStore.open(tmp_path)
        assert reloaded.records(PAGE) == [_rec(b"new", b"new")]
        assert store.lookup(PAGE, "POST", URL, b"old") is None

    def test_flush_with_nothing_pending_leaves_file(self, tmp_path: Path) -> None:
        path = _write_log(tmp_path, PAGE, _rec(b"1", b"r1"))
        before = path.read_bytes()
        store = CacheStore.open(tmp_path)

        assert store.flush(PAGE) == 0
        assert path.read_bytes() == before

    def test_write_failure_removes_file_and_raises(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store = CacheStore.open(tmp_path)
        store.append(PAGE, _rec(b"1", b"r1"))

        def _partial_write(self: Path, data: bytes) -> int:
            with open(self, "wb") as f:
                f.write(data[:3])
            raise OSError("disk full")

        monkeypatch.setattr(Path, "write_bytes", _partial_write)
        with pytest.raises(CacheWriteError, match="disk full"):
            store.flush(PAGE)

        assert not store.path_for(PAGE).exists()
        assert PAGE not in store
        assert store.records_written == 0


# ------------------------------------------------------------------ #
# Maintenance
# ------------------------------------------------------------------ #


class TestMaintenance:
    def test_stats(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE, _rec(b"1", b"r1"), _rec(b"2", b"r2"))
        _write_log(tmp_path, OTHER, _rec(b"1", b"r1"))
        store = CacheStore.open(tmp_path)

        stats = store.stats()
        assert stats["directory"] == str(tmp_path)
        assert stats["pages"] == 2
        assert stats["records"] == 3
        assert stats["records_written"] == 0

    def test_clear(self, tmp_path: Path) -> None:
        _write_log(tmp_path, PAGE, _rec(b"1", b"r1"))
        _write_log(tmp_path, OTHER, _rec(b"1", b"r1"))
        (tmp_path / "keep.txt").write_text("x")
        store = CacheStore.open(tmp_path)

        assert store.clear() == 2
        assert store.page_ids() == []
        assert sorted(p.name for p in tmp_path.iterdir()) == ["keep.txt"]
