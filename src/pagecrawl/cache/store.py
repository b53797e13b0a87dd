"""Per-page, file-backed log of request/response exchanges.

Each cached page owns one file ``<no-dash-id>.txt`` in the cache directory
holding the records of every request made while that page was downloaded
(see :mod:`pagecrawl.cache.records` for the format). The whole directory is
indexed into memory once by :meth:`CacheStore.load`; afterwards the index is
only changed by :meth:`CacheStore.flush`.

Records appended during a download are kept in a pending list and are not
visible to :meth:`CacheStore.lookup` until the page is flushed, so a download
never answers its own requests from exchanges it made itself.
"""

from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from typing import Any, Optional

from pagecrawl.cache.records import deserialize_records, serialize_records
from pagecrawl.exceptions import CacheFormatError, CacheLoadError, CacheWriteError
from pagecrawl.identity import parse_identity, to_no_dash
from pagecrawl.models import CacheRecord

logger = logging.getLogger(__name__)

CACHE_FILE_EXT = ".txt"


def cache_file_identity(name: str) -> Optional[str]:
    """Return the no-dash page id a cache file name stands for, or ``None``.

    A name qualifies only if it is exactly ``<no-dash-id>.txt``.
    """
    if not name.endswith(CACHE_FILE_EXT):
        return None
    stem = name[: -len(CACHE_FILE_EXT)]
    ident = parse_identity(stem)
    if ident is None or ident.no_dash != stem:
        return None
    return ident.no_dash


class CacheStore:
    """In-memory index over a directory of per-page cache files.

    Args:
        directory: The cache directory. Nothing is read until :meth:`load`
            is called.

    Example::

        store = CacheStore.open("~/.cache/pagecrawl/pages")
        resp = store.lookup(page_id, "POST", url, body)
        if resp is None:
            resp = live.post(url, body)
            store.append(page_id, CacheRecord(method="POST", url=url, body=body, response=resp))
        store.flush(page_id)
    """

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory).expanduser()
        self._logs: dict[str, list[CacheRecord]] = {}
        self._pending: dict[str, list[CacheRecord]] = {}
        self.records_written = 0

    @classmethod
    def open(cls, directory: str | Path) -> CacheStore:
        """Create a store for *directory* and :meth:`load` it."""
        store = cls(directory)
        store.load()
        return store

    @property
    def directory(self) -> Path:
        return self._dir

    def load(self) -> None:
        """Build the page index by scanning the cache directory.

        The directory is created if missing. Files whose name is not a page
        id plus ``.txt``, and files whose content does not parse, are left
        out of the index.

        Raises:
            CacheLoadError: If the directory cannot be created or listed, or a
                cache file cannot be read.
        """
        time_start = time.monotonic()
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            entries = sorted(self._dir.iterdir())
        except OSError as exc:
            raise CacheLoadError(f"Cannot read cache directory {self._dir}: {exc}") from exc

        logs: dict[str, list[CacheRecord]] = {}
        for path in entries:
            page_id = cache_file_identity(path.name)
            if page_id is None or not path.is_file():
                continue
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise CacheLoadError(f"Cannot read cache file {path}: {exc}") from exc
            try:
                logs[page_id] = deserialize_records(data)
            except CacheFormatError as exc:
                logger.warning("Skipping malformed cache file %s: %s", path, exc)

        self._logs = logs
        self._pending = {}
        logger.debug(
            "Loaded %d cached pages from %s in %.3fs",
            len(logs),
            self._dir,
            time.monotonic() - time_start,
        )

    def lookup(self, page_id: str, method: str, url: str, body: bytes) -> Optional[bytes]:
        """Find the cached response for a request made while downloading *page_id*.

        Scans the page's log in order and returns the first record matching
        ``method``, ``url`` and the exact bytes of ``body``.

        Returns:
            The cached response bytes, or ``None`` on a miss.
        """
        for record in self._logs.get(to_no_dash(page_id), ()):
            if record.matches(method, url, body):
                return record.response
        return None

    def append(self, page_id: str, record: CacheRecord) -> None:
        """Queue *record* to be written on the next :meth:`flush` of *page_id*."""
        self._pending.setdefault(to_no_dash(page_id), []).append(record)

    def pending(self, page_id: str) -> list[CacheRecord]:
        """Return the records queued for *page_id* (a copy)."""
        return list(self._pending.get(to_no_dash(page_id), ()))

    def flush(self, page_id: str) -> int:
        """Write the queued records of *page_id* to its cache file.

        The file is overwritten, not merged. On success the written log
        replaces the page's entry in the index, as it reads back from disk.
        Nothing happens when no records are queued.

        Returns:
            The number of records written.

        Raises:
            CacheWriteError: If the file cannot be written. The partially
                written file is removed before raising.
        """
        key = to_no_dash(page_id)
        records = self._pending.pop(key, [])
        if not records:
            return 0

        data = serialize_records(records)
        path = self.path_for(key)
        try:
            path.write_bytes(data)
        except OSError as exc:
            try:
                os.remove(path)
            except OSError:
                pass
            raise CacheWriteError(f"Failed to write cache file {path}: {exc}") from exc

        self._logs[key] = deserialize_records(data)
        self.records_written += len(records)
        logger.debug("Wrote %d records to %s", len(records), path.name)
        return len(records)

    def path_for(self, page_id: str) -> Path:
        """Return the cache file path for *page_id*."""
        return self._dir / f"{to_no_dash(page_id)}{CACHE_FILE_EXT}"

    def page_ids(self) -> list[str]:
        """Return the no-dash ids of all indexed pages, sorted."""
        return sorted(self._logs)

    def records(self, page_id: str) -> list[CacheRecord]:
        """Return the indexed log of *page_id* (a copy; empty if not cached)."""
        return list(self._logs.get(to_no_dash(page_id), ()))

    def __contains__(self, page_id: object) -> bool:
        return isinstance(page_id, str) and to_no_dash(page_id) in self._logs

    def clear(self) -> int:
        """Delete every indexed cache file and empty the index.

        Returns:
            The number of files removed.
        """
        removed = 0
        for page_id in list(self._logs):
            path = self.path_for(page_id)
            if not path.is_file():
                continue
            try:
                path.unlink()
            except OSError as exc:
                raise CacheWriteError(f"Failed to remove cache file {path}: {exc}") from exc
            removed += 1
        self._logs = {}
        self._pending = {}
        return removed

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``directory`` (str path), ``pages`` (indexed page
            count), ``records`` (total indexed records), and
            ``records_written`` (records flushed by this instance).
        """
        return {
            "directory": str(self._dir),
            "pages": len(self._logs),
            "records": sum(len(log) for log in self._logs.values()),
            "records_written": self.records_written,
        }
