"""Structured observability events emitted while crawling.

Events are plain dataclasses handed to an optional observer callable. The
crawler and caching transport call :func:`emit`; with no observer installed
emitting is a no-op.

* :class:`DownloadCompleted` -- a page needed at least one live request.
* :class:`ServedFromCache` -- a page was answered entirely from the cache.
* :class:`VersionsFetched` -- a version query for ``count`` pages finished.
* :class:`ErrorEvent` -- a non-fatal failure (cache write, version check).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Union


@dataclass(frozen=True)
class DownloadCompleted:
    page_id: str
    duration: float


@dataclass(frozen=True)
class ServedFromCache:
    page_id: str
    duration: float


@dataclass(frozen=True)
class VersionsFetched:
    count: int
    duration: float


@dataclass(frozen=True)
class ErrorEvent:
    message: str


Event = Union[DownloadCompleted, ServedFromCache, VersionsFetched, ErrorEvent]
EventObserver = Callable[[Event], None]


def emit(observer: Optional[EventObserver], event: Event) -> None:
    """Deliver *event* to *observer* if one is installed."""
    if observer is not None:
        observer(event)


def describe(event: Event) -> str:
    """Return a one-line human-readable description of *event*."""
    if isinstance(event, DownloadCompleted):
        return f"Downloaded {event.page_id} in {event.duration:.2f}s"
    if isinstance(event, ServedFromCache):
        return f"Read {event.page_id} from cache in {event.duration:.2f}s"
    if isinstance(event, VersionsFetched):
        return f"Got versions for {event.count} pages in {event.duration:.2f}s"
    return f"Error: {event.message}"
