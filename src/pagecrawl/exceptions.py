"""Exception hierarchy for pagecrawl.

All exceptions inherit from :class:`PagecrawlError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`pagecrawl.exit_codes`.
The top-level error handler in :func:`pagecrawl.app.main` catches
``PagecrawlError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    PagecrawlError (exit 1)
    +-- InvalidIdentityError   (exit 2)
    +-- CacheLoadError         (exit 8)
    +-- CacheWriteError        (exit 8)
    +-- CacheFormatError       (exit 8)
    +-- VersionQueryError      (exit 9)
    +-- RemoteTransportError   (exit 6)
    |   +-- AuthError          (exit 3)
    +-- SpanParseError         (exit 1)
    +-- ConfigError            (exit 1)
"""

from __future__ import annotations

from pagecrawl.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CACHE_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_VERSION_QUERY_ERROR,
)


class PagecrawlError(Exception):
    """Base exception for all pagecrawl errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`pagecrawl.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidIdentityError(PagecrawlError):
    """Raised when a string passed to crawl/download is not a valid page id."""

    exit_code = EXIT_INVALID_USAGE


class CacheLoadError(PagecrawlError):
    """Raised when the cache directory cannot be created or read at startup."""

    exit_code = EXIT_CACHE_ERROR


class CacheWriteError(PagecrawlError):
    """Raised when flushing a page's log to disk fails.

    The partially written file has already been removed when this is raised.
    """

    exit_code = EXIT_CACHE_ERROR


class CacheFormatError(PagecrawlError):
    """Raised when cache file content does not parse as a sequence of records."""

    exit_code = EXIT_CACHE_ERROR


class VersionQueryError(PagecrawlError):
    """Raised when a version query fails or returns a mismatched result set."""

    exit_code = EXIT_VERSION_QUERY_ERROR


class RemoteTransportError(PagecrawlError):
    """Raised by the live transport on network failures or HTTP error statuses.

    Args:
        message: Human-readable error description.
        status_code: The HTTP status, or ``None`` for network-level failures.
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(RemoteTransportError):
    """Raised when the API rejects the credentials (HTTP 401 / 403)."""

    exit_code = EXIT_AUTH_FAILURE


class SpanParseError(PagecrawlError):
    """Raised when a text-span array does not have the expected shape."""

    exit_code = EXIT_GENERIC_FAILURE


class ConfigError(PagecrawlError):
    """Raised for configuration problems (invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE
