"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~pagecrawl.exceptions.PagecrawlError` subclass.
Shell wrappers can inspect the exit code to tell a bad page id apart from an
unreadable cache or an unreachable API without parsing stderr.

Example::

    $ pagecrawl crawl not-an-id
    $ echo $?
    2   # EXIT_INVALID_USAGE -- the page id did not parse
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments (e.g. a malformed page id)."""

EXIT_AUTH_FAILURE = 3
"""The remote API rejected the credentials (HTTP 401/403)."""

EXIT_CONNECTION_ERROR = 6
"""The live transport failed (network error or HTTP error status)."""

EXIT_CACHE_ERROR = 8
"""The on-disk cache could not be read, parsed, or written."""

EXIT_VERSION_QUERY_ERROR = 9
"""The version query returned an error or a mismatched result set."""
