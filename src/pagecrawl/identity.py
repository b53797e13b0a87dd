"""Page identity parsing and normalisation.

A page id is a 128-bit value written either as 32 hex characters
(``0367c2db381a4f8b9ce360f388a6b2e3``, the *no-dash* form) or in the dashed
8-4-4-4-12 form (``0367c2db-381a-4f8b-9ce3-60f388a6b2e3``). Equality is
defined on the lowercase no-dash form, which is also what cache file names
and crawl dedup use.

:func:`parse_identity` is lenient about surrounding text so that page URLs
and slugs such as ``https://host/My-Page-0367c2db381a4f8b9ce360f388a6b2e3``
are accepted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from pagecrawl.exceptions import InvalidIdentityError

_NO_DASH_RE = re.compile(r"(?<![0-9a-f])([0-9a-f]{32})$")
_DASHED_RE = re.compile(
    r"(?<![0-9a-f])([0-9a-f]{8})-([0-9a-f]{4})-([0-9a-f]{4})-([0-9a-f]{4})-([0-9a-f]{12})$"
)


@dataclass(frozen=True)
class PageIdentity:
    """A validated page id in both canonical forms."""

    no_dash: str
    dashed: str

    def __str__(self) -> str:
        return self.no_dash


def to_no_dash(value: str) -> str:
    """Strip dashes and lowercase *value*. Does not validate."""
    return value.replace("-", "").lower()


def to_dashed(no_dash: str) -> str:
    """Format a 32-character no-dash id as 8-4-4-4-12."""
    s = no_dash
    return f"{s[:8]}-{s[8:12]}-{s[12:16]}-{s[16:20]}-{s[20:]}"


def parse_identity(value: str) -> Optional[PageIdentity]:
    """Parse *value* as a page id.

    Accepts the no-dash or dashed form, optionally preceded by other text
    (a URL path or a title slug). A trailing query string or fragment is
    ignored.

    Args:
        value: Free-form string to parse.

    Returns:
        The :class:`PageIdentity`, or ``None`` if *value* does not end in a
        valid id.
    """
    if not value:
        return None
    s = value.strip().lower()
    s = s.split("?", 1)[0].split("#", 1)[0].rstrip("/")

    m = _DASHED_RE.search(s)
    if m:
        no_dash = "".join(m.groups())
        return PageIdentity(no_dash=no_dash, dashed=to_dashed(no_dash))

    m = _NO_DASH_RE.search(s)
    if m is None:
        return None
    no_dash = m.group(1)
    return PageIdentity(no_dash=no_dash, dashed=to_dashed(no_dash))


def require_identity(value: str) -> PageIdentity:
    """Like :func:`parse_identity` but raises on failure.

    Raises:
        InvalidIdentityError: If *value* is not a valid page id.
    """
    ident = parse_identity(value)
    if ident is None:
        raise InvalidIdentityError(f"'{value}' is not a valid page id")
    return ident
