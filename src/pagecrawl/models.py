"""Canonical Pydantic models shared across all pagecrawl modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ApiConfig`, :class:`CacheConfig`, :class:`RequestConfig`, and
    :class:`GlobalConfig`.

**Cache and page models** -- produced by the cache codec and the content API:
    :class:`CacheRecord` and :class:`Page`.

All models use Pydantic v2.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field


# --- Configuration ---


class ApiConfig(BaseModel):
    """Where the content API lives and how to authenticate against it."""

    base_url: str = Field(
        default="https://www.notion.so", description="Base URL of the content API"
    )
    token_source: Optional[str] = Field(
        default=None,
        description="Credential source for the session token: env:VAR, file:/path, prompt",
    )
    token_cookie: str = Field(
        default="token_v2", description="Cookie name the session token is sent in"
    )


class CacheConfig(BaseModel):
    """Page cache settings stored in :class:`GlobalConfig`.

    ``read_cache=False`` still writes every downloaded page to the cache but
    never answers a request from it. ``redownload_newer_versions`` enables the
    freshness check against the server's current page versions.
    """

    directory: Optional[str] = Field(
        default=None, description="Cache directory (defaults to <cache_dir>/pages)"
    )
    read_cache: bool = Field(default=True, description="Serve requests from the cache")
    redownload_newer_versions: bool = Field(
        default=False, description="Re-download pages whose server version is newer"
    )


class RequestConfig(BaseModel):
    """Default HTTP request settings applied to every live API call."""

    timeout: int = Field(default=30, gt=0, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=3, ge=0, description="Max retry attempts")


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/pagecrawl/config.json``.

    Loaded and saved by :func:`~pagecrawl.config.load_global_config` and
    :func:`~pagecrawl.config.save_global_config`. See
    :func:`~pagecrawl.config.resolve_config` for the precedence chain.
    """

    api: ApiConfig = Field(default_factory=ApiConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)


# --- Cache and pages ---


class CacheRecord(BaseModel):
    """One network exchange recorded while downloading a page.

    Lookups match on the exact ``(method, url, body)`` triple; ``body`` and
    ``response`` are compared and stored as raw bytes.
    """

    method: str
    url: str
    body: bytes = b""
    response: bytes = b""

    def matches(self, method: str, url: str, body: bytes) -> bool:
        """Return ``True`` if this record answers the given request."""
        return self.method == method and self.url == url and self.body == body


class Page(BaseModel):
    """A downloaded page.

    The cache and crawler only consume :attr:`id`, :attr:`version` and
    :attr:`child_ids`; :attr:`title` and :attr:`blocks` are kept for callers.

    Attributes:
        id: The page id in no-dash form.
        version: Server-side version of the page's root block.
        title: Plain text of the root block's title, if any.
        child_ids: Ids of sub-pages referenced from this page, in document order.
        blocks: Raw block values keyed by no-dash block id.
    """

    id: str
    version: int = 0
    title: str = ""
    child_ids: list[str] = Field(default_factory=list)
    blocks: dict[str, dict[str, Any]] = Field(default_factory=dict)
