"""Content API endpoints used to download pages and query their versions.

:class:`ContentAPI` knows the shape of two endpoints and nothing about
caching: every call goes through whatever :class:`~pagecrawl.client.base.Transport`
the caller passes in. The crawler hands it a caching transport scoped to the
page being downloaded; the version oracle hands it the live transport.

``loadPageChunk``
    ``{"pageId", "limit", "cursor": {"stack": [...]}, "chunkNumber",
    "verticalColumns"}`` returns ``{"recordMap": {"block": {id: {"value":
    {...}}}}, "cursor": {"stack": [...]}}``. A page is complete once the
    returned cursor stack is empty.

``getRecordValues``
    ``{"requests": [{"id", "table": "block"}]}`` returns ``{"results":
    [{"value": {...}} | {}]}`` in request order; pages that are deleted or
    not visible come back without a ``value``.

Request bodies are serialised with sorted keys so identical requests produce
identical bytes, which is what the cache matches on.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pagecrawl.client.base import Transport
from pagecrawl.exceptions import RemoteTransportError, SpanParseError
from pagecrawl.identity import require_identity, to_dashed, to_no_dash
from pagecrawl.models import Page
from pagecrawl.spans import parse_text_spans, spans_to_text

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.notion.so"


class ContentAPI:
    """Request builder and response parser for the content API.

    Args:
        base_url: Scheme and host of the API, without a trailing slash.
        chunk_limit: Number of blocks requested per page chunk.
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, chunk_limit: int = 100) -> None:
        self.base_url = base_url.rstrip("/")
        self.chunk_limit = chunk_limit

    @property
    def page_chunk_url(self) -> str:
        return f"{self.base_url}/api/v3/loadPageChunk"

    @property
    def record_values_url(self) -> str:
        return f"{self.base_url}/api/v3/getRecordValues"

    def download_page(self, page_id: str, transport: Transport) -> Page:
        """Download every chunk of a page and assemble a :class:`Page`.

        Args:
            page_id: Page id in any accepted form.
            transport: Transport all chunk requests are sent through.

        Returns:
            The assembled page.

        Raises:
            InvalidIdentityError: If *page_id* is not a valid id.
            RemoteTransportError: If a request fails, a response is not JSON,
                or the page's own block is missing from the responses.
        """
        ident = require_identity(page_id)
        blocks: dict[str, dict[str, Any]] = {}
        cursor: dict[str, Any] = {"stack": []}
        chunk_number = 0

        while True:
            req = {
                "pageId": ident.dashed,
                "limit": self.chunk_limit,
                "cursor": cursor,
                "chunkNumber": chunk_number,
                "verticalColumns": False,
            }
            data = self._post_json(transport, self.page_chunk_url, req)
            record_map = data.get("recordMap") or {}
            for block_id, entry in (record_map.get("block") or {}).items():
                value = entry.get("value") if isinstance(entry, dict) else None
                if value:
                    blocks[to_no_dash(block_id)] = value

            cursor = data.get("cursor") or {}
            if not cursor.get("stack"):
                break
            chunk_number += 1

        root = blocks.get(ident.no_dash)
        if root is None:
            raise RemoteTransportError(f"Page {ident.dashed} is missing from the API response")

        return Page(
            id=ident.no_dash,
            version=int(root.get("version") or 0),
            title=_page_title(root),
            child_ids=_child_page_ids(ident.no_dash, blocks),
            blocks=blocks,
        )

    def get_block_versions(self, ids: list[str], transport: Transport) -> list[Optional[dict[str, Any]]]:
        """Fetch the current record of each block in *ids*.

        Returns:
            One entry per result in response order: the block's value (with at
            least ``id`` and ``version``), or ``None`` for pages that are
            deleted or not visible.

        Raises:
            RemoteTransportError: If the request fails or the response has no
                ``results`` list.
        """
        req = {"requests": [{"id": to_dashed(to_no_dash(i)), "table": "block"} for i in ids]}
        data = self._post_json(transport, self.record_values_url, req)
        results = data.get("results")
        if not isinstance(results, list):
            raise RemoteTransportError("getRecordValues response has no 'results' list")
        return [(r.get("value") or None) if isinstance(r, dict) else None for r in results]

    def _post_json(self, transport: Transport, url: str, req: dict[str, Any]) -> dict[str, Any]:
        body = json.dumps(req, sort_keys=True).encode("utf-8")
        raw = transport.post(url, body)
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise RemoteTransportError(f"Invalid JSON from {url}: {exc}") from exc
        if not isinstance(data, dict):
            raise RemoteTransportError(f"Expected a JSON object from {url}")
        return data


def _page_title(root: dict[str, Any]) -> str:
    raw = (root.get("properties") or {}).get("title")
    try:
        return spans_to_text(parse_text_spans(raw))
    except SpanParseError as exc:
        logger.warning("Unparseable title on page %s: %s", root.get("id"), exc)
        return ""


def _child_page_ids(root_id: str, blocks: dict[str, dict[str, Any]]) -> list[str]:
    """Return ids of sub-pages reachable from the root without crossing a page."""
    children: list[str] = []
    seen = {root_id}
    stack = list(reversed(blocks[root_id].get("content") or []))
    while stack:
        block_id = to_no_dash(stack.pop())
        if block_id in seen:
            continue
        seen.add(block_id)
        block = blocks.get(block_id)
        if block is None:
            continue
        if block.get("type") == "page":
            children.append(block_id)
            continue
        stack.extend(reversed(block.get("content") or []))
    return children
