"""Shared test fixtures for pagecrawl.

Provides an in-memory fake of the content API (served through
:class:`httpx.MockTransport`), isolated config environments, output state
management, and a CLI runner. These fixtures are automatically discovered by
pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import httpx
import pytest

from pagecrawl.client import LiveTransport
from pagecrawl.identity import to_dashed, to_no_dash
from pagecrawl.models import RequestConfig
from pagecrawl.output import set_output


PAGE_A = "0367c2db381a4f8b9ce360f388a6b2e3"
PAGE_B = "1c7a5c8d2e0f4b6a9d3e5f7a8b9c0d1e"
PAGE_C = "a1b2c3d4e5f60718293a4b5c6d7e8f90"
TEXT_1 = "5f0e1d2c3b4a59687766554433221100"


# ---------------------------------------------------------------------------
# Fake content API
# ---------------------------------------------------------------------------


def make_block(
    block_id: str,
    type: str = "page",
    version: int = 1,
    title: Optional[str] = None,
    content: Optional[list[str]] = None,
) -> dict[str, Any]:
    """Build a block value as the content API returns it."""
    block: dict[str, Any] = {
        "id": to_dashed(block_id),
        "type": type,
        "version": version,
        "content": [to_dashed(c) for c in content or []],
    }
    if title is not None:
        block["properties"] = {"title": [[title]]}
    return block


class FakeContentServer:
    """In-memory content API answering ``loadPageChunk`` and ``getRecordValues``.

    Each page comes back in one chunk holding the page block, its non-page
    descendants, and the blocks of directly referenced sub-pages.

    Attributes:
        blocks: Block values keyed by no-dash id.
        requests: ``(endpoint, decoded body)`` of every request received.
        fail: When ``True`` every request raises a connection error.
        failing: Endpoint names that answer with HTTP 500.
    """

    def __init__(self) -> None:
        self.blocks: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, dict[str, Any]]] = []
        self.fail = False
        self.failing: set[str] = set()

    def add_page(
        self,
        page_id: str,
        version: int = 1,
        title: str = "",
        children: Optional[list[str]] = None,
    ) -> None:
        self.blocks[page_id] = make_block(
            page_id, version=version, title=title or None, content=children
        )

    def add_block(self, block_id: str, **kwargs: Any) -> None:
        self.blocks[block_id] = make_block(block_id, **kwargs)

    def count(self, endpoint: str) -> int:
        return sum(1 for name, _ in self.requests if name == endpoint)

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        endpoint = request.url.path.rsplit("/", 1)[-1]
        body = json.loads(request.content)
        self.requests.append((endpoint, body))
        if endpoint in self.failing:
            return httpx.Response(500, json={"message": "internal error"})
        if endpoint == "loadPageChunk":
            return httpx.Response(200, json=self.page_chunk(to_no_dash(body["pageId"])))
        if endpoint == "getRecordValues":
            return httpx.Response(200, json=self._record_values(body["requests"]))
        return httpx.Response(404, json={"message": "no such endpoint"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def page_chunk(self, page_id: str) -> dict[str, Any]:
        found: dict[str, Any] = {}
        stack = [page_id]
        while stack:
            block_id = stack.pop()
            block = self.blocks.get(block_id)
            if block is None or block_id in found:
                continue
            found[block_id] = {"value": block}
            if block_id == page_id or block["type"] != "page":
                stack.extend(to_no_dash(c) for c in block["content"])
        return {
            "recordMap": {"block": {to_dashed(k): v for k, v in found.items()}},
            "cursor": {"stack": []},
        }

    def _record_values(self, reqs: list[dict[str, Any]]) -> dict[str, Any]:
        results = []
        for req in reqs:
            block = self.blocks.get(to_no_dash(req["id"]))
            results.append({"value": {"id": block["id"], "version": block["version"]}} if block else {})
        return {"results": results}


@pytest.fixture
def server() -> FakeContentServer:
    """A fake content API holding a two-page cycle: A links B, B links A."""
    srv = FakeContentServer()
    srv.add_page(PAGE_A, version=3, title="Page A", children=[TEXT_1, PAGE_B])
    srv.add_block(TEXT_1, type="text", title="hello")
    srv.add_page(PAGE_B, version=5, title="Page B", children=[PAGE_A])
    return srv


@pytest.fixture
def live(server: FakeContentServer) -> LiveTransport:
    """A live transport wired to :func:`server`, with retries disabled."""
    with LiveTransport(RequestConfig(max_retries=0), transport=server.transport()) as lt:
        yield lt


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Uninstall the OutputManager and log handlers the CLI callback installs."""
    yield
    set_output(None)
    logger = logging.getLogger("pagecrawl")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config. Clears all PAGECRAWL_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("pagecrawl.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["PAGECRAWL_BASE_URL", "PAGECRAWL_CACHE_DIR", "PAGECRAWL_TOKEN"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner (wide terminal so Rich does not wrap messages)."""
    from typer.testing import CliRunner

    return CliRunner(env={"COLUMNS": "200"})
