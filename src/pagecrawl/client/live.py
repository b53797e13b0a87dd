"""Live HTTP transport with auth injection, retry, and error mapping.

This module provides :class:`LiveTransport`, the transport that actually
talks to the content API. It wraps :class:`httpx.Client` and layers on:

- **Auth injection** -- the session token is sent as a cookie on every
  request.
- **Retry with backoff** -- retries on 5xx and network errors with
  exponential delay (1 s, 2 s, 4 s, ...).
- **Error mapping** -- HTTP error statuses and network failures surface as
  :class:`~pagecrawl.exceptions.RemoteTransportError` (or
  :class:`~pagecrawl.exceptions.AuthError` for 401/403).

Retries live here rather than in the cache layer: the caching transport and
the crawler never retry on their own.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Optional

import httpx

from pagecrawl.client.base import Transport
from pagecrawl.exceptions import AuthError, RemoteTransportError
from pagecrawl.models import RequestConfig

logger = logging.getLogger(__name__)


class LiveTransport(Transport):
    """Blocking transport backed by :class:`httpx.Client`.

    Must be used as a context manager so that the underlying connection pool
    is opened and closed.

    Args:
        config: Timeout, SSL verification and retry settings.
        token: Optional session token, sent as the ``token_cookie`` cookie.
        token_cookie: Cookie name for the session token.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.

    Example::

        with LiveTransport(RequestConfig(), token="...") as live:
            data = live.post("https://www.notion.so/api/v3/loadPageChunk", body)
    """

    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        token: Optional[str] = None,
        token_cookie: str = "token_v2",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config or RequestConfig()
        self._token = token
        self._token_cookie = token_cookie
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self.requests_sent = 0

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> LiveTransport:
        kwargs: dict[str, Any] = {
            "timeout": self._config.timeout,
            "verify": self._config.verify_ssl,
            "follow_redirects": True,
        }
        if self._transport is not None:
            kwargs["transport"] = self._transport
        self._client = httpx.Client(**kwargs)
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    # ------------------------------------------------------------------ #
    # Transport
    # ------------------------------------------------------------------ #

    def request(self, method: str, url: str, body: bytes) -> bytes:
        """Send the request, retrying transient failures.

        Returns:
            The raw response body.

        Raises:
            AuthError: On 401 / 403.
            RemoteTransportError: On any other 4xx, on 5xx after all retries,
                or on network / timeout errors after all retries.
        """
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self._token:
            headers["Cookie"] = f"{self._token_cookie}={self._token}"

        response = self._execute_with_retry(method, url, headers, body)
        self._map_response_error(method, url, response)
        return response.content

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _execute_with_retry(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: bytes,
    ) -> httpx.Response:
        """Execute the HTTP request with exponential-backoff retry.

        Retries on 5xx status codes and connection / timeout errors up to
        ``max_retries`` times. The delay doubles each attempt: 1 s, 2 s, 4 s, ...
        """
        assert self._client is not None, "Transport not initialised -- use as context manager"

        max_retries = self._config.max_retries

        for attempt in range(max_retries + 1):
            try:
                self.requests_sent += 1
                response = self._client.request(method, url, headers=headers, content=body)

                if response.status_code >= 500 and attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Server error %d, retrying in %ds (attempt %d/%d)",
                        response.status_code,
                        delay,
                        attempt + 1,
                        max_retries,
                    )
                    time.sleep(delay)
                    continue

                return response

            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    logger.debug(
                        "Connection error: %s, retrying in %ds (attempt %d/%d)",
                        exc,
                        delay,
                        attempt + 1,
                        max_retries,
                    )
                    time.sleep(delay)
                    continue
                raise RemoteTransportError(
                    f"{method} {url} failed after {max_retries + 1} attempts: {exc}"
                ) from exc

        raise RemoteTransportError(f"{method} {url} failed after all retries")  # pragma: no cover

    def _map_response_error(self, method: str, url: str, response: httpx.Response) -> None:
        """Raise a typed exception for error HTTP status codes."""
        status = response.status_code
        if status < 400:
            return

        try:
            detail = response.json()
            if isinstance(detail, dict):
                msg = detail.get("message") or detail.get("error") or detail.get("name") or ""
            else:
                msg = str(detail)
        except ValueError:
            msg = response.text[:200] if response.text else ""

        prefix = f"HTTP {status} from {method} {url}"
        full_msg = f"{prefix}: {msg}" if msg else prefix

        if status in (401, 403):
            raise AuthError(full_msg, status_code=status)
        raise RemoteTransportError(full_msg, status_code=status)
