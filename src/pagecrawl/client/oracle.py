"""Batch lookup of the latest server-side version of pages.

:class:`VersionOracle` is always constructed with the *live* transport:
version checks decide whether cached data may be trusted, so answering them
from the cache would defeat the point.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence

from pagecrawl.client.api import ContentAPI
from pagecrawl.client.base import Transport
from pagecrawl.events import EventObserver, VersionsFetched, emit
from pagecrawl.exceptions import RemoteTransportError, VersionQueryError
from pagecrawl.identity import to_no_dash

MISSING_VERSION = 0
"""Version reported for pages absent from the results (deleted or private).

Real pages start at version 1, so a cached page is never considered stale
because of this value.
"""


class VersionOracle:
    """Queries the content API for current page versions.

    Args:
        api: Endpoint definitions used to build the query.
        transport: The live transport. Never pass a caching transport here.
        observer: Optional event observer; receives
            :class:`~pagecrawl.events.VersionsFetched` after each query.
    """

    def __init__(
        self,
        api: ContentAPI,
        transport: Transport,
        observer: Optional[EventObserver] = None,
    ) -> None:
        self._api = api
        self._transport = transport
        self._observer = observer

    def batch_get_versions(self, ids: Sequence[str]) -> list[int]:
        """Return the current version of each page in *ids*, in input order.

        Raises:
            VersionQueryError: If the query fails or its results do not line
                up with the queried ids.
        """
        versions = self.fetch_versions(ids)
        return [versions[to_no_dash(i)] for i in ids]

    def fetch_versions(self, ids: Sequence[str]) -> dict[str, int]:
        """Return a mapping of no-dash id to current version for *ids*.

        Ids are normalised, de-duplicated and sorted before querying. The
        response must hold exactly one result per queried id, in the same
        order; pages without a result value map to :data:`MISSING_VERSION`.

        Raises:
            VersionQueryError: If the live call fails, the result count
                differs from the number of queried ids, or a result's id does
                not match its position.
        """
        query = sorted({to_no_dash(i) for i in ids})
        if not query:
            return {}

        time_start = time.monotonic()
        try:
            values = self._api.get_block_versions(query, self._transport)
        except RemoteTransportError as exc:
            raise VersionQueryError(
                f"Version query for {len(query)} pages failed: {exc}"
            ) from exc

        if len(values) != len(query):
            raise VersionQueryError(
                f"Version query got {len(values)} results, expected {len(query)}"
            )

        versions: dict[str, int] = {}
        for page_id, value in zip(query, values):
            if value is None:
                versions[page_id] = MISSING_VERSION
                continue
            if not isinstance(value, dict):
                raise VersionQueryError(f"Version query result for {page_id} is not an object")
            got_id = to_no_dash(str(value.get("id", "")))
            if got_id != page_id:
                raise VersionQueryError(
                    f"Version query results out of order: expected {page_id}, got {got_id}"
                )
            try:
                versions[page_id] = int(value.get("version") or MISSING_VERSION)
            except (TypeError, ValueError) as exc:
                raise VersionQueryError(
                    f"Version query result for {page_id} has a bad version: {value.get('version')!r}"
                ) from exc

        emit(self._observer, VersionsFetched(count=len(query), duration=time.monotonic() - time_start))
        return versions
