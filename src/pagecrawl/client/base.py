"""Abstract transport interface shared by the live and caching transports.

A transport sends one request with an opaque byte body and returns the raw
response body. Page downloaders and the version oracle only ever talk to a
:class:`Transport`, so the caching layer can be slotted in front of the live
network without either side knowing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class Transport(ABC):
    """Sends a request and returns the response body bytes."""

    @abstractmethod
    def request(self, method: str, url: str, body: bytes) -> bytes:
        """Send *body* to *url* with *method* and return the response body.

        Raises:
            RemoteTransportError: On network failures or HTTP error statuses.
        """

    def post(self, url: str, body: bytes) -> bytes:
        """Send a POST request."""
        return self.request("POST", url, body)
