"""Transport protocol for CouchDB communication.

This module defines the interface that all transports must implement.
The dispatcher only ever talks to these protocols, so the synchronous and
the asyncio httpx transports (or a fake one, in tests) are interchangeable.
"""

from collections.abc import Awaitable, Mapping
from typing import Any, Protocol, runtime_checkable

import httpx


@runtime_checkable
class CouchResponse(Protocol):
    """Protocol for the response descriptor a transport returns.

    The response is kept inside the Result; the payload is only decoded
    when the Result is asked for it.
    """

    @property
    def status_code(self) -> int:
        """HTTP status code of the response."""
        ...

    @property
    def headers(self) -> Mapping[str, str]:
        """Response headers."""
        ...

    def answer(self) -> Any:
        """Decoded JSON payload.

        For multipart responses, this is the first JSON part.  Returns None
        when the response has no JSON body (for instance after HEAD).
        """
        ...

    def attachment(self, name: str) -> bytes | None:
        """Raw bytes of the named secondary part, or None when absent."""
        ...


@runtime_checkable
class CouchTransport(Protocol):
    """Protocol defining the transport interface.

    Transports are responsible for:
    - Performing the network call to the absolute target
    - Encoding the body (structured values as JSON, bytes as-is)
    - Raising CouchTransportError when the server cannot be reached

    HTTP error statuses are not exceptions at this level: they are returned
    as responses, and judged by the Result.
    """

    def execute(
        self,
        method: str,
        url: httpx.URL,
        headers: dict[str, str],
        body: Any = None,
    ) -> CouchResponse | Awaitable[CouchResponse]:
        """Execute one request.

        Args:
            method: HTTP method (GET, HEAD, POST, PUT, DELETE, COPY)
            url: Absolute target, including the query string
            headers: Complete set of request headers
            body: Optional body; bytes are sent verbatim, anything else as JSON

        Returns:
            A response descriptor, or an awaitable producing one for
            cooperative (asyncio) transports.

        Raises:
            CouchTransportError: If unable to connect or the request timed out
        """
        ...

    def close(self) -> None:
        """Clean up resources (connection pools, clients, etc.).

        Should be called when the transport is no longer needed.
        Safe to call multiple times.
        """
        ...
