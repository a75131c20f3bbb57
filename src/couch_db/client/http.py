"""HTTP transports on httpx, with retry/backoff for unreachable servers.

HTTPTransport blocks until the response is complete.  AsyncHTTPTransport
returns coroutines, to be driven by an asyncio event loop; use it together
with delayed calls (see Result.run_async()).
"""

import json
import logging
from email import policy
from email.message import Message
from email.parser import BytesParser
from typing import Any

import httpx

from .config import CouchConfig
from .exceptions import CouchTransportError
from .retry import get_retry_decorator

logger = logging.getLogger("couch-db")


class HTTPResponse:
    """Response descriptor around an httpx.Response.

    Decoding is lazy: a body nobody asks for is never parsed.
    """

    def __init__(self, response: httpx.Response):
        self.response = response
        self._parts: list[Message] | None = None

    def __repr__(self) -> str:
        return f"HTTPResponse({self.status_code})"

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers

    @property
    def content(self) -> bytes:
        """The undecoded body."""
        return self.response.content

    @property
    def is_multipart(self) -> bool:
        return self.headers.get("content-type", "").startswith("multipart/")

    def answer(self) -> Any:
        """JSON body, or the first JSON part of a multipart body."""
        if not self.is_multipart:
            return self._decode(self.content)

        for part in self._multipart():
            if part.get_content_type() == "application/json":
                return self._decode(part.get_payload(decode=True))
        return None

    def attachment(self, name: str) -> bytes | None:
        """Raw content of the part which carries the named file."""
        for part in self._multipart():
            if part.get_filename() == name:
                return part.get_payload(decode=True)
        return None

    def _multipart(self) -> list[Message]:
        if self._parts is None:
            if not self.is_multipart:
                self._parts = []
            else:
                # The parser needs the boundary from the response headers
                head = f"Content-Type: {self.headers['content-type']}\r\n\r\n".encode()
                message = BytesParser(policy=policy.HTTP).parsebytes(head + self.content)
                self._parts = list(message.iter_parts())
        return self._parts

    @staticmethod
    def _decode(content: bytes | None) -> Any:
        if not content:
            return None
        try:
            return json.loads(content)
        except ValueError:
            logger.debug("Response body is not JSON")
            return None


def _body_arguments(body: Any) -> dict[str, Any]:
    if body is None:
        return {}
    if isinstance(body, (bytes, bytearray)):
        return {"content": bytes(body)}
    return {"json": body}


def _transport_error(url: httpx.URL, error: httpx.TransportError) -> CouchTransportError:
    if isinstance(error, httpx.ConnectError):
        return CouchTransportError(f"Cannot connect to {url.host}: {error}")
    if isinstance(error, httpx.TimeoutException):
        return CouchTransportError(f"Request timeout to {url.host}: {error}")
    return CouchTransportError(f"Transport failure with {url.host}: {error}")


class HTTPTransport:
    """Blocking HTTP transport.

    Implements CouchTransport on top of httpx.Client.  Failures to reach the
    server are retried with exponential backoff, up to config.max_attempts.

    Usage:
        transport = HTTPTransport(config)
        response = transport.execute("GET", httpx.URL("http://127.0.0.1:5984/"), {})
        transport.close()

    Or as context manager:
        with HTTPTransport(config) as transport:
            ...
    """

    def __init__(self, config: CouchConfig | None = None, client: httpx.Client | None = None):
        """Initialize HTTP transport.

        Args:
            config: Client configuration. If None, loads from environment.
            client: Optional pre-configured httpx client (for testing/advanced use).
        """
        self.config = config or CouchConfig()
        self._client = client
        self._send = get_retry_decorator(self.config.max_attempts)(self._send_once)

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self.config.timeout)
        return self._client

    def __enter__(self) -> "HTTPTransport":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - close client."""
        self.close()

    def close(self) -> None:
        """Close HTTP client and release resources."""
        if self._client:
            self._client.close()
            self._client = None

    def execute(
        self,
        method: str,
        url: httpx.URL,
        headers: dict[str, str],
        body: Any = None,
    ) -> HTTPResponse:
        """Execute the request, retrying when the server cannot be reached."""
        return self._send(method, url, headers, body)

    def _send_once(self, method: str, url: httpx.URL, headers: dict[str, str], body: Any) -> HTTPResponse:
        try:
            response = self.client.request(method, url, headers=headers, **_body_arguments(body))
        except httpx.TransportError as e:
            raise _transport_error(url, e) from e
        return HTTPResponse(response)


class AsyncHTTPTransport:
    """Cooperative HTTP transport on httpx.AsyncClient.

    execute() returns a coroutine: the dispatcher only accepts that for
    delayed calls, which are completed with ``await result.run_async()``.
    """

    def __init__(self, config: CouchConfig | None = None, client: httpx.AsyncClient | None = None):
        self.config = config or CouchConfig()
        self._client = client
        self._send = get_retry_decorator(self.config.max_attempts)(self._send_once)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def __aenter__(self) -> "AsyncHTTPTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close HTTP client and release resources."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def close(self) -> None:
        """Forget the client; use aclose() from within the event loop to close it."""
        self._client = None

    async def execute(
        self,
        method: str,
        url: httpx.URL,
        headers: dict[str, str],
        body: Any = None,
    ) -> HTTPResponse:
        return await self._send(method, url, headers, body)

    async def _send_once(self, method: str, url: httpx.URL, headers: dict[str, str], body: Any) -> HTTPResponse:
        try:
            response = await self.client.request(method, url, headers=headers, **_body_arguments(body))
        except httpx.TransportError as e:
            raise _transport_error(url, e) from e
        return HTTPResponse(response)
