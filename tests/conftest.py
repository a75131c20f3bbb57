"""Pytest configuration and fixtures."""

from dataclasses import dataclass
from typing import Any, Callable

import httpx
import pytest

from couch_db.client import Couch, CouchConfig
from couch_db.client.connection import Connection, ConnectionRegistry


class FakeResponse:
    """Response descriptor with a prepared JSON answer."""

    def __init__(
        self,
        status_code: int = 200,
        body: Any = None,
        headers: dict[str, str] | None = None,
        parts: dict[str, bytes] | None = None,
    ):
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.parts = parts or {}
        self.decoded = 0

    def __repr__(self) -> str:
        return f"FakeResponse({self.status_code})"

    def answer(self) -> Any:
        self.decoded += 1
        return self.body

    def attachment(self, name: str) -> bytes | None:
        return self.parts.get(name)


@dataclass
class RecordedCall:
    method: str
    url: httpx.URL
    headers: dict[str, str]
    body: Any

    @property
    def host(self) -> str:
        return self.url.host


class FakeTransport:
    """Transport which records calls and replies from a script.

    Replies come from a handler ``handler(call) -> FakeResponse`` or, without
    one, from a queue.  An exception as reply is raised.
    """

    def __init__(self, handler: Callable[[RecordedCall], Any] | None = None):
        self.handler = handler
        self.replies: list[Any] = []
        self.calls: list[RecordedCall] = []
        self.closed = False

    def queue(self, *replies: Any) -> "FakeTransport":
        self.replies.extend(replies)
        return self

    def reply(self, call: RecordedCall) -> Any:
        reply = self.handler(call) if self.handler else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def execute(self, method: str, url: httpx.URL, headers: dict[str, str], body: Any = None) -> Any:
        call = RecordedCall(method, url, dict(headers), body)
        self.calls.append(call)
        return self.reply(call)

    def close(self) -> None:
        self.closed = True


class AsyncFakeTransport(FakeTransport):
    """Same script, replying through coroutines like AsyncHTTPTransport."""

    async def execute(self, method: str, url: httpx.URL, headers: dict[str, str], body: Any = None) -> Any:
        call = RecordedCall(method, url, dict(headers), body)
        self.calls.append(call)
        return self.reply(call)


@pytest.fixture
def config():
    """Create a test config for a local server."""
    return CouchConfig(
        server="http://127.0.0.1:5984",
        api="3.3.3",
        page_size=25,
        max_per_request=100,
    )


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def couch(config, transport):
    """Couch with one connection, which runs a known release."""
    couch = Couch(config, transport=transport, create_connection=False)
    couch.create_connection(name="local", server="http://127.0.0.1:5984", version="3.3.3")
    return couch


@pytest.fixture
def registry():
    """Three connections on different hosts and releases."""
    return ConnectionRegistry([
        Connection(name="a", server="http://a.example.com:5984", version="1.9.0", roles={"_reader"}),
        Connection(name="b", server="http://b.example.com:5984", version="2.1.0", roles={"_reader", "_admin"}),
        Connection(name="c", server="http://c.example.com:5984", version="3.3.3"),
    ])


@pytest.fixture
def respond():
    """Factory for scripted responses."""
    def make(body: Any = None, status_code: int = 200, **kwargs: Any) -> FakeResponse:
        return FakeResponse(status_code, body, **kwargs)
    return make


@pytest.fixture
def make_transport():
    """Factory for transports replying through a handler."""
    def make(handler: Callable[[RecordedCall], Any] | None = None, asynchronous: bool = False) -> FakeTransport:
        if asynchronous:
            return AsyncFakeTransport(handler)
        return FakeTransport(handler)
    return make
