"""Backend connections and the registry which owns them.

A Connection is one reachable CouchDB server: its base URL, credentials,
capability roles, and the server release it runs (fetched on first use and
cached).  The ConnectionRegistry keeps them in registration order, which is
also the order of precedence when a call may go to any of them.
"""

from __future__ import annotations

import base64
import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx

from .exceptions import NoConnectionsError, UsageError

if TYPE_CHECKING:
    from .result import Result

logger = logging.getLogger("couch-db")

VERSION_PATTERN = re.compile(r"^\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?")


@dataclass(frozen=True, order=True)
class ServerVersion:
    """Release number of a CouchDB server, or of the api a program expects.

    Releases in the CouchDB documentation are often written without the
    patch level ("2.2"), so missing parts count as zero.
    """

    major: int
    minor: int = 0
    patch: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    @classmethod
    def parse(cls, value: "str | ServerVersion") -> "ServerVersion":
        """Parse "3", "3.3" or "3.3.3" (trailing labels are ignored).

        Raises:
            ValueError: If the string does not start with a release number.
        """
        if isinstance(value, ServerVersion):
            return value

        match = VERSION_PATTERN.match(str(value))
        if not match:
            raise ValueError(f"Invalid version: {value!r}")

        major, minor, patch = match.groups()
        return cls(int(major), int(minor or 0), int(patch or 0))


@dataclass(eq=False)
class Connection:
    """One addressable CouchDB server with its own credentials and version.

    The registry owns connections.  A Result only remembers which connection
    produced it, it never keeps one alive on its own.
    """

    name: str
    server: httpx.URL | str
    username: str | None = None
    password: str | None = None
    auth: str = "BASIC"
    roles: set[str] = field(default_factory=set)
    headers: dict[str, str] = field(default_factory=dict)
    version: ServerVersion | str | None = None
    session_token: str | None = None

    # single-slot cache of the last "GET /" Result, see Server.server_info()
    info: Result | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.name:
            raise UsageError("A connection requires a name")

        self.server = httpx.URL(str(self.server))
        if self.version is not None:
            self.version = ServerVersion.parse(self.version)
        self.auth = self.auth.upper()
        self.roles = set(self.roles)

        if self.auth == "BASIC" and self.username and self.password is not None:
            self.headers.setdefault("Authorization", self._basic_token())

    def __repr__(self) -> str:
        return f"Connection(name={self.name!r}, server='{self.server}')"

    def _basic_token(self) -> str:
        token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
        return f"Basic {token}"

    def use_credentials(self, username: str, password: str, auth: str = "BASIC") -> None:
        """Switch credentials; BASIC sends them with every request from now on."""
        self.username = username
        self.password = password
        self.auth = auth.upper()
        self.session_token = None
        self.headers.pop("Authorization", None)
        if self.auth == "BASIC":
            self.headers["Authorization"] = self._basic_token()

    def can_role(self, role: str) -> bool:
        """Check whether the (logged-in user of this) connection has a role."""
        return role in self.roles

    def request_headers(self) -> dict[str, str]:
        """Headers sent with every request on this connection."""
        headers = dict(self.headers)
        if self.session_token:
            headers["Cookie"] = f"AuthSession={self.session_token}"
        return headers

    def url(self, path: str, query: dict[str, Any] | None = None) -> httpx.URL:
        """Absolute target for a path on this server.

        The path is appended to the server URL, so a server behind a
        path-prefixing proxy keeps its prefix.
        """
        base = str(self.server).rstrip("/")
        if not path.startswith("/"):
            path = "/" + path
        return httpx.URL(base + path, params=query or None)

    def forget(self) -> None:
        """Invalidate the cached server info and version, to be fetched again."""
        self.info = None
        self.version = None


class ConnectionRegistry:
    """Ordered collection of named connections.

    Usage:
        registry = ConnectionRegistry()
        registry.add(Connection(name="local", server="http://127.0.0.1:5984"))
        registry.get("local")
        registry.by_role("_admin")
    """

    def __init__(self, connections: Iterable[Connection] = ()):
        self._connections: list[Connection] = []
        for connection in connections:
            self.add(connection)

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections))

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, name: object) -> bool:
        return self.get(str(name)) is not None

    def add(self, connection: Connection) -> Connection:
        """Register a connection; names must be unique."""
        if self.get(connection.name) is not None:
            raise UsageError(f"Connection '{connection.name}' already registered")

        self._connections.append(connection)
        logger.info(f"Added connection {connection.name} to {connection.server}")
        return connection

    def get(self, name: str) -> Connection | None:
        """Returns the connection with the specific name, or None."""
        for connection in self._connections:
            if connection.name == name:
                return connection
        return None

    def by_role(self, role: str) -> list[Connection]:
        """All connections able to fulfill the role, in precedence order."""
        return [c for c in self._connections if c.can_role(role)]

    def all(self) -> list[Connection]:
        """All connections in precedence order."""
        return list(self._connections)

    def resolve(
        self,
        connection: Connection | str | None = None,
        connections: Iterable[Connection | str] | str | None = None,
    ) -> list[Connection]:
        """Turn a selection policy into the list of candidates to try.

        An explicit connection wins; otherwise an explicit list, or a role
        (string) selecting a subset; otherwise all, in registration order.

        Raises:
            NoConnectionsError: If the selection is empty.
        """
        if connection is not None:
            candidates = [self._lookup(connection)]
        elif isinstance(connections, str):
            candidates = self.by_role(connections)
        elif connections is not None:
            candidates = [self._lookup(c) for c in connections]
        else:
            candidates = self.all()

        candidates = [c for c in candidates if c is not None]
        if not candidates:
            raise NoConnectionsError("No connections available for this call")
        return candidates

    def _lookup(self, connection: Connection | str) -> Connection | None:
        if isinstance(connection, Connection):
            return connection
        return self.get(connection)
