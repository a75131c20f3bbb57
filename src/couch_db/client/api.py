"""High-level API for CouchDB.

This module provides the main client interface.  A Couch object owns the
connections, the type conversions and the dispatcher; databases, nodes,
the cluster and per-connection server calls hang off it.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from .cluster import Cluster
from .config import CouchConfig
from .connection import Connection, ConnectionRegistry, ServerVersion
from .convert import Converter, TypeConverters
from .database import Database
from .dispatch import Dispatcher, LogicalRequest
from .exceptions import UsageError
from .factory import create_transport
from .node import Node
from .options import CallOptions, PagingOptions, call_options
from .result import Result
from .server import Server
from .transport import CouchTransport

logger = logging.getLogger("couch-db")


class Couch:
    """Client for one or more CouchDB servers.

    Usage:
        # Auto-configure from environment
        couch = Couch()
        uuids = couch.request_uuids(5).values()["uuids"]

        # Explicit configuration
        couch = Couch(CouchConfig(server="http://db.example.com:5984", api="3.3"))

        # Inject custom transport (for testing)
        couch = Couch(transport=fake_transport)

    Args:
        config: Configuration (loads from environment if None).
        transport: Optional pre-configured transport.  When None, one is
            created from the config.
        to_native, to_json, to_query: Extra or replacement converters, see
            TypeConverters.
        create_connection: Register the connection described by the config.
        warned: Shared set of api warnings already given.
    """

    def __init__(
        self,
        config: CouchConfig | None = None,
        transport: CouchTransport | None = None,
        to_native: dict[str, Converter] | None = None,
        to_json: dict[str, Converter] | None = None,
        to_query: dict[str, Converter] | None = None,
        create_connection: bool = True,
        warned: set[str] | None = None,
    ):
        self.config = config or CouchConfig()
        self.transport = transport or create_transport(self.config)
        self.registry = ConnectionRegistry()
        self.converters = TypeConverters(self, to_native, to_json, to_query)
        self.dispatcher = Dispatcher(
            self.registry,
            self.transport,
            api=self.config.api,
            converters=self.converters,
            version_of=self._version_of,
            warned=warned,
            page_size=self.config.page_size,
            max_per_request=self.config.max_per_request,
            couch=self,
        )

        self._servers: dict[str, Server] = {}
        self._nodes: dict[str, Node] = {}
        self._cluster: Cluster | None = None
        self._uuids: list[str] = []

        if create_connection:
            self.create_connection(
                name=self.config.connection_name,
                server=self.config.server,
                username=self.config.username,
                password=self.config.password,
                auth=self.config.auth,
            )

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False

    def close(self) -> None:
        """Close the transport and release resources."""
        self.transport.close()

    @property
    def api(self) -> ServerVersion:
        """The server release this program was written for."""
        return self.dispatcher.api

    # Connections

    def create_connection(
        self,
        name: str,
        server: str,
        username: str | None = None,
        password: str | None = None,
        auth: str = "BASIC",
        roles: Iterable[str] = (),
        headers: dict[str, str] | None = None,
        version: str | None = None,
    ) -> Connection:
        """Create a connection and register it.

        With BASIC authentication, the credentials are sent with every
        request.  For COOKIE authentication, call server(name).login().
        A version is normally learned from the server on first need.
        """
        connection = Connection(
            name=name,
            server=server,
            username=username,
            password=password,
            auth=auth,
            roles=set(roles),
            headers=dict(headers or {}),
            version=version,
        )
        return self.add_connection(connection)

    def add_connection(self, connection: Connection) -> Connection:
        return self.registry.add(connection)

    def connection(self, name: str) -> Connection | None:
        """Returns the connection with the specific name, or None."""
        return self.registry.get(name)

    def connections(self, role: str | None = None) -> list[Connection]:
        """All connections, or those which can fulfill the role."""
        if role is None:
            return self.registry.all()
        return self.registry.by_role(role)

    def server(self, connection: Connection | str | None = None) -> Server:
        """Calls which address one specific server; the first one by default."""
        if connection is None:
            registered = self.registry.all()
            if not registered:
                raise UsageError("No connections registered")
            connection = registered[0]
        elif isinstance(connection, str):
            name = connection
            connection = self.registry.get(name)
            if connection is None:
                raise UsageError(f"Unknown connection '{name}'")

        if connection.name not in self._servers:
            self._servers[connection.name] = Server(self, connection)
        return self._servers[connection.name]

    def _version_of(self, connection: Connection) -> ServerVersion | None:
        return self.server(connection).version()

    # Interface starting points

    def db(self, name: str) -> Database:
        """A database, which may not exist yet."""
        return Database(self, name)

    def node(self, name: str) -> Node:
        """The Node with this name; made once and shared."""
        if name not in self._nodes:
            self._nodes[name] = Node(self, name)
        return self._nodes[name]

    def cluster(self) -> Cluster:
        if self._cluster is None:
            self._cluster = Cluster(self)
        return self._cluster

    # Calls

    def call(
        self,
        request: LogicalRequest,
        options: CallOptions | None = None,
        paging: PagingOptions | None = None,
    ) -> Result:
        """Perform a request; endpoint methods are built on this."""
        return self.dispatcher.dispatch(request, options, paging)

    def check(self, change: str, release: str | None, what: str) -> "Couch":
        """Apply an api rule ("removed", "introduced", "deprecated") to an element."""
        self.dispatcher.check(change, release, what)
        return self

    def json_text(self, data: Any, compact: bool = False) -> str:
        """Render data as JSON, pretty unless compact."""
        if compact:
            return json.dumps(data, separators=(",", ":"))
        return json.dumps(data, indent=2, sort_keys=True)

    def request_uuids(self, count: int, options: CallOptions | None = None) -> Result:
        """Ask the server for count new UUIDs (GET /_uuids)."""
        return self.call(
            LogicalRequest("GET", "/_uuids", query={"count": count}, introduced="2.0.0"),
            call_options(options),
        )

    def fresh_uuids(self, count: int, bulk: int = 50) -> list[str]:
        """Take count UUIDs from stock, fetching bulk more at a time when needed.

        You may get fewer than asked for, but only when the server does not
        send them.
        """
        while count > len(self._uuids):
            result = self.request_uuids(bulk)
            if not result:
                logger.warning(f"Cannot collect uuids: {result.message}")
                break
            uuids = (result.values() or {}).get("uuids") or []
            if not uuids:
                break
            self._uuids.extend(uuids)

        fresh = self._uuids[:count]
        del self._uuids[:count]
        return fresh

    def search_analyze(self, analyzer: str, text: str, options: CallOptions | None = None) -> Result:
        """Show how a search analyzer splits text into tokens."""
        return self.call(
            LogicalRequest(
                "POST",
                "/_search_analyze",
                body={"analyzer": analyzer, "text": text},
                introduced="3.0.0",
            ),
            call_options(options),
        )
