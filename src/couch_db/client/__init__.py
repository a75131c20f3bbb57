"""CouchDB API client.

This package maps the CouchDB HTTP API onto method calls: server,
database, document, node and cluster objects build requests, and one
dispatch core performs them over one or more connections.

Every call returns a Result, which is false when the call failed:

    from couch_db.client import Couch, CouchConfig

    couch = Couch()
    result = couch.db("authors").find({"selector": {}})
    if result:
        for doc in result.page:
            ...

Paged calls collect a logical page from as many requests as needed:

    from couch_db.client import PagingOptions

    first = db.find(search, paging=PagingOptions(page_size=50))
    second = db.find(search, paging=PagingOptions(succeed=first))

Calls can be prepared and performed later, also on asyncio:

    from couch_db.client import CallOptions, create_transport

    couch = Couch(transport=create_transport(asynchronous=True))
    result = await couch.request_uuids(10, CallOptions(delay=True)).run_async()
"""

from .api import Couch
from .cluster import Cluster
from .config import CouchConfig
from .connection import Connection, ConnectionRegistry, ServerVersion
from .convert import TypeConverters
from .database import Database
from .dispatch import Dispatcher, LogicalRequest
from .document import Document
from .exceptions import (
    TRANSPORT_FAILURE,
    CouchError,
    CouchTransportError,
    NoConnectionsError,
    NotReadyError,
    UsageError,
    VersionIncompatibilityError,
)
from .factory import create_transport
from .http import AsyncHTTPTransport, HTTPResponse, HTTPTransport
from .node import Node
from .options import CallOptions, PagingOptions, pile
from .paging import PaginationState, Paginator, Stop
from .result import DelayPlan, Outcome, Result, Row
from .server import Server
from .transport import CouchResponse, CouchTransport

__all__ = [
    # Main API
    "Couch",
    "CouchConfig",
    "Server",
    "Database",
    "Document",
    "Node",
    "Cluster",
    # Call core
    "CallOptions",
    "PagingOptions",
    "pile",
    "LogicalRequest",
    "Dispatcher",
    "Result",
    "Row",
    "Outcome",
    "DelayPlan",
    "PaginationState",
    "Paginator",
    "Stop",
    # Connections and conversions
    "Connection",
    "ConnectionRegistry",
    "ServerVersion",
    "TypeConverters",
    # Transport protocol and factory
    "CouchTransport",
    "CouchResponse",
    "create_transport",
    # Transport implementations
    "HTTPTransport",
    "AsyncHTTPTransport",
    "HTTPResponse",
    # Exceptions
    "TRANSPORT_FAILURE",
    "CouchError",
    "CouchTransportError",
    "NoConnectionsError",
    "NotReadyError",
    "UsageError",
    "VersionIncompatibilityError",
]
