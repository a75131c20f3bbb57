"""couch-db - Client library and CLI for the CouchDB HTTP API."""

from couch_db.client import Couch as CouchClient
from couch_db.client import CallOptions, PagingOptions, Result
from couch_db.client.config import CouchConfig
from couch_db.client.exceptions import (
    CouchError,
    CouchTransportError,
    NoConnectionsError,
    NotReadyError,
    UsageError,
    VersionIncompatibilityError,
)

try:
    from importlib.metadata import version
    __version__ = version("couch-db-client")
except Exception:
    __version__ = "0.1.0"  # Fallback for development

__all__ = [
    "CallOptions",
    "CouchClient",
    "CouchConfig",
    "CouchError",
    "CouchTransportError",
    "NoConnectionsError",
    "NotReadyError",
    "PagingOptions",
    "Result",
    "UsageError",
    "VersionIncompatibilityError",
    "__version__",
]
