"""A CouchDB node: one Erlang VM, part of a cluster or standalone."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .dispatch import LogicalRequest
from .options import CallOptions, call_options
from .result import Result

if TYPE_CHECKING:
    from .api import Couch


class Node:
    """Calls about one node, by name.

    Get them from couch.node(name) or server.node(); there is only one
    Node object per name.
    """

    def __init__(self, couch: Couch, name: str):
        self.couch = couch
        self.name = name

    def __repr__(self) -> str:
        return f"Node({self.name!r})"

    def path(self, *parts: str) -> str:
        return "/".join(["", "_node", self.name, *parts])

    def _get(self, path: str, options: CallOptions | None) -> Result:
        return self.couch.call(LogicalRequest("GET", path), call_options(options))

    def stats(self, options: CallOptions | None = None) -> Result:
        """Statistics of the node (GET /_node/{name}/_stats)."""
        return self._get(self.path("_stats"), options)

    def server(self, options: CallOptions | None = None) -> Result:
        """The system the node runs on (GET /_node/{name}/_system)."""
        return self._get(self.path("_system"), options)

    def software(self, options: CallOptions | None = None) -> Result:
        """Versions of the software components (GET /_node/{name}/_versions)."""
        return self._get(self.path("_versions"), options)

    def config(self, section: str | None = None, key: str | None = None, options: CallOptions | None = None) -> Result:
        """The configuration, a section of it, or a single value.

        The values are strings, as the server keeps them.
        """
        parts: list[Any] = ["_config"]
        if section:
            parts.append(section)
            if key:
                parts.append(key)
        return self._get(self.path(*parts), options)
