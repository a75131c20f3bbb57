"""Calls addressing one specific server (connection).

A Server never fails over: all its calls go to its own connection.  It
also keeps what is learned about that server: the last "GET /" answer
(single-slot cache), the node it runs, and the roles of the logged-in
user.
"""

from __future__ import annotations

import copy
import logging
from http.cookies import SimpleCookie
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from .connection import Connection, ServerVersion
from .dispatch import LogicalRequest
from .exceptions import CouchError, UsageError
from .options import CallOptions, call_options
from .result import Result

if TYPE_CHECKING:
    from .api import Couch
    from .node import Node

logger = logging.getLogger("couch-db")

CACHE_POLICIES = ("YES", "NEVER", "RETRY", "PING")


class Server:
    """Server-level calls on one connection.

    Usage:
        server = couch.server("_local")
        server.version()
        server.database_names().values()
    """

    def __init__(self, couch: Couch, connection: Connection):
        self.couch = couch
        self.connection = connection
        self._node: Node | None = None
        self._roles_known = False

    def __repr__(self) -> str:
        return f"Server({self.connection.name!r})"

    def _call(self, request: LogicalRequest, options: CallOptions | None, **defaults: Any) -> Result:
        options = call_options(options, **defaults)
        if options.connections is not None or options.connection not in (None, self.connection, self.connection.name):
            raise UsageError(f"Server calls always use connection '{self.connection.name}'")
        options.connection = self.connection
        return self.couch.call(request, options)

    # Server information

    def _info_values(self, result: Result, raw: Any) -> Any:
        if not isinstance(raw, dict):
            return raw
        values = dict(raw)
        self.couch.converters.to_native(values, "version", "version")
        return values

    def server_info(self, cached: str = "YES", options: CallOptions | None = None) -> Result:
        """Details about the server (GET /).

        Args:
            cached: YES reuses the previous answer, even a failed one; RETRY
                reuses it only when it was successful; NEVER always asks;
                PING asks but keeps the previously cached answer.
        """
        if cached not in CACHE_POLICIES:
            raise UsageError(f"Unsupported cached parameter '{cached}'.")

        info = self.connection.info
        if info is not None and (cached == "YES" or (cached == "RETRY" and info)):
            return info

        result = self._call(LogicalRequest("GET", "/"), options, on_values=self._info_values)
        if cached != "PING":
            self.connection.info = result
            self.connection.version = None
        return result

    def version(self) -> ServerVersion | None:
        """Release of the server software, or None when it cannot be reached."""
        if self.connection.version is not None:
            return self.connection.version

        result = self.server_info(cached="YES")
        if not result.is_ready or not result:
            return None

        version = (result.values() or {}).get("version")
        if version is None:
            raise CouchError("Server info field does not contain the server version.")
        self.connection.version = version
        return version

    def active_tasks(self, options: CallOptions | None = None) -> Result:
        """Maintenance tasks running on the server (GET /_active_tasks)."""
        def values(result: Result, tasks: Any) -> Any:
            tasks = copy.deepcopy(tasks or [])
            for task in tasks:
                self.couch.converters.to_native(task, "epoch", "started_on", "updated_on")
            return tasks

        return self._call(LogicalRequest("GET", "/_active_tasks"), options, on_values=values)

    def _key_filter(self, filters: dict[str, Any] | None) -> dict[str, Any]:
        filters = filters or {}
        query = {
            "descending": filters.get("descending"),
            "startkey": filters.get("startkey", filters.get("start_key")),
            "endkey": filters.get("endkey", filters.get("end_key")),
            "limit": filters.get("limit"),
            "skip": filters.get("skip"),
        }
        query = {key: value for key, value in query.items() if value is not None}
        self.couch.converters.to_query(query, "bool", "descending").to_query(query, "json", "startkey", "endkey")
        return query

    def database_names(self, filters: dict[str, Any] | None = None, options: CallOptions | None = None) -> Result:
        """Names of the databases (GET /_all_dbs).

        Args:
            filters: descending, startkey, endkey, limit and skip.
        """
        return self._call(LogicalRequest("GET", "/_all_dbs", query=self._key_filter(filters)), options)

    def database_info(
        self,
        keys: list[str] | None = None,
        filters: dict[str, Any] | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Details of databases: the named ones, or those selected by filters."""
        if keys:
            request = LogicalRequest("POST", "/_dbs_info", body={"keys": list(keys)}, introduced="2.2.0")
        else:
            request = LogicalRequest("GET", "/_dbs_info", query=self._key_filter(filters), introduced="3.2.0")
        return self._call(request, options)

    def db_updates(self, feed: dict[str, Any] | None = None, options: CallOptions | None = None) -> Result:
        """Feed of database events (GET /_db_updates).

        Args:
            feed: feed (type), timeout and heartbeat (milliseconds), since.
        """
        return self._call(LogicalRequest("GET", "/_db_updates", query=dict(feed or {}), introduced="1.4.0"), options)

    def cluster_nodes(self, options: CallOptions | None = None) -> Result:
        """All known nodes, and those part of the cluster (GET /_membership)."""
        def values(result: Result, raw: Any) -> Any:
            values = dict(raw or {})
            for key in ("all_nodes", "cluster_nodes"):
                if key in values:
                    values[key] = self.couch.converters.list_to_native(key, "node", values[key])
            return values

        return self._call(LogicalRequest("GET", "/_membership", introduced="2.0.0"), options, on_values=values)

    def replicate(self, rules: dict[str, Any], options: CallOptions | None = None) -> Result:
        """Start or stop a replication (POST /_replicate)."""
        send = dict(rules)
        self.couch.converters.to_json(send, "bool", "cancel", "continuous", "create_target")

        def values(result: Result, raw: Any) -> Any:
            values = copy.deepcopy(raw or {})
            for event in values.get("history") or []:
                self.couch.converters.to_native(event, "mailtime", "start_time", "end_time")
            return values

        return self._call(LogicalRequest("POST", "/_replicate", body=send), options, on_values=values)

    def _replication_doc_values(self, doc: dict[str, Any]) -> dict[str, Any]:
        (
            self.couch.converters.to_native(doc, "isotime", "start_time", "last_updated")
            .to_native(doc, "abs_uri", "target", "source")
            .to_native(doc, "node", "node")
        )
        return doc

    def replication_jobs(
        self,
        limit: int | None = None,
        skip: int | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Replication jobs on this server, ordered by replication id."""
        def values(result: Result, raw: Any) -> Any:
            values = copy.deepcopy(raw or {})
            for job in values.get("jobs") or []:
                for event in job.get("history") or []:
                    self.couch.converters.to_native(event, "isotime", "timestamp")
                (
                    self.couch.converters.to_native(job, "isotime", "start_time")
                    .to_native(job, "abs_uri", "target", "source")
                    .to_native(job, "node", "node")
                )
            return values

        request = LogicalRequest("GET", "/_scheduler/jobs", query={"limit": limit, "skip": skip})
        return self._call(request, options, on_values=values)

    def replication_docs(
        self,
        dbname: str = "_replicator",
        limit: int | None = None,
        skip: int | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Replication documents (GET /_scheduler/docs[/{replicator_db}])."""
        path = "/_scheduler/docs"
        if dbname != "_replicator":
            path += "/" + quote(dbname, safe="")

        def values(result: Result, raw: Any) -> Any:
            values = copy.deepcopy(raw or {})
            values["docs"] = [self._replication_doc_values(doc) for doc in values.get("docs") or []]
            return values

        request = LogicalRequest("GET", path, query={"limit": limit, "skip": skip})
        return self._call(request, options, on_values=values)

    def node_name(self, name: str = "_local", options: CallOptions | None = None) -> Result:
        """Name of a node; with "_local" the node which runs this server."""
        def values(result: Result, raw: Any) -> Any:
            values = dict(raw or {})
            self.couch.converters.to_native(values, "node", "name")
            return values

        return self._call(LogicalRequest("GET", f"/_node/{name}"), options, on_values=values)

    def node(self) -> Node | None:
        """The Node run by this server; None on (temporary) failure."""
        if self._node is None:
            result = self.node_name("_local")
            if not result:
                return None
            node = (result.values() or {}).get("name")
            if node is None:
                raise CouchError("Did not get a node name for _local")
            self._node = node
        return self._node

    def server_status(self, options: CallOptions | None = None) -> Result:
        """Health check (GET /_up); see server_is_up()."""
        return self._call(LogicalRequest("GET", "/_up", introduced="2.0.0"), options)

    def server_is_up(self) -> bool:
        result = self.server_status()
        return bool(result) and (result.values() or {}).get("status") == "ok"

    # Authentication

    def login(
        self,
        username: str | None = None,
        password: str | None = None,
        auth: str | None = None,
        next: str | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Authenticate the connection.

        BASIC sets the Authorization header for all further requests (and
        returns the session, to learn the roles).  COOKIE posts to /_session
        and keeps the AuthSession cookie.
        """
        connection = self.connection
        username = username or connection.username
        password = password if password is not None else connection.password
        auth = (auth or connection.auth).upper()
        if not username or password is None:
            raise UsageError("Login requires username and password")

        if auth not in ("BASIC", "COOKIE"):
            raise UsageError(f"Unsupported authorization '{auth}'")

        connection.use_credentials(username, password, auth)
        if auth == "BASIC":
            return self.session(basic=True, options=options)

        def logged_in(result: Result) -> None:
            if not result:
                return
            self._remember_roles((result.values() or {}).get("roles"))
            cookie = SimpleCookie()
            cookie.load(result.response.headers.get("set-cookie", ""))
            if "AuthSession" in cookie:
                connection.session_token = cookie["AuthSession"].value
            logger.info(f"Logged in to {connection.name} as {username}")

        request = LogicalRequest(
            "POST",
            "/_session",
            query={"next": next},
            body={"name": username, "password": password},
        )
        return self._call(request, options, on_final=logged_in)

    def session(self, basic: bool | None = None, options: CallOptions | None = None) -> Result:
        """Information about the current session, including the user context."""
        def learned(result: Result) -> None:
            if result:
                user = (result.values() or {}).get("userCtx") or {}
                self._remember_roles(user.get("roles"))

        return self._call(LogicalRequest("GET", "/_session", query={"basic": basic}), options, on_final=learned)

    def logout(self, options: CallOptions | None = None) -> Result:
        def forgotten(result: Result) -> None:
            if result:
                self.connection.session_token = None
                self._roles_known = False

        return self._call(LogicalRequest("DELETE", "/_session"), options, on_final=forgotten)

    def _remember_roles(self, roles: list[str] | None) -> None:
        self.connection.roles = set(roles or [])
        self._roles_known = True

    def roles(self) -> list[str]:
        """The roles of the user of this connection."""
        if not self._roles_known:
            self.session(basic=True)
        return sorted(self.connection.roles)

    def has_role(self, role: str) -> bool:
        return role in self.roles()
