"""Turn logical requests into Results.

The Dispatcher selects the connections a request may go to, applies the
api version rules, and tries the candidates one after the other until one
answers successfully.  Failures of all but the last candidate are
forgotten: the last one is reported in the Result, never raised.

Only mistakes in the call itself raise (UsageError and its subclasses,
VersionIncompatibilityError), before any I/O happens.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any

from .connection import Connection, ConnectionRegistry, ServerVersion
from .convert import TypeConverters
from .exceptions import (
    TRANSPORT_FAILURE,
    CouchTransportError,
    NoConnectionsError,
    UsageError,
    VersionIncompatibilityError,
)
from .options import CallOptions, PagingOptions
from .paging import Paginator
from .result import DelayPlan, Outcome, Result
from .transport import CouchResponse, CouchTransport

logger = logging.getLogger("couch-db")

MUTATING_METHODS = frozenset({"POST", "PUT"})


@dataclass
class LogicalRequest:
    """One call, before it is sent anywhere.

    POST and PUT need a body, even when it is logically empty: pass {}.
    """

    method: str
    path: str
    query: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    introduced: str | None = None
    removed: str | None = None
    deprecated: str | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()

    @property
    def what(self) -> str:
        return f"Endpoint '{self.method} {self.path}'"


def _stored_version(connection: Connection) -> ServerVersion | None:
    return connection.version


class Dispatcher:
    """Routes requests to connections through a transport.

    Usage:
        dispatcher = Dispatcher(registry, transport, api="3.3.3")
        result = dispatcher.dispatch(LogicalRequest("GET", "/_uuids", query={"count": 5}))

    Args:
        registry: The connections to choose from.
        transport: Performs the actual network calls.
        api: The server release the program was written for.
        converters: Used to render query values.
        version_of: Finds the release a connection runs, for "introduced"
            gating.  Defaults to the version stored in the connection.
        warned: Messages already reported; shared to suppress repeats.
        page_size, max_per_request: Defaults for paged calls.
        couch: Owner passed on to Results, for use in hooks.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: CouchTransport,
        api: str | ServerVersion = "3.3.3",
        converters: TypeConverters | None = None,
        version_of: Callable[[Connection], ServerVersion | None] | None = None,
        warned: set[str] | None = None,
        page_size: int = 25,
        max_per_request: int = 100,
        couch: Any = None,
    ):
        self.registry = registry
        self.transport = transport
        self.api = ServerVersion.parse(api)
        self.converters = converters or TypeConverters()
        self.version_of = version_of or _stored_version
        self.warned = set() if warned is None else warned
        self.page_size = page_size
        self.max_per_request = max_per_request
        self.couch = couch

    # Version rules

    def check(self, change: str, release: str | None, what: str) -> "Dispatcher":
        """Apply one api rule against the configured api version.

        Args:
            change: "removed", "introduced" or "deprecated".
            release: Release which made the change; nothing happens when None.
            what: Description of the element, for messages.

        Raises:
            VersionIncompatibilityError: When the element was removed at or
                before the api version.
        """
        if release is None:
            return self

        version = ServerVersion.parse(release)
        if change == "removed":
            if self.api >= version:
                raise VersionIncompatibilityError(what, release, str(self.api))
        elif change == "introduced":
            if self.api < version:
                self._warn_once(f"{what} was introduced in {release} but you specified api {self.api}.")
        elif change == "deprecated":
            if self.api >= version:
                self._warn_once(f"{what} got deprecated in api {release}.")
        else:
            raise UsageError(f"Unknown api change '{change}' for {what}")
        return self

    def _warn_once(self, message: str) -> None:
        if message not in self.warned:
            self.warned.add(message)
            logger.warning(message)

    def _eligible(self, connection: Connection, introduced: str | None, version: ServerVersion | None = None) -> bool:
        if introduced is None:
            return True
        if version is None:
            version = self.version_of(connection)
        if version is None or version < ServerVersion.parse(introduced):
            logger.debug(f"Skipping {connection.name}: server {version} predates {introduced}")
            return False
        return True

    # Dispatching

    def dispatch(
        self,
        request: LogicalRequest,
        options: CallOptions | None = None,
        paging: PagingOptions | None = None,
    ) -> Result:
        """Perform a request, or prepare it when options.delay is set.

        Raises:
            UsageError: When POST/PUT has no body, or paging options conflict.
            NoConnectionsError: When no connection is selected or none runs
                a recent enough server release.
            VersionIncompatibilityError: When the endpoint was removed.
        """
        options = options or CallOptions()

        if request.method in MUTATING_METHODS and request.body is None:
            raise UsageError(f"No body for {request.method} {request.path}")

        self.check("removed", request.removed, request.what)
        self.check("introduced", request.introduced, request.what)
        self.check("deprecated", request.deprecated, request.what)

        state = None
        pinned = None
        if paging is not None:
            state, pinned = Paginator.prepare(paging, self.page_size, self.max_per_request)

        candidates = self.registry.resolve(pinned or options.connection, options.connections)
        # Connections of which the release is not known yet are checked when
        # the call is performed, because finding out needs I/O
        candidates = [
            c for c in candidates
            if c.version is None or self._eligible(c, request.introduced, c.version)
        ]
        self._require(candidates, request)

        headers = dict(request.headers)
        for header, value in options.headers.items():
            headers.setdefault(header, value)
        request = replace(request, headers=headers)

        result = Result(
            couch=self.couch,
            on_error=options.on_error,
            on_final=options.on_final,
            on_chain=options.on_chain,
            on_values=options.on_values,
            on_row=options.on_row,
            paging=state,
            request=request,
        )
        plan = DelayPlan(connection=candidates[0], candidates=candidates, request=request, runner=self)
        result.mark_delayed(plan)

        if options.delay:
            logger.debug(f"Delayed {request.what}")
            return result
        return self.complete(result)

    def complete(self, result: Result) -> Result:
        """Perform the prepared call of a delayed Result.

        Raises:
            NoConnectionsError: When none of the candidates runs a recent
                enough server release.
        """
        plan = self._plan_of(result)
        introduced = plan.request.introduced
        plan = self._gated(plan, [c for c in plan.candidates if self._eligible(c, introduced)])

        if result.paging is not None:
            return Paginator(self).collect(result, plan)
        return result.finalize(self.execute(plan.candidates, plan.request))

    async def complete_async(self, result: Result) -> Result:
        """Perform the prepared call of a delayed Result on an asyncio transport.

        The release of a candidate which is not known yet is first fetched
        with an awaited GET /.
        """
        plan = self._plan_of(result)
        introduced = plan.request.introduced
        candidates = []
        for connection in plan.candidates:
            if introduced is not None and connection.version is None:
                if await self.learn_version_async(connection) is None:
                    continue
            if self._eligible(connection, introduced, connection.version):
                candidates.append(connection)
        plan = self._gated(plan, candidates)

        if result.paging is not None:
            return await Paginator(self).collect_async(result, plan)
        return result.finalize(await self.execute_async(plan.candidates, plan.request))

    async def learn_version_async(self, connection: Connection) -> ServerVersion | None:
        """Ask a server for its release, and keep it in the connection."""
        outcome = await self.execute_async([connection], LogicalRequest("GET", "/"))
        if outcome.code >= 400:
            logger.warning(f"Cannot learn the server release of {connection.name}: {outcome.message or outcome.code}")
            return None

        answer = outcome.response.answer()
        version = answer.get("version") if isinstance(answer, dict) else None
        if version is None:
            logger.warning(f"Server info of {connection.name} does not contain the server version")
            return None
        connection.version = ServerVersion.parse(version)
        return connection.version

    @staticmethod
    def _require(candidates: list[Connection], request: LogicalRequest) -> None:
        if not candidates:
            raise NoConnectionsError(f"No connection runs a server release which supports {request.what}")

    def _gated(self, plan: DelayPlan, candidates: list[Connection]) -> DelayPlan:
        self._require(candidates, plan.request)
        return replace(plan, connection=candidates[0], candidates=candidates)

    @staticmethod
    def _plan_of(result: Result) -> DelayPlan:
        plan = result.delay_plan
        if plan is None:
            raise UsageError("The Result has no call to complete")
        return plan

    # Execution

    def execute(self, candidates: list[Connection], request: LogicalRequest) -> Outcome:
        """Try the candidates in order; the first success or the last failure."""
        outcome = None
        for connection in candidates:
            url, headers = self._prepare(connection, request)
            try:
                response = self.transport.execute(request.method, url, headers, request.body)
            except CouchTransportError as e:
                outcome = self._failure(connection, request, e)
                continue

            if inspect.isawaitable(response):
                if inspect.iscoroutine(response):
                    response.close()
                raise UsageError("Asynchronous transport: use delay=True and await result.run_async()")

            outcome = self._outcome(connection, request, response)
            if outcome.code < 400:
                break
        return outcome

    async def execute_async(self, candidates: list[Connection], request: LogicalRequest) -> Outcome:
        outcome = None
        for connection in candidates:
            url, headers = self._prepare(connection, request)
            try:
                response = self.transport.execute(request.method, url, headers, request.body)
                if inspect.isawaitable(response):
                    response = await response
            except CouchTransportError as e:
                outcome = self._failure(connection, request, e)
                continue

            outcome = self._outcome(connection, request, response)
            if outcome.code < 400:
                break
        return outcome

    def _prepare(self, connection: Connection, request: LogicalRequest) -> tuple[Any, dict[str, str]]:
        headers = connection.request_headers()
        headers["Accept"] = "application/json"
        if request.body is not None and not isinstance(request.body, (bytes, bytearray)):
            headers["Content-Type"] = "application/json"
        headers.update(request.headers)

        url = connection.url(request.path, self._query(request.query))
        logger.debug(f"{request.method} {url} via {connection.name}")
        return url, headers

    def _query(self, query: dict[str, Any]) -> dict[str, str]:
        return {
            key: self.converters.query_value(value)
            for key, value in (query or {}).items()
            if value is not None
        }

    @staticmethod
    def _failure(connection: Connection, request: LogicalRequest, error: CouchTransportError) -> Outcome:
        logger.debug(f"{request.what} failed at {connection.name}: {error}")
        return Outcome(connection, None, TRANSPORT_FAILURE, str(error), request)

    @staticmethod
    def _outcome(connection: Connection, request: LogicalRequest, response: CouchResponse) -> Outcome:
        code = response.status_code
        message = None
        if code >= 400:
            answer = response.answer() if request.method != "HEAD" else None
            if isinstance(answer, dict) and answer.get("reason"):
                message = f"{answer.get('error', code)}: {answer['reason']}"
            logger.debug(f"{request.what} answered {code} at {connection.name}")
        return Outcome(connection, response, code, message, request)
