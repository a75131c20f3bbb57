"""Collect logical pages from one or more physical requests.

A logical page ("25 documents") may need several requests: the server
may return fewer items per round than asked for, or a map function may
leave items out.  The Paginator keeps asking until the page is full or a
stop strategy says the collection is exhausted.

Positions are tracked as offsets from the start of the collection.  Each
round's bookmark (when the endpoint returns one) is stored at the offset
it continues from, so a later request for that offset uses the bookmark
instead of a numeric skip.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from .exceptions import UsageError
from .options import PagingOptions
from .result import Outcome

if TYPE_CHECKING:
    from .connection import Connection
    from .dispatch import Dispatcher, LogicalRequest
    from .result import DelayPlan, Result

logger = logging.getLogger("couch-db")

UPTO_PATTERN = re.compile(r"^UPTO\((\d+)\)$")

# Markers replacing functions in an exported paging state
CODE = "CODE"
DEFAULT_HARVESTER = "DEFAULT"
NO_MAP = "NONE"


class Stop:
    """Strategies deciding that a collection is exhausted.

    Each is evaluated after a round, with the number of items the server
    returned in that round.
    """

    EMPTY = "EMPTY"
    SMALLER = "SMALLER"

    @staticmethod
    def upto(count: int) -> str:
        """Stop when a round returns count items or fewer."""
        return f"UPTO({int(count)})"

    @classmethod
    def validate(cls, stop: Any) -> Any:
        if stop is None:
            return cls.EMPTY
        if callable(stop) or stop in (cls.EMPTY, cls.SMALLER) or UPTO_PATTERN.match(str(stop)):
            return stop
        raise UsageError(f"Unknown stop strategy '{stop}'")


def default_harvester(result: Result) -> list[Any]:
    """The 'docs', 'rows' or 'results' of the answer."""
    values = result.values()
    if not isinstance(values, dict):
        return []
    for key in ("docs", "rows", "results"):
        if isinstance(values.get(key), list):
            return values[key]
    return []


def _bookmark(result: Result) -> str | None:
    answer = result.answer()
    return answer.get("bookmark") if isinstance(answer, dict) else None


@dataclass
class PaginationState:
    """Where a paged collection stands.

    Attributes:
        start: Offset of the first item of this page.
        skip: Extra items to skip, for this page only.
        page_size: Items wanted in this page.
        all: Collect everything; page_size is ignored.
        max_per_request: Limit per round.
        harvester, map, stop: See PagingOptions.
        bookmarks: Offset to continuation token.  Only grows.
        harvested: The items collected for this page.
        consumed: Items the server returned for this page, before map.
        end_reached: The collection is exhausted.
        baseline: Items in the very first round, for Stop.SMALLER.
    """

    start: int = 0
    skip: int = 0
    page_size: int = 25
    all: bool = False
    max_per_request: int = 100
    harvester: Callable[[Result], list[Any]] | None = None
    map: Callable[[Result, Any], Any] | None = None
    stop: str | Callable[[Result, int], bool] = Stop.EMPTY
    bookmarks: dict[int, str] = field(default_factory=dict)
    harvested: list[Any] = field(default_factory=list)
    consumed: int = 0
    end_reached: bool = False
    baseline: int | None = None

    @property
    def position(self) -> int:
        """Offset where the next round continues."""
        return self.start + self.skip + self.consumed

    def is_partial(self) -> bool:
        return not self.end_reached and (self.all or len(self.harvested) < self.page_size)

    def round_limit(self) -> int:
        if self.all:
            return self.max_per_request
        return min(self.page_size - len(self.harvested), self.max_per_request)

    def round_parameters(self) -> dict[str, Any]:
        """limit, skip and bookmark for the next physical request."""
        limit = self.round_limit()
        bookmark = self.bookmarks.get(self.position)
        if bookmark is not None:
            return {"limit": limit, "skip": 0, "bookmark": bookmark}
        return {"limit": limit, "skip": self.position}

    def add(self, result: Result, items: list[Any], bookmark: str | None) -> None:
        """Fold the items of one round into the page."""
        if not items:
            self.end_reached = True
            return

        for item in items:
            if self.map is not None:
                item = self.map(result, item)
            if item is not None:
                self.harvested.append(item)

        self.consumed += len(items)
        if bookmark is not None:
            self.bookmarks[self.position] = bookmark

    def should_stop(self, result: Result, count: int, limit: int | None = None) -> bool:
        """Whether a round which returned count items (of limit asked)
        ends the sequence.  A round which got all it asked for is never
        smaller."""
        if self.baseline is None:
            self.baseline = count

        stop = self.stop
        if callable(stop):
            return bool(stop(result, count))
        if stop == Stop.EMPTY:
            return count == 0
        if stop == Stop.SMALLER:
            return count < (self.baseline if limit is None else min(self.baseline, limit))
        return count <= int(UPTO_PATTERN.match(stop).group(1))

    def next_page(self) -> "PaginationState":
        """State for the page after this one."""
        return replace(
            self,
            start=self.position,
            skip=0,
            bookmarks=dict(self.bookmarks),
            harvested=[],
            consumed=0,
        )

    def export(self, connection: str | None, max_bookmarks: int = 10) -> dict[str, Any]:
        """Serializable form; functions become markers."""
        bookmarks = self.bookmarks
        if max_bookmarks and len(bookmarks) > max_bookmarks:
            keep = sorted(bookmarks)[-max_bookmarks:]
            bookmarks = {offset: bookmarks[offset] for offset in keep}

        return {
            "start": self.start,
            "skip": self.skip,
            "page_size": self.page_size,
            "all": self.all,
            "max_per_request": self.max_per_request,
            "harvester": DEFAULT_HARVESTER if self.harvester is None else CODE,
            "map": NO_MAP if self.map is None else CODE,
            "stop": CODE if callable(self.stop) else self.stop,
            "bookmarks": dict(bookmarks),
            "end_reached": self.end_reached,
            "baseline": self.baseline,
            "connection": connection,
        }

    @classmethod
    def restore(cls, exported: dict[str, Any], paging: PagingOptions) -> "PaginationState":
        """Rebuild an exported state; functions must be supplied again.

        Raises:
            UsageError: When the export used a function which the paging
                options do not provide.
        """
        def resupplied(name: str, marker: str, given: Any) -> Any:
            if exported.get(name) == marker and given is None:
                raise UsageError(f"Paging state requires the {name} function to be passed again")
            return given

        stop = resupplied("stop", CODE, paging.stop)
        return cls(
            start=int(exported.get("start", 0)),
            skip=int(exported.get("skip", 0)),
            page_size=int(exported.get("page_size", 25)),
            all=bool(exported.get("all", False)),
            max_per_request=int(exported.get("max_per_request", 100)),
            harvester=resupplied("harvester", CODE, paging.harvester),
            map=resupplied("map", CODE, paging.map),
            stop=Stop.validate(stop if stop is not None else exported.get("stop")),
            bookmarks={int(offset): mark for offset, mark in (exported.get("bookmarks") or {}).items()},
            end_reached=bool(exported.get("end_reached", False)),
            baseline=exported.get("baseline"),
        )


class Paginator:
    """Drives the physical rounds of a paged call through the Dispatcher.

    Rounds are strictly sequential: each round's parameters depend on what
    the previous one returned.  After the first successful round, all
    rounds go to that same connection, because bookmarks are only valid on
    the server which issued them.
    """

    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    @staticmethod
    def prepare(paging: PagingOptions, page_size: int = 25, max_per_request: int = 100) -> tuple[PaginationState, str | None]:
        """Create the state for the first page of a call.

        Returns the state and the name of the connection a continued
        sequence is bound to (None for a fresh one).

        Raises:
            UsageError: For conflicting or incomplete paging options.
        """
        if paging.skip is not None and paging.page is not None:
            raise UsageError("Use either skip or page, not both")

        succeed = paging.succeed
        pinned = None
        if succeed is None:
            state = PaginationState(page_size=page_size, max_per_request=max_per_request)
        elif isinstance(succeed, dict):
            state = PaginationState.restore(succeed, paging)
            pinned = succeed.get("connection")
        else:
            state = succeed.next_page_settings()
            pinned = succeed.connection.name if succeed.connection is not None else None

        if paging.page_size is not None:
            state.page_size = paging.page_size
        if paging.max_per_request is not None:
            state.max_per_request = paging.max_per_request
        if paging.all:
            state.all = True
        if paging.harvester is not None:
            state.harvester = paging.harvester
        if paging.map is not None:
            state.map = paging.map
        if paging.stop is not None:
            state.stop = Stop.validate(paging.stop)

        if state.page_size < 1 or state.max_per_request < 1:
            raise UsageError("Page size and max per request must be positive")

        if paging.page is not None:
            if paging.page < 1:
                raise UsageError("Pages are counted from 1")
            state.start = (paging.page - 1) * state.page_size
        if paging.skip is not None:
            state.skip = paging.skip
        if paging.bookmark is not None:
            state.bookmarks[state.position] = paging.bookmark

        return state, pinned

    @staticmethod
    def round_request(request: LogicalRequest, state: PaginationState) -> LogicalRequest:
        """The request for the next round: paging parameters in the body when
        it is a JSON object, otherwise in the query."""
        params = state.round_parameters()
        if isinstance(request.body, dict):
            return replace(request, body={**request.body, **params})
        return replace(request, query={**request.query, **params})

    def collect(self, result: Result, plan: DelayPlan) -> Result:
        """Fill the page of result, then finalize it."""
        state = result.paging
        candidates = plan.candidates
        while state.is_partial():
            limit = state.round_limit()
            request = self.round_request(plan.request, state)
            outcome = self.dispatcher.execute(candidates, request)
            if not self._absorb(result, outcome, limit):
                break
            candidates = [outcome.connection]

        return result.finalize(self._settled(result, candidates))

    async def collect_async(self, result: Result, plan: DelayPlan) -> Result:
        state = result.paging
        candidates = plan.candidates
        while state.is_partial():
            limit = state.round_limit()
            request = self.round_request(plan.request, state)
            outcome = await self.dispatcher.execute_async(candidates, request)
            if not self._absorb(result, outcome, limit):
                break
            candidates = [outcome.connection]

        return result.finalize(self._settled(result, candidates))

    @staticmethod
    def _absorb(result: Result, outcome: Outcome, limit: int | None = None) -> bool:
        state = result.paging
        result._attach(outcome)
        if not result:
            return False

        harvester = state.harvester or default_harvester
        items = list(harvester(result) or [])
        state.add(result, items, _bookmark(result))
        if items and state.should_stop(result, len(items), limit):
            state.end_reached = True
        elif not items and state.baseline is None:
            state.baseline = 0

        logger.debug(
            f"Paging round at {outcome.connection.name}: {len(items)} items, "
            f"page has {len(state.harvested)}, end reached: {state.end_reached}"
        )
        return True

    @staticmethod
    def _settled(result: Result, candidates: list[Connection]) -> Outcome | None:
        # A page which needed no round at all (exhausted before) still
        # becomes a successful, empty Result
        if result.is_ready:
            return None
        return Outcome(connection=candidates[0], response=None, code=200)
