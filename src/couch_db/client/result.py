"""The reply of a CouchDB server call.

Any call results in a Result object.  It can represent a usage error, a
server issue, an empty answer, a page of a larger collection, or even a
call which is still to be made (delayed).  The Result is false when the
call did not succeed, for whatever reason::

    result = db.find({"selector": {}})
    if not result:
        raise SystemExit(result.message)

    result.answer()   # raw JSON as sent by the server
    result.values()   # the same, with timestamps, versions, ... converted
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

from .exceptions import NotReadyError, UsageError
from .options import pile

if TYPE_CHECKING:
    from .connection import Connection
    from .dispatch import LogicalRequest
    from .document import Document
    from .paging import PaginationState
    from .transport import CouchResponse

logger = logging.getLogger("couch-db")

DELAYED = HTTPStatus.CONTINUE.value
UNDECIDED = HTTPStatus.MULTIPLE_CHOICES.value

DEFAULT_CODE_TEXTS = {
    HTTPStatus.OK.value: "Data collected successfully.",
    DELAYED: "The data collection is delayed.",
    UNDECIDED: "The Result object does not know what to do, yet.",
}

_UNSET = object()


@dataclass
class Outcome:
    """What one attempt produced: who answered, and how."""

    connection: Connection | None
    response: CouchResponse | None
    code: int
    message: str | None = None
    request: LogicalRequest | None = None


@dataclass
class DelayPlan:
    """How to complete a delayed Result later.

    The runner (the Dispatcher) has complete(result) and
    complete_async(result).  The candidates have passed selection; those
    of which the server release was not known yet are version gated when
    the call is completed.
    """

    connection: Connection
    candidates: list[Connection]
    request: LogicalRequest
    runner: Any = field(repr=False, default=None)


class Row:
    """One row of a multi-item answer.

    Attributes:
        result: The Result which contains this row.
        answer: The JSON fragment of the answer for this row.
        values: The row converted to Python types (defaults to answer).
        doc: The Document, when the answer included one.
        number: Position of the row in the Result, starting at 1.
    """

    def __init__(
        self,
        result: Result,
        answer: Any,
        values: Any = None,
        doc: Document | None = None,
        number: int = 1,
    ):
        self.result = result
        self.answer = answer
        self._values = values
        self.doc = doc
        self.number = number

    def __repr__(self) -> str:
        return f"Row({self.number})"

    @property
    def values(self) -> Any:
        return self.answer if self._values is None else self._values


class Result:
    """Uniform outcome of a call, ready or delayed.

    Hooks (see CallOptions):
        on_error: called with the Result when it is final but failed.
        on_final: called with the Result when it is final.
        on_chain: ``hook(result) -> Result``, run innermost (last added)
            first; the Result of the outermost hook is returned by finalize().
        on_values: ``hook(result, values) -> values``, applied last added first.
        on_row: ``hook(result, index, column) -> dict | None``, see row().
    """

    def __init__(
        self,
        couch: Any = None,
        on_error: Any = None,
        on_final: Any = None,
        on_chain: Any = None,
        on_values: Any = None,
        on_row: Any = None,
        paging: PaginationState | None = None,
        request: LogicalRequest | None = None,
    ):
        self.couch = couch
        self.on_error = pile(on_error)
        self.on_final = pile(on_final)
        self.on_chain = pile(on_chain)
        self.on_values = pile(on_values)
        self.on_row = pile(on_row)
        self.paging = paging
        self.request = request

        self.code = UNDECIDED
        self._message: str | None = None
        self.is_ready = False
        self.connection: Connection | None = None
        self.response: CouchResponse | None = None
        self._plan: DelayPlan | None = None
        self._forget()

    def __bool__(self) -> bool:
        return self.code < 400

    def __repr__(self) -> str:
        return f"Result({self.code}, {self.message!r})"

    @property
    def is_delayed(self) -> bool:
        return self.code == DELAYED

    @property
    def message(self) -> str:
        """Why the status is as it is."""
        return self._message or DEFAULT_CODE_TEXTS.get(self.code) or self.code_name()

    def code_name(self, code: int | None = None) -> str:
        """Symbolic name of a status code, like "HTTP_OK"."""
        code = code or self.code
        try:
            return f"HTTP_{HTTPStatus(code).name}"
        except ValueError:
            return str(code)

    def status(self, code: int, message: str | None = None) -> "Result":
        """Set the code and message; the library normally decides these."""
        self.code = code
        self._message = message
        return self

    # Completion

    def finalize(self, outcome: Outcome | None = None) -> "Result":
        """Make the Result final and fire its hooks.

        Returns the Result produced by the on_chain hooks, or this Result
        when there are none.
        """
        if outcome is not None:
            self._attach(outcome)

        if not self:
            for hook in self.on_error:
                hook(self)

        for hook in self.on_final:
            hook(self)

        tail = self
        for hook in reversed(self.on_chain):
            tail = hook(tail)
            if not isinstance(tail, Result):
                raise UsageError("A chain hook must return a Result")
        return tail

    def _attach(self, outcome: Outcome) -> None:
        # Paged calls attach every physical round; hooks only fire on finalize
        self.connection = outcome.connection
        self.response = outcome.response
        if outcome.request is not None:
            self.request = outcome.request
        self.is_ready = True
        self._plan = None
        self.status(outcome.code, outcome.message)
        self._forget()

    def _forget(self) -> None:
        self._answer: Any = _UNSET
        self._values: Any = _UNSET
        self._rows: dict[int, dict[int, Row]] = {}
        self._rows_complete: dict[int, list[Row]] = {}

    def mark_delayed(self, plan: DelayPlan) -> "Result":
        """Remember how to complete this Result later; no hooks fire."""
        self._plan = plan
        self.connection = plan.connection
        return self.status(DELAYED)

    @property
    def delay_plan(self) -> DelayPlan | None:
        return self._plan

    def run(self) -> "Result":
        """Complete a delayed call; a final Result is returned as is."""
        if self._plan is None:
            return self
        return self._plan.runner.complete(self)

    async def run_async(self) -> "Result":
        """Complete a delayed call on an asyncio transport."""
        if self._plan is None:
            return self
        return await self._plan.runner.complete_async(self)

    # Payload

    def answer(self) -> Any:
        """The decoded JSON answer, as received.

        Raises:
            NotReadyError: When the response has not arrived (yet).
        """
        if self._answer is _UNSET:
            if not self.is_ready:
                raise NotReadyError(f"Document not ready: {self.message}")
            self._answer = self.response.answer() if self.response is not None else None
        return self._answer

    def values(self) -> Any:
        """The answer, converted into Python types by the on_values hooks."""
        if self._values is _UNSET:
            values = self.answer()
            for hook in reversed(self.on_values):
                values = hook(self, values)
            self._values = values
        return self._values

    def attachment(self, name: str) -> bytes | None:
        """Raw content of a named part of a multipart answer."""
        if not self.is_ready:
            raise NotReadyError(f"Document not ready: {self.message}")
        return self.response.attachment(name) if self.response is not None else None

    def row(self, index: int, column: int = 0) -> Row | None:
        """Row number index (starting at 1) of the answer, or None past the end.

        The on_row hooks are asked, last added first, for
        ``{"answer": ..., "values": ..., "doc": ... | "doc_params": {...}}``;
        the first which does not return None wins.  Rows are made once.
        """
        if index < 1:
            raise UsageError("Rows are counted from 1")

        rows = self._rows.setdefault(column, {})
        if index in rows:
            return rows[index]
        if column in self._rows_complete:
            return None

        self.answer()
        for hook in reversed(self.on_row):
            found = hook(self, index, column)
            if found is not None:
                break
        else:
            return None

        doc = found.get("doc")
        if doc is None and found.get("doc_params"):
            from .document import Document

            doc = Document(**found["doc_params"])

        rows[index] = Row(self, found.get("answer"), found.get("values"), doc, index)
        return rows[index]

    def rows_ref(self, column: int = 0) -> list[Row]:
        """All rows, made on first use and shared afterwards."""
        complete = self._rows_complete.get(column)
        if complete is None:
            index = 1
            while self.row(index, column) is not None:
                index += 1
            rows = self._rows[column]
            complete = self._rows_complete[column] = [rows[n] for n in sorted(rows)]
        return complete

    def rows(self, column: int = 0) -> list[Row]:
        return list(self.rows_ref(column))

    # Paging

    def _this_page(self) -> PaginationState:
        if self.paging is None:
            raise UsageError("Call does not support paging.")
        return self.paging

    @property
    def page(self) -> list[Any]:
        """The elements collected for this page."""
        return self._this_page().harvested

    def page_is_partial(self) -> bool:
        """Another round would be made to fill the page further."""
        return self._this_page().is_partial()

    def is_last_page(self) -> bool:
        """No more elements are to be expected after this page."""
        return self._this_page().end_reached

    def next_page_settings(self) -> PaginationState:
        """Paging state for the logical next page."""
        return self._this_page().next_page()

    def paging_state(self, max_bookmarks: int = 10) -> dict[str, Any]:
        """Next page settings in a form which can be saved, for instance in a session.

        Functions are replaced by markers; bookmarks are trimmed to the
        max_bookmarks furthest ones (0 keeps all), because they are large.
        """
        connection = self.connection.name if self.connection is not None else None
        return self.next_page_settings().export(connection, max_bookmarks)
