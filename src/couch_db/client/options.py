"""Generic per-call options, understood by every endpoint method.

Endpoint methods combine the options of their caller with their own
defaults through CallOptions.merged():

- headers are additive: an endpoint default only fills a header the caller
  did not set;
- event hooks are additive: the endpoint's hooks are appended after the
  caller's;
- everything else is a default, used only when the caller left it unset.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .connection import Connection
    from .result import Result

Hook = Callable[..., Any]
HOOK_NAMES = ("on_error", "on_final", "on_chain", "on_values", "on_row")


def pile(*hooks: Hook | Iterable[Hook] | None) -> list[Hook]:
    """Flatten single hooks and collections of hooks into one list, in order."""
    piled: list[Hook] = []
    for hook in hooks:
        if hook is None:
            continue
        if callable(hook):
            piled.append(hook)
        else:
            piled.extend(h for h in hook if h is not None)
    return piled


@dataclass
class CallOptions:
    """How one call is performed, as opposed to what it requests.

    Attributes:
        connection: Use only this connection (object or name).
        connections: Use any of these connections, or, when a string, all
            connections which have that role.
        delay: Prepare the call but do not perform it: the Result is
            returned delayed, see Result.run().
        headers: Extra request headers.
        on_error: Called with the Result when the call completed without success.
        on_final: Called with the Result when the call completed.
        on_chain: Called with the Result, must return a (follow-up) Result.
        on_values: Called with (result, values), returns converted values.
        on_row: Called with (result, index, column), returns row details or None.
    """

    connection: Connection | str | None = None
    connections: list[Connection | str] | str | None = None
    delay: bool | None = None
    headers: dict[str, str] = field(default_factory=dict)
    on_error: list[Hook] = field(default_factory=list)
    on_final: list[Hook] = field(default_factory=list)
    on_chain: list[Hook] = field(default_factory=list)
    on_values: list[Hook] = field(default_factory=list)
    on_row: list[Hook] = field(default_factory=list)

    def __post_init__(self) -> None:
        for name in HOOK_NAMES:
            setattr(self, name, pile(getattr(self, name)))
        self.headers = dict(self.headers or {})

    def merged(self, **defaults: Any) -> "CallOptions":
        """Return new options: these, completed with endpoint defaults."""
        known = {f.name for f in fields(self)}
        merged = replace(self)

        for key, value in defaults.items():
            if key not in known:
                raise TypeError(f"Unknown call option '{key}'")

            if key == "headers":
                for header, content in (value or {}).items():
                    merged.headers.setdefault(header, content)
            elif key in HOOK_NAMES:
                setattr(merged, key, getattr(self, key) + pile(value))
            elif getattr(merged, key) is None:
                setattr(merged, key, value)

        return merged


def call_options(options: CallOptions | None = None, **defaults: Any) -> CallOptions:
    """Caller options (possibly None) merged with endpoint defaults."""
    return (options or CallOptions()).merged(**defaults)


@dataclass
class PagingOptions:
    """How to collect a logical page from one or more physical requests.

    Attributes:
        page_size: Number of items in a logical page (configured default
            when None).
        all: Collect everything, ignoring page_size.
        max_per_request: Limit on the items asked for in one request.
        skip: Items to skip before the page starts.
        page: Page number (starting at 1); an alternative for skip.
        bookmark: Continuation token for the first request.
        harvester: ``harvester(result) -> list``, takes the items from
            one response.  Default: the 'docs', 'rows' or 'results' list.
        map: ``map(result, item)``, transforms each harvested item; when
            it returns None, the item is left out of the page.
        stop: "EMPTY" (default), "SMALLER", "UPTO(n)" or a callable
            ``stop(result, count) -> bool``.
        succeed: A previous Result to continue from, or a state as
            returned by Result.paging_state().
    """

    page_size: int | None = None
    all: bool = False
    max_per_request: int | None = None
    skip: int | None = None
    page: int | None = None
    bookmark: str | None = None
    harvester: Callable[[Result], list[Any]] | None = None
    map: Callable[[Result, Any], Any] | None = None
    stop: str | Callable[[Result, int], bool] | None = None
    succeed: Result | dict[str, Any] | None = None
