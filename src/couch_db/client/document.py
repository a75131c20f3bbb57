"""A document in a database."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from .dispatch import LogicalRequest
from .exceptions import UsageError
from .options import CallOptions, call_options
from .result import Result

if TYPE_CHECKING:
    from .database import Database

SPECIAL_PREFIXES = ("_design/", "_local/")


class Document:
    """One document; its content is what was last loaded or saved.

    Creating a Document does not contact the server.  The database does
    not own its documents: a Document only refers to the database it lives in.
    """

    def __init__(
        self,
        db: Database | None = None,
        id: str | None = None,
        data: dict[str, Any] | None = None,
        rev: str | None = None,
    ):
        self.db = db
        self.data = dict(data or {})
        self.id = id or self.data.get("_id")
        self.rev = rev or self.data.get("_rev")
        self.is_deleted = False

    def __repr__(self) -> str:
        return f"Document({self.id!r}, rev={self.rev!r})"

    def path(self) -> str:
        if self.db is None or not self.id:
            raise UsageError("A document needs a database and an id to be addressed")

        for prefix in SPECIAL_PREFIXES:
            if self.id.startswith(prefix):
                return self.db.path(prefix.rstrip("/"), quote(self.id[len(prefix):], safe=""))
        return self.db.path(quote(self.id, safe=""))

    def _call(self, request: LogicalRequest, options: CallOptions | None, **defaults: Any) -> Result:
        return self.db.couch.call(request, call_options(options, **defaults))

    def ping(self, options: CallOptions | None = None) -> Result:
        """HEAD /{db}/{docid}: whether the document exists, and its revision (ETag)."""
        return self._call(LogicalRequest("HEAD", self.path()), options)

    def get(
        self,
        rev: str | None = None,
        revs: bool | None = None,
        conflicts: bool | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Load the document (GET /{db}/{docid}); a success updates data and rev."""
        query = {"rev": rev, "revs": revs, "conflicts": conflicts}

        def loaded(result: Result) -> None:
            if result:
                self.data = dict(result.answer() or {})
                self.rev = self.data.get("_rev", self.rev)

        return self._call(LogicalRequest("GET", self.path(), query=query), options, on_final=loaded)

    def saved(self, id: str, rev: str | None) -> None:
        """Administer a successful save."""
        self.id = id
        self.rev = rev
        self.data["_id"] = id
        if rev is not None:
            self.data["_rev"] = rev

    def deleted(self) -> None:
        self.is_deleted = True
