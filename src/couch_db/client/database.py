"""Calls on one database.

Creating a Database object does not contact the server: the database
may not exist (yet).  Use exists() or create().
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from .dispatch import LogicalRequest
from .document import Document
from .exceptions import UsageError
from .options import CallOptions, PagingOptions, call_options
from .result import Result

if TYPE_CHECKING:
    from .api import Couch

logger = logging.getLogger("couch-db")

DB_NAME = re.compile(r"^[a-z][a-z0-9_$()+/-]*$")

SEARCH_BOOLS = (
    "conflicts", "descending", "group", "include_docs", "attachments", "att_encoding_info",
    "inclusive_end", "reduce", "sorted", "stable", "update_seq",
)
SEARCH_JSON = ("endkey", "end_key", "key", "keys", "start_key", "startkey")

# Managed by the paging options
PAGING_KEYS = ("limit", "skip", "bookmark")

DocumentFailed = Callable[[Result, Document, dict[str, Any]], None]


def _log_failed(result: Result, doc: Document, details: dict[str, Any]) -> None:
    logger.warning(f"Bulk update of {doc.id} failed: {details.get('error')}: {details.get('reason')}")


class Database:
    """One database on the server(s).

    Usage:
        db = couch.db("authors")
        if not db.exists():
            db.create()
        result = db.find({"selector": {"year": {"$gt": 2000}}}, paging=PagingOptions(page_size=50))
    """

    def __init__(self, couch: Couch, name: str):
        if not DB_NAME.match(name or ""):
            raise UsageError(f"Illegal database name '{name}'.")
        self.couch = couch
        self.name = name

    def __repr__(self) -> str:
        return f"Database({self.name!r})"

    def path(self, *parts: str) -> str:
        """Server path of the database, or of something inside it."""
        return "/".join(["", quote(self.name, safe=""), *parts])

    def _call(
        self,
        request: LogicalRequest,
        options: CallOptions | None,
        paging: PagingOptions | None = None,
        **defaults: Any,
    ) -> Result:
        return self.couch.call(request, call_options(options, **defaults), paging)

    # Database level

    def ping(self, options: CallOptions | None = None) -> Result:
        """HEAD /{db}: only headers, no body."""
        return self._call(LogicalRequest("HEAD", self.path()), options)

    def exists(self) -> bool | None:
        """True/False when the server knows, None when it could not be asked."""
        result = self.ping(CallOptions(delay=False))
        if result.code == 404:
            return False
        if result.code == 200:
            return True
        return None

    def details(self, partition: str | None = None, options: CallOptions | None = None) -> Result:
        """Information about the database or one of its partitions."""
        path = self.path("_partition", quote(partition, safe="")) if partition else self.path()

        def values(result: Result, raw: Any) -> Any:
            values = dict(raw or {})
            # Zero (or "0") on modern servers
            if values.get("instance_start_time") not in (None, 0, "0"):
                self.couch.converters.to_native(values, "epoch", "instance_start_time")
            return values

        return self._call(LogicalRequest("GET", path), options, on_values=values)

    def create(
        self,
        partitioned: bool | None = None,
        q: int | None = None,
        n: int | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Create the database; fails with 412 when it already exists."""
        query: dict[str, Any] = {
            key: value
            for key, value in {"partitioned": partitioned, "q": q, "n": n}.items()
            if value is not None
        }
        self.couch.converters.to_query(query, "bool", "partitioned").to_query(query, "int", "q", "n")
        return self._call(LogicalRequest("PUT", self.path(), query=query, body={}), options)

    def remove(self, options: CallOptions | None = None) -> Result:
        return self._call(LogicalRequest("DELETE", self.path()), options)

    def user_roles(self, options: CallOptions | None = None) -> Result:
        """The security object: admins and members (GET /{db}/_security)."""
        return self._call(LogicalRequest("GET", self.path("_security")), options)

    def user_roles_change(
        self,
        admins: dict[str, list[str]] | None = None,
        members: dict[str, list[str]] | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Replace the security object; each part has "names" and "roles"."""
        send = {"admins": admins or {}, "members": members or {}}
        return self._call(LogicalRequest("PUT", self.path("_security"), body=send), options)

    def compact(self, ddoc: str | None = None, options: CallOptions | None = None) -> Result:
        """Compact the database, or the views of one design document."""
        path = self.path("_compact", quote(ddoc, safe="")) if ddoc else self.path("_compact")
        return self._call(LogicalRequest("POST", path, body={}), options)

    def ensure_full_commit(self, options: CallOptions | None = None) -> Result:
        def values(result: Result, raw: Any) -> Any:
            values = dict(raw or {})
            if values.get("instance_start_time") not in (None, 0, "0"):
                self.couch.converters.to_native(values, "epoch", "instance_start_time")
            return values

        request = LogicalRequest("POST", self.path("_ensure_full_commit"), body={}, deprecated="3.0.0")
        return self._call(request, options, on_values=values)

    def revision_limit(self, options: CallOptions | None = None) -> Result:
        return self._call(LogicalRequest("GET", self.path("_revs_limit")), options)

    def revision_limit_set(self, value: int, options: CallOptions | None = None) -> Result:
        return self._call(LogicalRequest("PUT", self.path("_revs_limit"), body=int(value)), options)

    # Indexes

    def create_index(self, definition: dict[str, Any], options: CallOptions | None = None) -> Result:
        """Create a Mango index (POST /{db}/_index).

        Args:
            definition: index, and optionally ddoc, name, type and partitioned.
        """
        send = dict(definition)
        self.couch.converters.to_json(send, "bool", "partitioned")
        return self._call(LogicalRequest("POST", self.path("_index"), body=send), options)

    def list_indexes(self, options: CallOptions | None = None) -> Result:
        return self._call(LogicalRequest("GET", self.path("_index")), options)

    # Documents

    def doc(self, id: str, data: dict[str, Any] | None = None) -> Document:
        """A document in this database; no server contact."""
        return Document(db=self, id=id, data=data)

    def update_documents(
        self,
        docs: Iterable[Document],
        delete: Iterable[Document] = (),
        new_edits: bool | None = None,
        on_failed: DocumentFailed = _log_failed,
        options: CallOptions | None = None,
    ) -> Result:
        """Save and delete documents in one request (POST /{db}/_bulk_docs).

        After a successful call, the saved documents know their new revision.
        on_failed is called per document the server refused or did not
        report about.
        """
        docs = list(docs)
        deletes = list(delete)
        plan = [dict(doc.data, _id=doc.id) if doc.id else dict(doc.data) for doc in docs]
        for doc in deletes:
            plan.append({"_id": doc.id, "_rev": doc.rev, "_deleted": True})
        if not plan:
            raise UsageError("Need at least one document for bulk processing.")

        send: dict[str, Any] = {"docs": plan}
        if new_edits is not None:
            send["new_edits"] = new_edits
        self.couch.converters.to_json(send, "bool", "new_edits")

        def updated(result: Result) -> None:
            if not result:
                return
            saves = {doc.id: doc for doc in docs if doc.id}
            removes = {doc.id: doc for doc in deletes}
            for report in result.values() or []:
                removing = report.get("id") in removes
                doc = removes.pop(report.get("id"), None) if removing else saves.pop(report.get("id"), None)
                if doc is None:
                    continue
                if report.get("ok"):
                    doc.saved(report["id"], report.get("rev"))
                    if removing:
                        doc.deleted()
                else:
                    on_failed(result, doc, dict(report, delete=removing))

            for id, doc in saves.items():
                on_failed(result, doc, {"error": "missing", "reason": f"The server did not report back on saving {id}."})
            for id, doc in removes.items():
                on_failed(
                    result,
                    doc,
                    {"error": "missing", "reason": f"The server did not report back on deleting {id}.", "delete": True},
                )

        return self._call(LogicalRequest("POST", self.path("_bulk_docs"), body=send), options, on_final=updated)

    def _found_row(self, result: Result, index: int, column: int) -> dict[str, Any] | None:
        # find() pages contain the documents themselves
        page = result.page
        if index > len(page):
            return None
        item = page[index - 1]
        if not isinstance(item, dict):
            return {"answer": item}
        return {"answer": item, "doc_params": {"db": self, "data": item}}

    def _view_row(self, result: Result, index: int, column: int) -> dict[str, Any] | None:
        # View rows carry the document only with include_docs
        page = result.page
        if index > len(page):
            return None
        item = page[index - 1]
        if not isinstance(item, dict) or not isinstance(item.get("doc"), dict):
            return {"answer": item}
        return {"answer": item, "doc_params": {"db": self, "id": item.get("id"), "data": item["doc"]}}

    def _search(self, search: dict[str, Any], method: str) -> dict[str, Any]:
        s = {key: value for key, value in search.items() if key not in PAGING_KEYS}
        converters = self.couch.converters
        if method == "GET":
            converters.to_query(s, "bool", SEARCH_BOOLS).to_query(s, "json", SEARCH_JSON)
        else:
            converters.to_json(s, "bool", SEARCH_BOOLS).to_json(s, "int", "group_level")

        what = "Search attribute"
        (
            self.couch.check("introduced", "1.6.0" if "attachments" in s else None, f'{what} "attachments"')
            .check("introduced", "1.6.0" if "att_encoding_info" in s else None, f'{what} "att_encoding_info"')
            .check("introduced", "2.0.0" if "sorted" in s else None, f'{what} "sorted"')
            .check("introduced", "2.1.0" if "stable" in s else None, f'{what} "stable"')
            .check("introduced", "2.1.0" if "update" in s else None, f'{what} "update"')
        )
        return s

    def list_documents(
        self,
        search: dict[str, Any] | None = None,
        partition: str | None = None,
        local: bool = False,
        paging: PagingOptions | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Rows of all documents, paged (GET or POST /{db}/_all_docs).

        Args:
            search: View options like include_docs, startkey or keys.  With
                a search, the request is a POST, except for partitions.
            partition: Restrict to one partition.
            local: List the local (non-replicating) documents instead.
        """
        if local and partition:
            raise UsageError("list_documents(local) cannot be combined with partition.")

        if local:
            path = self.path("_local_docs")
        elif partition:
            path = self.path("_partition", quote(partition, safe=""), "_all_docs")
        else:
            path = self.path("_all_docs")

        if search is None or partition:
            request = LogicalRequest("GET", path, query=self._search(search or {}, "GET"))
        else:
            request = LogicalRequest("POST", path, body=self._search(search, "POST"))

        return self._call(request, options, paging or PagingOptions(), on_row=self._view_row)

    def _find_prepare(self, search: dict[str, Any]) -> dict[str, Any]:
        s = {key: value for key, value in search.items() if key not in PAGING_KEYS}
        self.couch.converters.to_json(s, "bool", "conflicts", "update", "stable", "execution_stats").to_json(s, "int", "r")
        return s

    def _find_path(self, partition: str | None, action: str) -> str:
        if partition:
            return self.path("_partition", quote(partition, safe=""), action)
        return self.path(action)

    def find(
        self,
        search: dict[str, Any],
        partition: str | None = None,
        paging: PagingOptions | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Mango query, paged with bookmarks (POST /{db}/_find).

        limit, skip and bookmark are controlled by the paging options;
        the page is in result.page, rows (with documents) via result.row().
        """
        request = LogicalRequest("POST", self._find_path(partition, "_find"), body=self._find_prepare(search))
        return self._call(request, options, paging or PagingOptions(), on_row=self._found_row)

    def find_explain(
        self,
        search: dict[str, Any],
        partition: str | None = None,
        options: CallOptions | None = None,
    ) -> Result:
        """Which index a find() would use (POST /{db}/_explain)."""
        request = LogicalRequest("POST", self._find_path(partition, "_explain"), body=self._find_prepare(search))
        return self._call(request, options)
