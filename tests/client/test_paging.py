"""Tests for paged calls: logical pages from physical rounds."""

import asyncio
import json

import pytest

from couch_db.client.dispatch import Dispatcher, LogicalRequest
from couch_db.client.document import Document
from couch_db.client.exceptions import UsageError
from couch_db.client.options import CallOptions, PagingOptions
from couch_db.client.paging import PaginationState, Stop, default_harvester
from couch_db.client.result import Outcome, Result


@pytest.fixture
def collection(respond):
    """Handler factory serving a slice of items per request, like _all_docs or _find."""
    def make(items, key="rows", bookmarks=False):
        def handler(call):
            params = call.body if isinstance(call.body, dict) else dict(call.url.params)
            limit = int(params.get("limit", 25))
            if params.get("bookmark"):
                start = int(params["bookmark"][2:])
            else:
                start = int(params.get("skip", 0))

            page = items[start:start + limit]
            answer = {key: page}
            if bookmarks:
                answer["bookmark"] = f"bm{start + len(page)}"
            return respond(answer)
        return handler
    return make


def rows(count):
    return [{"id": f"doc{n:03d}", "key": n, "value": None} for n in range(count)]


def round_params(transport):
    return [
        call.body if isinstance(call.body, dict) else dict(call.url.params)
        for call in transport.calls
    ]


class TestAllDocsPages:

    def test_pages_of_25(self, couch, transport, collection):
        """70 documents: pages of 25, 25 and a last one of 20."""
        transport.handler = collection(rows(70))
        db = couch.db("authors")

        first = db.list_documents()
        assert [row["key"] for row in first.page] == list(range(25))
        assert first.page_is_partial() is False
        assert first.is_last_page() is False
        assert len(transport.calls) == 1

        second = db.list_documents(paging=PagingOptions(succeed=first))
        assert [row["key"] for row in second.page] == list(range(25, 50))
        assert second.page_is_partial() is False
        assert second.is_last_page() is False

        third = db.list_documents(paging=PagingOptions(succeed=second))
        assert [row["key"] for row in third.page] == list(range(50, 70))
        assert third.page_is_partial() is False
        assert third.is_last_page() is True

        # the last page needs an extra round which comes back empty
        assert [int(p["skip"]) for p in round_params(transport)] == [0, 25, 50, 70]

    def test_smaller_stops_early(self, couch, transport, collection):
        transport.handler = collection(rows(70))
        db = couch.db("authors")

        paging = PagingOptions(stop=Stop.SMALLER)
        first = db.list_documents(paging=paging)
        second = db.list_documents(paging=PagingOptions(succeed=first))
        third = db.list_documents(paging=PagingOptions(succeed=second))

        assert len(third.page) == 20
        assert third.is_last_page()
        assert len(transport.calls) == 3

    def test_upto(self, couch, transport, collection):
        transport.handler = collection(rows(30))
        result = couch.db("authors").list_documents(paging=PagingOptions(page_size=10, stop=Stop.upto(10)))
        assert result.is_last_page()
        assert len(result.page) == 10

    def test_callable_stop(self, couch, transport, collection):
        transport.handler = collection(rows(30))
        seen = []

        def stop(result, count):
            seen.append(count)
            return True

        result = couch.db("authors").list_documents(paging=PagingOptions(page_size=10, stop=stop))
        assert seen == [10]
        assert result.is_last_page()

    def test_max_per_request(self, couch, transport, collection):
        transport.handler = collection(rows(70))
        result = couch.db("authors").list_documents(paging=PagingOptions(max_per_request=10))

        assert len(result.page) == 25
        assert [int(p["limit"]) for p in round_params(transport)] == [10, 10, 5]
        assert [int(p["skip"]) for p in round_params(transport)] == [0, 10, 20]

    def test_map_filters_items(self, couch, transport, collection):
        """Left out items do not count for the page, but do for the position."""
        transport.handler = collection(rows(70))

        def even(result, row):
            return row if row["key"] % 2 == 0 else None

        result = couch.db("authors").list_documents(paging=PagingOptions(page_size=10, map=even))

        assert [row["key"] for row in result.page] == list(range(0, 20, 2))
        assert [int(p["limit"]) for p in round_params(transport)] == [10, 5, 2, 1, 1]
        assert result.next_page_settings().start == 19

    def test_map_with_smaller(self, couch, transport, collection):
        """Rounds which ask for less than the first one are not smaller when they are complete."""
        transport.handler = collection(rows(100))
        db = couch.db("authors")

        def even(result, row):
            return row if row["key"] % 2 == 0 else None

        first = db.list_documents(paging=PagingOptions(page_size=10, stop=Stop.SMALLER, map=even))
        assert [row["key"] for row in first.page] == list(range(0, 20, 2))
        assert first.is_last_page() is False
        assert first.page_is_partial() is False

        second = db.list_documents(paging=PagingOptions(succeed=first))
        assert [row["key"] for row in second.page] == list(range(20, 40, 2))
        assert second.is_last_page() is False

    def test_all(self, couch, transport, collection):
        transport.handler = collection(rows(250))
        result = couch.db("authors").list_documents(paging=PagingOptions(all=True))

        assert len(result.page) == 250
        assert result.is_last_page()
        assert [int(p["limit"]) for p in round_params(transport)] == [100, 100, 100, 100]

    def test_page_number(self, couch, transport, collection):
        transport.handler = collection(rows(70))
        result = couch.db("authors").list_documents(paging=PagingOptions(page=3, page_size=10))
        assert result.page[0]["key"] == 20

    def test_skip(self, couch, transport, collection):
        transport.handler = collection(rows(70))
        result = couch.db("authors").list_documents(paging=PagingOptions(skip=5, page_size=10))
        assert result.page[0]["key"] == 5
        assert result.next_page_settings().start == 15

    def test_skip_and_page(self, couch, transport):
        with pytest.raises(UsageError, match="either skip or page"):
            couch.db("authors").list_documents(paging=PagingOptions(skip=10, page=2))
        assert transport.calls == []

    def test_page_from_one(self, couch):
        with pytest.raises(UsageError):
            couch.db("authors").list_documents(paging=PagingOptions(page=0))

    def test_unknown_stop(self, couch):
        with pytest.raises(UsageError, match="Unknown stop strategy"):
            couch.db("authors").list_documents(paging=PagingOptions(stop="SOMETIMES"))

    def test_empty_page_after_end(self, couch, transport, collection):
        transport.handler = collection(rows(10))
        first = couch.db("authors").list_documents()
        assert first.is_last_page()
        calls = len(transport.calls)

        after = couch.db("authors").list_documents(paging=PagingOptions(succeed=first))
        assert after
        assert after.page == []
        assert after.is_last_page()
        assert len(transport.calls) == calls

    def test_failed_round(self, couch, transport, respond):
        transport.handler = lambda call: respond({"error": "not_found", "reason": "Database does not exist."}, 404)
        result = couch.db("missing").list_documents()

        assert not result
        assert result.message == "not_found: Database does not exist."
        assert result.page == []

    def test_rows_with_included_docs(self, couch, transport, collection):
        items = [{"id": "a", "key": "a", "value": {}, "doc": {"_id": "a", "_rev": "1-x", "name": "Ann"}}]
        transport.handler = collection(items)
        result = couch.db("authors").list_documents(search={"include_docs": True})

        row = result.row(1)
        assert row.doc.data["name"] == "Ann"
        assert row.doc.rev == "1-x"
        assert transport.calls[0].body["include_docs"] is True


class TestFindBookmarks:

    def test_bookmarks_continue(self, couch, transport, collection):
        """34 matching documents: a page of 25, then one of 9."""
        docs = [{"_id": f"doc{n:03d}", "_rev": "1-a", "n": n} for n in range(34)]
        transport.handler = collection(docs, key="docs", bookmarks=True)
        db = couch.db("authors")
        search = {"selector": {"n": {"$gte": 0}}, "limit": 3}

        first = db.find(search)
        assert len(first.page) == 25
        assert first.rows()[0].doc.id == "doc000"
        assert isinstance(first.row(25).doc, Document)

        second = db.find(search, paging=PagingOptions(succeed=first))
        assert [doc["n"] for doc in second.page] == list(range(25, 34))
        assert second.is_last_page()

        params = round_params(transport)
        assert params[0]["limit"] == 25
        assert params[0]["skip"] == 0
        assert "bookmark" not in params[0]
        assert params[1] == {"selector": {"n": {"$gte": 0}}, "limit": 25, "skip": 0, "bookmark": "bm25"}
        assert params[2]["bookmark"] == "bm34"

    def test_initial_bookmark(self, couch, transport, collection):
        docs = [{"_id": f"doc{n:03d}", "n": n} for n in range(34)]
        transport.handler = collection(docs, key="docs", bookmarks=True)

        result = couch.db("authors").find({"selector": {}}, paging=PagingOptions(bookmark="bm30"))

        assert [doc["n"] for doc in result.page] == [30, 31, 32, 33]
        assert round_params(transport)[0]["skip"] == 0

    def test_saved_state(self, couch, transport, collection):
        docs = [{"_id": f"doc{n:03d}", "n": n} for n in range(34)]
        transport.handler = collection(docs, key="docs", bookmarks=True)
        db = couch.db("authors")

        first = db.find({"selector": {}})
        state = json.loads(json.dumps(first.paging_state()))
        assert state["bookmarks"] == {"25": "bm25"}
        assert state["harvester"] == "DEFAULT"
        assert state["map"] == "NONE"
        assert state["stop"] == "EMPTY"
        assert state["connection"] == "local"

        second = db.find({"selector": {}}, paging=PagingOptions(succeed=state))
        assert second.page[0]["n"] == 25
        assert round_params(transport)[-2]["bookmark"] == "bm25"

    def test_saved_state_needs_functions(self, couch, transport, collection):
        docs = [{"_id": f"doc{n:03d}", "n": n} for n in range(34)]
        transport.handler = collection(docs, key="docs", bookmarks=True)
        db = couch.db("authors")

        first = db.find({"selector": {}}, paging=PagingOptions(map=lambda result, doc: doc))
        state = first.paging_state()
        assert state["map"] == "CODE"

        with pytest.raises(UsageError, match="map function"):
            db.find({"selector": {}}, paging=PagingOptions(succeed=state))

        second = db.find({"selector": {}}, paging=PagingOptions(succeed=state, map=lambda result, doc: doc["n"]))
        assert second.page == list(range(25, 34))


class TestPinning:

    def test_rounds_stay_on_one_connection(self, registry, make_transport, collection, respond):
        serve = collection(rows(30))

        def handler(call):
            if call.host.startswith("a."):
                return respond({}, 500)
            return serve(call)

        transport = make_transport(handler)
        dispatcher = Dispatcher(registry, transport)
        request = LogicalRequest("GET", "/authors/_all_docs")

        first = dispatcher.dispatch(request, paging=PagingOptions(page_size=50))
        assert len(first.page) == 30
        assert first.connection.name == "b"
        assert [call.host for call in transport.calls] == ["a.example.com", "b.example.com", "b.example.com"]

        transport.calls.clear()
        dispatcher.dispatch(request, paging=PagingOptions(succeed=first))
        assert [call.host for call in transport.calls] == []

    def test_next_page_pinned(self, registry, make_transport, collection):
        transport = make_transport(collection(rows(60)))
        dispatcher = Dispatcher(registry, transport)
        request = LogicalRequest("GET", "/authors/_all_docs")

        first = dispatcher.dispatch(request, CallOptions(connection="c"), paging=PagingOptions())
        transport.calls.clear()
        second = dispatcher.dispatch(request, paging=PagingOptions(succeed=first))

        assert second.connection.name == "c"
        assert {call.host for call in transport.calls} == {"c.example.com"}

    def test_async_pages(self, registry, make_transport, collection):
        transport = make_transport(collection(rows(40)), asynchronous=True)
        dispatcher = Dispatcher(registry, transport)
        request = LogicalRequest("GET", "/authors/_all_docs")

        result = dispatcher.dispatch(request, CallOptions(delay=True), PagingOptions(page_size=30, max_per_request=20))
        assert result.is_delayed
        final = asyncio.run(result.run_async())

        assert len(final.page) == 30
        assert len(transport.calls) == 2


class TestPaginationState:

    def test_round_parameters(self):
        state = PaginationState(start=50, skip=5, page_size=25, max_per_request=10)
        assert state.round_parameters() == {"limit": 10, "skip": 55}

        state.bookmarks[55] = "here"
        assert state.round_parameters() == {"limit": 10, "skip": 0, "bookmark": "here"}

    def test_smaller_against_requested_limit(self):
        state = PaginationState(stop=Stop.SMALLER)
        assert state.should_stop(None, 10, limit=10) is False
        assert state.baseline == 10
        assert state.should_stop(None, 5, limit=5) is False
        assert state.should_stop(None, 4, limit=5) is True
        assert state.should_stop(None, 9) is True

    def test_bookmark_trimming(self):
        state = PaginationState(bookmarks={25: "a", 50: "b", 75: "c", 100: "d"})
        exported = state.export("local", max_bookmarks=2)
        assert exported["bookmarks"] == {75: "c", 100: "d"}
        assert state.export("local", max_bookmarks=0)["bookmarks"] == state.bookmarks

    def test_restore_converts_offsets(self):
        exported = {"start": 25, "page_size": 25, "bookmarks": {"25": "x"}, "stop": "UPTO(3)"}
        state = PaginationState.restore(exported, PagingOptions())
        assert state.bookmarks == {25: "x"}
        assert state.stop == "UPTO(3)"

    def test_restore_needs_stop_function(self):
        with pytest.raises(UsageError):
            PaginationState.restore({"stop": "CODE"}, PagingOptions())

    def test_next_page_keeps_bookmarks(self):
        state = PaginationState(page_size=2, bookmarks={2: "b"}, harvested=[1, 2], consumed=2, baseline=2)
        following = state.next_page()
        assert following.start == 2
        assert following.harvested == []
        assert following.bookmarks == {2: "b"}
        assert following.baseline == 2
        following.bookmarks[4] = "d"
        assert 4 not in state.bookmarks

    def test_default_harvester(self, respond):
        result = Result().finalize(Outcome(None, respond({"results": [1, 2]}), 200))
        assert default_harvester(result) == [1, 2]

        result = Result().finalize(Outcome(None, respond(["not", "a", "dict"]), 200))
        assert default_harvester(result) == []
