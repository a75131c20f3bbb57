"""Tests for Result: readiness, conversion, rows and hooks."""

import pytest

from couch_db.client.document import Document
from couch_db.client.exceptions import NotReadyError, UsageError
from couch_db.client.result import DELAYED, UNDECIDED, Outcome, Result


def docs_row(result, index, column):
    docs = result.answer()["docs"]
    if index > len(docs):
        return None
    return {"answer": docs[index - 1], "doc_params": {"id": docs[index - 1]["_id"]}}


class TestResultState:

    def test_undecided(self):
        result = Result()
        assert result.code == UNDECIDED
        assert result.is_ready is False
        assert result.message == "The Result object does not know what to do, yet."

    def test_not_ready(self):
        with pytest.raises(NotReadyError):
            Result().answer()

    def test_truthiness(self, respond):
        assert Result().finalize(Outcome(None, respond({}), 201))
        assert not Result().finalize(Outcome(None, respond({}), 404))

    def test_message_and_code_name(self, respond):
        result = Result().finalize(Outcome(None, respond({}), 404, "not_found: missing"))
        assert result.message == "not_found: missing"
        assert result.code_name() == "HTTP_NOT_FOUND"

    def test_code_name_without_message(self, respond):
        result = Result().finalize(Outcome(None, respond(None), 409))
        assert result.message == "HTTP_CONFLICT"

    def test_status(self):
        result = Result().status(DELAYED)
        assert result.is_delayed
        assert result.message == "The data collection is delayed."


class TestPayload:

    def test_answer_decoded_once(self, respond):
        response = respond({"uuids": ["a", "b"]})
        result = Result().finalize(Outcome(None, response, 200))
        assert result.answer() is result.answer()
        assert response.decoded == 1

    def test_values_memoized(self, respond):
        calls = []

        def count(result, values):
            calls.append(values)
            return dict(values, converted=True)

        result = Result(on_values=count).finalize(Outcome(None, respond({"a": 1}), 200))
        first = result.values()
        assert first == {"a": 1, "converted": True}
        assert result.values() is first
        assert len(calls) == 1

    def test_values_hooks_last_added_first(self, respond):
        def outer(result, values):
            return values + ["outer"]

        def inner(result, values):
            return values + ["inner"]

        result = Result(on_values=[outer, inner]).finalize(Outcome(None, respond([]), 200))
        assert result.values() == ["inner", "outer"]

    def test_attachment(self, respond):
        response = respond({"_id": "x"}, parts={"logo.png": b"\x89PNG"})
        result = Result().finalize(Outcome(None, response, 200))
        assert result.attachment("logo.png") == b"\x89PNG"
        assert result.attachment("other.png") is None


class TestRows:

    def test_rows_with_documents(self, respond):
        answer = {"docs": [{"_id": "a"}, {"_id": "b"}]}
        result = Result(on_row=docs_row).finalize(Outcome(None, respond(answer), 200))

        rows = result.rows()
        assert [row.number for row in rows] == [1, 2]
        assert rows[0].values == {"_id": "a"}
        assert isinstance(rows[1].doc, Document)
        assert rows[1].doc.id == "b"
        assert result.row(3) is None

    def test_rows_made_once(self, respond):
        asked = []

        def hook(result, index, column):
            asked.append(index)
            return docs_row(result, index, column)

        answer = {"docs": [{"_id": "a"}]}
        result = Result(on_row=hook).finalize(Outcome(None, respond(answer), 200))

        assert result.row(1) is result.row(1)
        assert result.rows_ref() is result.rows_ref()
        assert asked == [1, 2]

    def test_rows_are_lazy(self, respond):
        """Nothing is decoded until rows are asked for."""
        response = respond({"docs": [{"_id": "a"}]})
        result = Result(on_row=docs_row).finalize(Outcome(None, response, 200))
        assert response.decoded == 0
        result.rows()
        assert response.decoded == 1

    def test_latest_row_hook_wins(self, respond):
        def general(result, index, column):
            return {"answer": "general"} if index == 1 else None

        def specific(result, index, column):
            return {"answer": "specific"} if column == 1 and index == 1 else None

        result = Result(on_row=[general, specific]).finalize(Outcome(None, respond({}), 200))
        assert result.row(1).answer == "general"
        assert result.row(1, column=1).answer == "specific"

    def test_no_row_hooks(self, respond):
        result = Result().finalize(Outcome(None, respond({}), 200))
        assert result.rows() == []

    def test_rows_counted_from_one(self, respond):
        result = Result().finalize(Outcome(None, respond({}), 200))
        with pytest.raises(UsageError):
            result.row(0)

    def test_rows_not_ready(self):
        with pytest.raises(NotReadyError):
            Result(on_row=docs_row).rows()


class TestHooks:

    def test_final_hooks(self, respond):
        seen = []
        result = Result(
            on_error=lambda r: seen.append("error"),
            on_final=lambda r: seen.append("final"),
        )
        result.finalize(Outcome(None, respond({}), 200))
        assert seen == ["final"]

    def test_error_hooks_before_final(self, respond):
        seen = []
        result = Result(
            on_error=lambda r: seen.append("error"),
            on_final=lambda r: seen.append("final"),
        )
        result.finalize(Outcome(None, respond({}), 500))
        assert seen == ["error", "final"]

    def test_chain_order(self, respond):
        """Chain hooks run innermost (last added) first; the outermost result is returned."""
        order = []

        def link(name):
            def hook(result):
                order.append(name)
                follow = Result().finalize(Outcome(None, respond({"by": name}), 200))
                follow.previous = result
                return follow
            return hook

        result = Result(on_chain=[link("outer"), link("middle"), link("inner")])
        tail = result.finalize(Outcome(None, respond({}), 200))

        assert order == ["inner", "middle", "outer"]
        assert tail.answer() == {"by": "outer"}
        assert tail.previous.previous.previous is result

    def test_chain_must_return_result(self, respond):
        result = Result(on_chain=lambda r: None)
        with pytest.raises(UsageError):
            result.finalize(Outcome(None, respond({}), 200))


class TestWithoutPaging:

    def test_paging_accessors(self, respond):
        result = Result().finalize(Outcome(None, respond({}), 200))
        with pytest.raises(UsageError, match="Call does not support paging."):
            result.page
        with pytest.raises(UsageError, match="Call does not support paging."):
            result.next_page_settings()

    def test_run_final_result(self, respond):
        result = Result().finalize(Outcome(None, respond({}), 200))
        assert result.run() is result
