"""Tests for type conversions."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import httpx
import pytest

from couch_db.client.connection import ServerVersion
from couch_db.client.convert import TypeConverters
from couch_db.client.exceptions import UsageError


@pytest.fixture
def converters():
    owner = MagicMock()
    owner.node.side_effect = lambda name: f"node:{name}"
    return TypeConverters(owner=owner)


class TestToNative:

    def test_epoch(self, converters):
        data = {"started_on": 0, "other": 1}
        converters.to_native(data, "epoch", "started_on")
        assert data["started_on"] == datetime(1970, 1, 1, tzinfo=timezone.utc)
        assert data["other"] == 1

    def test_isotime_with_zulu(self, converters):
        data = {"start_time": "2024-03-01T12:30:00Z"}
        converters.to_native(data, "isotime", "start_time")
        assert data["start_time"] == datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)

    def test_mailtime(self, converters):
        data = {"start_time": "Fri, 01 Mar 2024 12:30:00 GMT"}
        converters.to_native(data, "mailtime", "start_time")
        assert data["start_time"].year == 2024

    def test_version(self, converters):
        data = {"version": "3.3.3"}
        converters.to_native(data, "version", "version")
        assert data["version"] == ServerVersion(3, 3, 3)

    def test_uri(self, converters):
        data = {"source": "http://a.example.com/db"}
        converters.to_native(data, "abs_uri", "source")
        assert isinstance(data["source"], httpx.URL)

    def test_node_uses_owner(self, converters):
        data = {"node": "couchdb@127.0.0.1"}
        converters.to_native(data, "node", "node")
        assert data["node"] == "node:couchdb@127.0.0.1"

    def test_missing_fields_untouched(self, converters):
        data = {}
        converters.to_native(data, "epoch", "started_on", "updated_on")
        assert data == {}

    def test_chaining_and_flat_keys(self, converters):
        data = {"a": "true", "b": "false", "version": "2.0"}
        converters.to_native(data, "bool", ["a", "b"]).to_native(data, "version", "version")
        assert data == {"a": True, "b": False, "version": ServerVersion(2, 0, 0)}

    def test_list_to_native_drops_none(self):
        converters = TypeConverters(to_native={"maybe": lambda owner, name, value: value or None})
        assert converters.list_to_native("x", "maybe", ["a", "", "b"]) == ["a", "b"]


class TestToJsonAndQuery:

    def test_json_int(self, converters):
        data = {"q": "8", "n": None}
        converters.to_json(data, "int", "q", "n")
        assert data == {"q": 8, "n": None}

    def test_query_bool(self, converters):
        data = {"partitioned": True, "descending": False}
        converters.to_query(data, "bool", "partitioned", "descending")
        assert data == {"partitioned": "true", "descending": "false"}

    def test_query_json(self, converters):
        data = {"startkey": ["a", 1]}
        converters.to_query(data, "json", "startkey")
        assert data["startkey"] == '["a",1]'

    def test_query_falls_back_to_json_override(self):
        converters = TypeConverters(to_json={"upper": lambda owner, name, value: value.upper()})
        data = {"x": "abc"}
        converters.to_query(data, "upper", "x")
        assert data["x"] == "ABC"

    def test_query_override_first(self):
        converters = TypeConverters(
            to_json={"bool": lambda owner, name, value: "json"},
            to_query={"bool": lambda owner, name, value: "query"},
        )
        data = {"x": True}
        converters.to_query(data, "bool", "x")
        assert data["x"] == "query"

    def test_override_native(self):
        converters = TypeConverters(to_native={"epoch": lambda owner, name, value: "custom"})
        data = {"t": 5}
        converters.to_native(data, "epoch", "t")
        assert data["t"] == "custom"

    def test_unknown_type(self, converters):
        with pytest.raises(UsageError, match="No to_native converter"):
            converters.to_native({}, "colour", "x")

    def test_query_value(self, converters):
        node = MagicMock()
        node.name = "couchdb@host"
        assert converters.query_value(True) == "true"
        assert converters.query_value(5) == "5"
        assert converters.query_value(node) == "couchdb@host"
        assert converters.query_value("plain") == "plain"
