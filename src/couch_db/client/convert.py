"""Conversions between JSON as sent by CouchDB and richer Python values.

Every converter is called as ``converter(owner, name, value)``: the owner
is the Couch object (needed for instance to look up Node objects), name is
the field being converted.  Tables passed to TypeConverters add or override
entries of the defaults below, without touching this module.
"""

import json
import logging
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from .connection import ServerVersion
from .exceptions import UsageError

logger = logging.getLogger("couch-db")

Converter = Callable[[Any, str, Any], Any]


def _to_bool(owner: Any, name: str, value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() == "true"
    return bool(value)


def _isotime(owner: Any, name: str, value: str) -> datetime:
    # fromisoformat() only learned about "Z" in Python 3.11
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


DEFAULT_TO_NATIVE: dict[str, Converter] = {
    "abs_uri": lambda owner, name, value: httpx.URL(value),
    "uri": lambda owner, name, value: httpx.URL(value),
    "epoch": lambda owner, name, value: datetime.fromtimestamp(value, tz=timezone.utc),
    "isotime": _isotime,
    "mailtime": lambda owner, name, value: parsedate_to_datetime(value),
    "version": lambda owner, name, value: ServerVersion.parse(value),
    "node": lambda owner, name, value: owner.node(value),
    "bool": _to_bool,
}

DEFAULT_TO_JSON: dict[str, Converter] = {
    "bool": lambda owner, name, value: bool(value),
    "uri": lambda owner, name, value: str(value),
    "node": lambda owner, name, value: getattr(value, "name", value),
    # CouchDB is type sensitive: "6" is not 6
    "int": lambda owner, name, value: None if value is None else int(value),
}

# Extends/overrides the JSON converters
DEFAULT_TO_QUERY: dict[str, Converter] = {
    "bool": lambda owner, name, value: "true" if value else "false",
    "json": lambda owner, name, value: json.dumps(value, separators=(",", ":")),
}


def _flat_keys(keys: Iterable[Any]) -> list[str]:
    flat: list[str] = []
    for key in keys:
        if isinstance(key, (list, tuple, set)):
            flat.extend(key)
        elif key is not None:
            flat.append(key)
    return flat


class TypeConverters:
    """Registry of named conversions, in three directions.

    Usage:
        converters = TypeConverters(owner=couch, to_native={"epoch": my_epoch})
        converters.to_native(data, "epoch", "started_on", "updated_on")
        converters.to_json(body, "bool", "descending")
        converters.to_query(query, "json", "startkey", "endkey")

    Fields which do not exist in the data are left alone.  The methods
    update the data in place and return the registry, so they can be chained.
    """

    def __init__(
        self,
        owner: Any = None,
        to_native: dict[str, Converter] | None = None,
        to_json: dict[str, Converter] | None = None,
        to_query: dict[str, Converter] | None = None,
    ):
        self.owner = owner
        self._to_native = dict(to_native or {})
        self._to_json = dict(to_json or {})
        self._to_query = dict(to_query or {})

    def native_handler(self, type_name: str) -> Converter:
        handler = self._to_native.get(type_name) or DEFAULT_TO_NATIVE.get(type_name)
        return self._require(handler, "to_native", type_name)

    def json_handler(self, type_name: str) -> Converter:
        handler = self._to_json.get(type_name) or DEFAULT_TO_JSON.get(type_name)
        return self._require(handler, "to_json", type_name)

    def query_handler(self, type_name: str) -> Converter:
        """Query override, then JSON override, then the built-in defaults."""
        handler = (
            self._to_query.get(type_name)
            or DEFAULT_TO_QUERY.get(type_name)
            or self._to_json.get(type_name)
            or DEFAULT_TO_JSON.get(type_name)
        )
        return self._require(handler, "to_query", type_name)

    def to_native(self, data: dict[str, Any], type_name: str, *keys: Any) -> "TypeConverters":
        """Convert the named fields of data from JSON into Python objects."""
        return self._apply(self.native_handler(type_name), data, keys)

    def to_json(self, data: dict[str, Any], type_name: str, *keys: Any) -> "TypeConverters":
        """Convert the named fields of data into JSON compatible values."""
        return self._apply(self.json_handler(type_name), data, keys)

    def to_query(self, data: dict[str, Any], type_name: str, *keys: Any) -> "TypeConverters":
        """Convert the named fields of data into query string values."""
        return self._apply(self.query_handler(type_name), data, keys)

    def list_to_native(self, name: str, type_name: str, values: Iterable[Any] | None) -> list[Any]:
        """Convert each element of a list; elements which end up None are dropped."""
        convert = self.native_handler(type_name)
        converted = (convert(self.owner, name, value) for value in values or [])
        return [value for value in converted if value is not None]

    def query_value(self, value: Any) -> str:
        """Generic query string rendering for values without a declared type."""
        if isinstance(value, bool):
            return self.query_handler("bool")(self.owner, "", value)
        if hasattr(value, "name") and not isinstance(value, str):
            return str(value.name)
        return str(value)

    def _apply(self, convert: Converter, data: dict[str, Any], keys: Iterable[Any]) -> "TypeConverters":
        if data is None:
            return self
        for key in _flat_keys(keys):
            if key in data:
                data[key] = convert(self.owner, key, data[key])
        return self

    @staticmethod
    def _require(handler: Converter | None, direction: str, type_name: str) -> Converter:
        if handler is None:
            raise UsageError(f"No {direction} converter for type '{type_name}'")
        return handler
