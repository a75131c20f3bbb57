"""Cluster management calls: setup state, resharding, shards."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any

from .dispatch import LogicalRequest
from .options import CallOptions, call_options
from .result import Result

if TYPE_CHECKING:
    from .api import Couch
    from .database import Database


class Cluster:
    """Simple pass-through calls about the cluster; get it from couch.cluster()."""

    def __init__(self, couch: Couch):
        self.couch = couch

    def _call(self, request: LogicalRequest, options: CallOptions | None, **defaults: Any) -> Result:
        return self.couch.call(request, call_options(options, **defaults))

    def cluster_state(self, ensure_dbs_exist: list[str] | None = None, options: CallOptions | None = None) -> Result:
        """State of the cluster setup (GET /_cluster_setup)."""
        query = {}
        if ensure_dbs_exist:
            query["ensure_dbs_exist"] = self.couch.json_text(list(ensure_dbs_exist), compact=True)
        return self._call(LogicalRequest("GET", "/_cluster_setup", query=query, introduced="2.0.0"), options)

    def reshard_status(self, counts: bool = False, options: CallOptions | None = None) -> Result:
        """Resharding state; with counts, the job summary (GET /_reshard).

        The answer with counts has "state_reason" where the other has "reason".
        """
        path = "/_reshard" if counts else "/_reshard/state"
        return self._call(LogicalRequest("GET", path, introduced="2.4.0"), options)

    def reshard_jobs(self, options: CallOptions | None = None) -> Result:
        def values(result: Result, raw: Any) -> Any:
            values = copy.deepcopy(raw or {})
            converters = self.couch.converters
            for job in values.get("jobs") or []:
                converters.to_native(job, "isotime", "start_time", "update_time").to_native(job, "node", "node")
                for event in job.get("history") or []:
                    converters.to_native(event, "isotime", "timestamp")
            return values

        return self._call(LogicalRequest("GET", "/_reshard/jobs", introduced="2.4.0"), options, on_values=values)

    def shards_for_db(self, db: Database, options: CallOptions | None = None) -> Result:
        """Which nodes hold which shard ranges of a database (GET /{db}/_shards)."""
        def values(result: Result, raw: Any) -> Any:
            values = dict(raw or {})
            shards = values.get("shards") or {}
            values["shards"] = {
                shard: self.couch.converters.list_to_native(shard, "node", nodes)
                for shard, nodes in shards.items()
            }
            return values

        return self._call(LogicalRequest("GET", db.path("_shards"), introduced="2.0.0"), options, on_values=values)
