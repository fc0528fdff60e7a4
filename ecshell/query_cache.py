import hashlib
import json
import logging
import os
import re
import tempfile
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Query:
    """A read-only AWS API call, identified by everything that affects its result."""

    service: str
    operation: str
    profile: Optional[str] = None
    region: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)
    paginate: bool = False

    @property
    def signature(self) -> str:
        return json.dumps(
            {
                "service": self.service,
                "operation": self.operation,
                "profile": self.profile,
                "region": self.region,
                "params": self.params,
                "paginate": self.paginate,
            },
            sort_keys=True,
            separators=(",", ":"),
        )

    @property
    def digest(self) -> str:
        return hashlib.sha256(self.signature.encode("utf-8")).hexdigest()

    def execute(self, client):
        if self.paginate:
            paginator = client.get_paginator(self.operation)
            return paginator.paginate(**self.params).build_full_result()
        return getattr(client, self.operation)(**self.params)


def _safe_component(value):
    return re.sub(r"[^A-Za-z0-9_.-]", "_", value or "default")


class QueryCache:
    """On-disk query results, one file per cluster, region and query digest.

    The entry's age is taken from the file's mtime. Only results of queries
    that completed are written; if the executor raises, the previous entry
    (if any) is left untouched and the error propagates.
    """

    def __init__(
        self,
        cache_root: str,
        cluster: str,
        region: Optional[str],
        executor: Callable[[Query], Any],
        clock: Callable[[], float] = time.time,
    ):
        self.directory = os.path.join(
            os.path.expanduser(cache_root),
            _safe_component(cluster),
            _safe_component(region),
        )
        self.executor = executor
        self.clock = clock

    def path_for(self, query: Query) -> str:
        return os.path.join(self.directory, f"{query.digest}.json")

    def _read(self, path, ttl):
        try:
            age = self.clock() - os.path.getmtime(path)
        except OSError:
            return None
        if age > ttl:
            logger.debug(f"Cache entry {path} is stale ({age:.0f}s > {ttl}s)")
            return None
        try:
            with open(path, "r") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable cache entry {path}: {e}")
            return None

    def _write(self, path, payload):
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, default=str)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def fetch(self, query: Query, ttl: float, force_refresh: bool = False):
        path = self.path_for(query)
        if not force_refresh:
            cached = self._read(path, ttl)
            if cached is not None:
                logger.debug(f"Cache hit for {query.service}.{query.operation}")
                return cached

        logger.debug(f"Running {query.service}.{query.operation} {query.params}")
        payload = self.executor(query)
        # Round-trip through JSON so a fresh result looks exactly like a cached one.
        payload = json.loads(json.dumps(payload, default=str))
        try:
            self._write(path, payload)
        except OSError as e:
            logger.warning(f"Could not write cache entry {path}: {e}")
        return payload
