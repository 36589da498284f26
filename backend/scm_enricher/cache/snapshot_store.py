"""
Durable storage for cache snapshots.

A snapshot is the full key -> entry mapping of one cache, read once when a
run starts and overwritten once when it ends:

    {"version": 1, "entries": {"<key>": {"value": ..., "expires_at": 1700000000.0}}}

Two stores are available:
- FileSnapshotStore: one JSON file per cache in a directory (the default;
  CI builds keep the directory between runs)
- RedisSnapshotStore: one Redis string per cache, for builds sharing a Redis
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import redis

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class SnapshotStore(Protocol):
    def read(self, name: str) -> Optional[Dict[str, Any]]: ...

    def write(self, name: str, snapshot: Dict[str, Any]) -> None: ...


class FileSnapshotStore:
    """Stores each cache snapshot as <directory>/<name>.json."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def read(self, name: str) -> Optional[Dict[str, Any]]:
        path = self._path(name)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            # Corrupt snapshot: start cold
            logger.warning(f"Ignoring unreadable cache snapshot {path}: {e}")
            return None

    def write(self, name: str, snapshot: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(name)

        # Atomic replace via sibling temp file
        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


class RedisSnapshotStore:
    """
    Stores each cache snapshot as a JSON string under <prefix>:<name>.

    Expiry is kept inside the snapshot rather than as a Redis TTL, so the
    key itself never expires.
    """

    def __init__(self, client: redis.Redis, prefix: str = "scm_enricher:cache"):
        self._redis = client
        self.prefix = prefix

    def _key(self, name: str) -> str:
        return f"{self.prefix}:{name}"

    def read(self, name: str) -> Optional[Dict[str, Any]]:
        raw = self._redis.get(self._key(name))
        if not raw:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring unreadable cache snapshot {self._key(name)}: {e}")
            return None

    def write(self, name: str, snapshot: Dict[str, Any]) -> None:
        self._redis.set(self._key(name), json.dumps(snapshot))
