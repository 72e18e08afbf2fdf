"""
Key/value storage adapters for persisted client state.

All values are JSON-serialized strings. Keys are namespaced with
settings.STORAGE_PREFIX so several engines can share one Redis database.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional

from walletflow.settings import settings
from walletflow.store.redis_conn import get_redis
from walletflow.observability.logging import log


class RedisStorage:
    def __init__(self, redis=None, prefix: Optional[str] = None):
        self._redis = redis
        self.prefix = settings.STORAGE_PREFIX if prefix is None else prefix

    @property
    def redis(self):
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        return self.redis.get(self._key(key))

    def set(self, key: str, value: str) -> None:
        self.redis.set(self._key(key), value)

    def delete(self, key: str) -> None:
        self.redis.delete(self._key(key))

    def get_json(self, key: str) -> Any:
        return _loads(key, self.get(key))

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))


class MemoryStorage:
    """Process-local storage with the same contract (tests, offline runs)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self.data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)

    def get_json(self, key: str) -> Any:
        return _loads(key, self.get(key))

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))


def _loads(key: str, raw: Optional[str]) -> Any:
    if raw is None or raw == "":
        return None
    try:
        return json.loads(raw)
    except ValueError:
        # Corrupt entries read as missing; the next successful write replaces them
        try:
            log(event="storage_corrupt_value", key=key, length=len(raw))
        except Exception:
            pass
        return None


def get_storage():
    if settings.STORAGE_BACKEND == "memory":
        return MemoryStorage()
    return RedisStorage()
