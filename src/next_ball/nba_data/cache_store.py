"""TTL-bounded key/value cache shared by all upstream sources."""

from __future__ import annotations

import asyncio
import json
import os
import time
import uuid
from collections.abc import Callable
from contextlib import suppress
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote, unquote

import redis.asyncio as redis_asyncio

from next_ball.logging import get_logger

logger = get_logger("cache")


class CacheTTL:
    """Entry lifetimes in seconds."""

    SCHEDULE = 6 * 60 * 60
    STANDINGS = 6 * 60 * 60
    INJURIES_NON_GAME_DAY = 6 * 60 * 60
    INJURIES_GAME_DAY = 30 * 60
    INJURIES_GAME_DAY_AFTER_1PM = 10 * 60
    HEAD_TO_HEAD = 6 * 60 * 60
    OPPONENT_GAMES = 6 * 60 * 60
    ROSTER = 6 * 60 * 60
    LINEUPS = 15 * 60
    BOX_SCORE = 2 * 60
    AGGREGATE_GAME_DAY = 30 * 60
    AGGREGATE = 6 * 60 * 60
    AGGREGATE_STALE = 24 * 60 * 60


class CacheKeys:
    """Key layout; every key is relative to the store namespace."""

    SCHEDULE = "schedule"
    STANDINGS = "standings"
    AGGREGATE_PREFIX = "aggregate:"
    AGGREGATE_STALE_PREFIX = "aggregate:stale:"
    INJURIES_PREFIX = "injuries:"

    @staticmethod
    def aggregate(team_id: int) -> str:
        return f"aggregate:{team_id}"

    @staticmethod
    def aggregate_stale(team_id: int) -> str:
        return f"{CacheKeys.AGGREGATE_STALE_PREFIX}{team_id}"

    @staticmethod
    def injuries(team_id: int, date_str: str) -> str:
        return f"injuries:{team_id}:{date_str}"

    @staticmethod
    def injury_report(date_str: str) -> str:
        return f"injuries:report:{date_str}"

    @staticmethod
    def roster(team_id: int) -> str:
        return f"roster:{team_id}"

    @staticmethod
    def game_log(team_id: int) -> str:
        return f"gamelog:{team_id}"

    @staticmethod
    def head_to_head(team_a: int, team_b: int) -> str:
        return f"h2h:{team_a}:{team_b}"

    @staticmethod
    def box_score(game_id: str) -> str:
        return f"boxscore:{game_id}"

    @staticmethod
    def box_score_tops(game_id: str) -> str:
        return f"boxscore-tops:{game_id}"

    @staticmethod
    def recent_starters(team_id: int) -> str:
        return f"recent-starters:{team_id}"

    @staticmethod
    def lineups(game_id: str, team_id: int) -> str:
        return f"lineups:{game_id}:{team_id}"


class CacheBackend(Protocol):
    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_s: int) -> None: ...

    async def delete(self, keys: list[str]) -> int: ...

    async def keys(self, prefix: str) -> list[str]: ...

    async def aclose(self) -> None: ...


def _dumps(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=True)


class MemoryCacheBackend:
    """Process-local backend; values are stored as JSON text to keep cache semantics."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, str]] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl_s: int) -> None:
        self._entries[key] = (self._clock() + ttl_s, _dumps(value))

    async def delete(self, keys: list[str]) -> int:
        return sum(1 for key in keys if self._entries.pop(key, None) is not None)

    async def keys(self, prefix: str) -> list[str]:
        now = self._clock()
        return sorted(
            key
            for key, (expires_at, _) in self._entries.items()
            if key.startswith(prefix) and expires_at > now
        )

    async def aclose(self) -> None:
        self._entries.clear()


def _atomic_write_json(path: Path, value: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".tmp-{path.name}-{uuid.uuid4().hex}")
    try:
        tmp_path.write_text(_dumps(value) + "\n", encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError:
        with suppress(FileNotFoundError):
            tmp_path.unlink()
        raise


class FileCacheBackend:
    """One JSON document per key under `root`, with the expiry stored beside the value."""

    def __init__(self, root: Path | str, *, clock: Callable[[], float] = time.time) -> None:
        self.root = Path(root).resolve()
        self._clock = clock

    def _path(self, key: str) -> Path:
        return self.root / f"{quote(key, safe='')}.json"

    def _live_document(self, key: str) -> dict[str, Any] | None:
        """The stored document for `key`, or None; expired files are removed on sight."""
        path = self._path(key)
        if not path.exists():
            return None
        document = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(document, dict) or document.get("key") != key:
            return None
        if float(document.get("expires_at", 0.0)) <= self._clock():
            with suppress(FileNotFoundError):
                path.unlink()
            return None
        return document

    def _read(self, key: str) -> Any | None:
        document = self._live_document(key)
        return None if document is None else document.get("value")

    def _write(self, key: str, value: Any, ttl_s: int) -> None:
        document = {"key": key, "expires_at": self._clock() + ttl_s, "value": value}
        _atomic_write_json(self._path(key), document)

    def _delete(self, keys: list[str]) -> int:
        removed = 0
        for key in keys:
            with suppress(FileNotFoundError):
                self._path(key).unlink()
                removed += 1
        return removed

    def _keys(self, prefix: str) -> list[str]:
        if not self.root.exists():
            return []
        found: list[str] = []
        for path in self.root.glob("*.json"):
            key = unquote(path.name[: -len(".json")])
            if key.startswith(prefix) and self._live_document(key) is not None:
                found.append(key)
        return sorted(found)

    async def get(self, key: str) -> Any | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any, ttl_s: int) -> None:
        await asyncio.to_thread(self._write, key, value, ttl_s)

    async def delete(self, keys: list[str]) -> int:
        return await asyncio.to_thread(self._delete, keys)

    async def keys(self, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._keys, prefix)

    async def aclose(self) -> None:
        return None


class RedisCacheBackend:
    """Redis backend storing JSON text with native key expiry."""

    def __init__(self, client: redis_asyncio.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> RedisCacheBackend:
        return cls(redis_asyncio.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Any | None:
        payload = await self._client.get(key)
        if payload is None:
            return None
        return json.loads(payload)

    async def set(self, key: str, value: Any, ttl_s: int) -> None:
        await self._client.set(key, _dumps(value), ex=max(1, int(ttl_s)))

    async def delete(self, keys: list[str]) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def keys(self, prefix: str) -> list[str]:
        return sorted([key async for key in self._client.scan_iter(match=f"{prefix}*")])

    async def aclose(self) -> None:
        await self._client.aclose()


class CacheStore:
    """Namespaced cache facade; backend failures are logged and read as a miss."""

    def __init__(self, backend: CacheBackend | None = None, *, namespace: str = "nextball") -> None:
        self.backend = backend
        self.namespace = namespace

    def _full(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        if self.backend is None:
            return None
        try:
            return await self.backend.get(self._full(key))
        except Exception as exc:
            logger.warning("cache_get_failed", key=key, error=str(exc))
            return None

    async def set(self, key: str, value: Any, ttl_s: int) -> None:
        if self.backend is None:
            return
        try:
            await self.backend.set(self._full(key), value, ttl_s)
        except Exception as exc:
            logger.warning("cache_set_failed", key=key, error=str(exc))

    async def delete(self, *keys: str) -> int:
        if self.backend is None or not keys:
            return 0
        try:
            return await self.backend.delete([self._full(key) for key in keys])
        except Exception as exc:
            logger.warning("cache_delete_failed", keys=list(keys), error=str(exc))
            return 0

    async def keys_matching(self, prefix: str = "") -> list[str]:
        """Un-namespaced keys that start with `prefix`."""
        if self.backend is None:
            return []
        try:
            found = await self.backend.keys(self._full(prefix))
        except Exception as exc:
            logger.warning("cache_scan_failed", prefix=prefix, error=str(exc))
            return []
        offset = len(self.namespace) + 1
        return [key[offset:] for key in found]

    async def aclose(self) -> None:
        if self.backend is None:
            return
        try:
            await self.backend.aclose()
        except Exception as exc:
            logger.warning("cache_close_failed", error=str(exc))


def build_cache_backend(
    kind: str, *, cache_dir: str = "", redis_url: str = ""
) -> CacheBackend | None:
    if kind == "memory":
        return MemoryCacheBackend()
    if kind == "file":
        return FileCacheBackend(cache_dir)
    if kind == "redis":
        return RedisCacheBackend.from_url(redis_url)
    return None
