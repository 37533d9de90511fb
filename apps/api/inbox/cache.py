from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Protocol

import redis.asyncio as redis

from inbox.config import settings


class Cache(Protocol):
  async def get(self, key: str) -> Any | None: ...

  async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...

  async def delete_prefix(self, prefix: str) -> None: ...


@dataclass
class _Entry:
  expires_at: float
  value: Any


class MemoryCache:
  """
  Process-local cache with per-entry expiry.

  Values are stored JSON-encoded so both implementations hand back the same shapes.
  """

  def __init__(self) -> None:
    self._entries: dict[str, _Entry] = {}

  async def get(self, key: str) -> Any | None:
    e = self._entries.get(key)
    if e is None:
      return None
    if time.monotonic() >= e.expires_at:
      del self._entries[key]
      return None
    return json.loads(e.value)

  async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
    self._entries[key] = _Entry(expires_at=time.monotonic() + max(1, int(ttl_seconds)), value=json.dumps(value))

  async def delete_prefix(self, prefix: str) -> None:
    for k in list(self._entries.keys()):
      if k.startswith(prefix):
        del self._entries[k]


class RedisCache:
  def __init__(self, client: redis.Redis, *, prefix: str) -> None:
    self._redis = client
    self._prefix = prefix

  def _key(self, key: str) -> str:
    return f"{self._prefix}:{key}"

  async def get(self, key: str) -> Any | None:
    raw = await self._redis.get(self._key(key))
    if raw is None:
      return None
    return json.loads(raw)

  async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
    await self._redis.set(self._key(key), json.dumps(value), ex=max(1, int(ttl_seconds)))

  async def delete_prefix(self, prefix: str) -> None:
    async for k in self._redis.scan_iter(match=f"{self._key(prefix)}*"):
      await self._redis.delete(k)


def user_scoped_key(user_id: str, *parts: str) -> str:
  return ":".join(["user", user_id, *parts])


def build_cache() -> Cache:
  if settings.redis_url:
    return RedisCache(redis.Redis.from_url(settings.redis_url, decode_responses=True), prefix=settings.cache_key_prefix)
  return MemoryCache()
