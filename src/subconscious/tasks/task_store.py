# src/subconscious/tasks/task_store.py

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as redis
from redis.exceptions import RedisError

from ..errors import StoreUnavailable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# KEYS[1]=src, KEYS[2]=dst, ARGV[1]=value to remove, ARGV[2]=value to push.
# Push only if the value was still in src, so a reclaimed lease is never doubled.
_MOVE_TO_HEAD_LUA = """
local removed = redis.call('LREM', KEYS[1], 1, ARGV[1])
if removed > 0 then
    redis.call('LPUSH', KEYS[2], ARGV[2])
end
return removed
"""


def _redact(url: str) -> str:
    parts = urlsplit(url)
    if parts.password is None:
        return url
    netloc = parts.netloc.replace(f":{parts.password}@", ":***@")
    return urlunsplit(parts._replace(netloc=netloc))


class RedisQueueStore:
    """
    Redis-backed queue store.

    One shared client, guarded by one lock: commands from every caller are
    issued one at a time. The client is created lazily by redis-py, so building
    the store never touches the network; the first command does.

    Every RedisError / OSError is re-raised as StoreUnavailable.
    """

    def __init__(self, url: str = "redis://127.0.0.1:6379/0", *, client: Any | None = None) -> None:
        self._url = url
        self._client = client if client is not None else redis.from_url(url, decode_responses=True)
        self._lock = asyncio.Lock()
        self._move_to_head = self._client.register_script(_MOVE_TO_HEAD_LUA)
        logger.info("RedisQueueStore configured url=%s", _redact(url))

    async def _run(self, op: str, call: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            try:
                return await call()
            except (RedisError, OSError) as e:
                logger.debug("Redis %s failed: %s", op, e)
                raise StoreUnavailable(f"redis {op} failed: {e}") from e

    # ---- lists ----

    async def rpush(self, key: str, *values: str) -> int:
        if not values:
            return 0
        return int(await self._run("rpush", lambda: self._client.rpush(key, *values)))

    async def lpush(self, key: str, *values: str) -> int:
        if not values:
            return 0
        return int(await self._run("lpush", lambda: self._client.lpush(key, *values)))

    async def lpop(self, key: str) -> str | None:
        return await self._run("lpop", lambda: self._client.lpop(key))

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> list[str]:
        return list(await self._run("lrange", lambda: self._client.lrange(key, start, end)))

    async def lrem(self, key: str, count: int, value: str) -> int:
        return int(await self._run("lrem", lambda: self._client.lrem(key, count, value)))

    async def lmove(self, src: str, dst: str) -> str | None:
        return await self._run("lmove", lambda: self._client.lmove(src, dst, "LEFT", "RIGHT"))

    async def move_to_head(self, src: str, dst: str, value: str, pushed: str) -> bool:
        removed = await self._run(
            "move_to_head",
            lambda: self._move_to_head(keys=[src, dst], args=[value, pushed]),
        )
        return int(removed) > 0

    async def replace_list(self, key: str, values: list[str]) -> None:
        async def call() -> None:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if values:
                    pipe.rpush(key, *values)
                await pipe.execute()

        await self._run("replace_list", call)

    async def append_all(self, entries: list[tuple[str, str]]) -> None:
        if not entries:
            return

        async def call() -> None:
            async with self._client.pipeline(transaction=True) as pipe:
                for key, value in entries:
                    pipe.rpush(key, value)
                await pipe.execute()

        await self._run("append_all", call)

    # ---- hashes ----

    async def hset(self, key: str, field: str, value: str) -> None:
        await self._run("hset", lambda: self._client.hset(key, field, value))

    async def hdel(self, key: str, *fields: str) -> int:
        if not fields:
            return 0
        return int(await self._run("hdel", lambda: self._client.hdel(key, *fields)))

    async def hgetall(self, key: str) -> dict[str, str]:
        return dict(await self._run("hgetall", lambda: self._client.hgetall(key)))

    # ---- misc ----

    async def set_ex(self, key: str, value: str, seconds: int) -> None:
        await self._run("set", lambda: self._client.set(key, value, ex=int(seconds)))

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError):
            logger.debug("Redis close failed.", exc_info=True)
