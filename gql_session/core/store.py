"""Session stores.

A store maps a session id to a serialized :class:`QueryState` with an
idle-expiry TTL that is refreshed on every load. Writes are rejected when
their revision is not newer than the stored one, so two concurrent
mutators on one session cannot silently overwrite each other.
"""

import asyncio
import json
import logging
import re
import secrets
import time
from typing import Any, Awaitable, Callable, Protocol, TypeVar, runtime_checkable

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.exceptions import WatchError

from .errors import ConflictError, UpstreamError
from .ir import QueryState

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "querystate:"
DEFAULT_SESSION_TTL = 3600

_NON_HEX = re.compile(r"[^0-9a-fA-F]")

T = TypeVar("T")


def generate_session_id() -> str:
    """128 random bits, hex encoded."""
    return secrets.token_hex(16)


def normalize_session_id(session_id: str) -> str:
    """Strip anything that is not hex and lower-case the rest."""
    raw = str(session_id).strip()
    cleaned = _NON_HEX.sub("", raw).lower()
    return cleaned or raw


def _stale_write(session_id: str) -> ConflictError:
    return ConflictError(f"Session {session_id} was modified concurrently. Reload and retry.")


@runtime_checkable
class SessionStore(Protocol):
    """Persistence for session state."""

    async def load(self, session_id: str) -> QueryState | None:
        """Return the state, or None when missing or expired."""
        ...

    async def save(self, session_id: str, state: QueryState) -> None:
        ...

    async def delete(self, session_id: str) -> bool:
        """Remove a session; returns whether it existed."""
        ...


class MemorySessionStore:
    """In-process store. Entries are kept as JSON so loads never share objects."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_SESSION_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # session id -> (expires_at or None, revision, payload)
        self._entries: dict[str, tuple[float | None, int, str]] = {}

    def _expiry(self) -> float | None:
        return self._clock() + self.ttl_seconds if self.ttl_seconds else None

    def _live_entry(self, key: str) -> tuple[float | None, int, str] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at = entry[0]
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            logger.debug("Session %s expired", key)
            return None
        return entry

    async def load(self, session_id: str) -> QueryState | None:
        key = normalize_session_id(session_id)
        entry = self._live_entry(key)
        if entry is None:
            return None
        _, revision, payload = entry
        self._entries[key] = (self._expiry(), revision, payload)
        return QueryState.from_dict(json.loads(payload))

    async def save(self, session_id: str, state: QueryState) -> None:
        key = normalize_session_id(session_id)
        entry = self._live_entry(key)
        if entry is not None and entry[1] >= state.revision:
            raise _stale_write(session_id)
        self._entries[key] = (self._expiry(), state.revision, json.dumps(state.to_dict()))
        logger.debug("Saved session %s at revision %d", key, state.revision)

    async def delete(self, session_id: str) -> bool:
        key = normalize_session_id(session_id)
        existed = self._live_entry(key) is not None
        self._entries.pop(key, None)
        return existed

    def __len__(self) -> int:
        return len(self._entries)


class RedisSessionStore:
    """Store backed by redis.asyncio, with bounded retries on connection errors.

    Examples:
        store = RedisSessionStore.from_url("redis://localhost:6379/0")
        store = RedisSessionStore(fakeredis.aioredis.FakeRedis(), ttl_seconds=0)
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int = DEFAULT_SESSION_TTL,
        *,
        retry_attempts: int = 5,
        retry_delay: float = 1.0,
    ):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisSessionStore":
        return cls(redis.from_url(url, decode_responses=True), **kwargs)

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}{normalize_session_id(session_id)}"

    async def _with_retry(self, action: str, operation: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await operation()
            except (RedisConnectionError, RedisTimeoutError) as e:
                if attempt == self.retry_attempts:
                    raise UpstreamError(f"Session store unavailable during {action}: {e}") from e
                delay = self.retry_delay * attempt
                logger.warning(
                    "Redis %s failed (attempt %d/%d): %s; retrying in %.2fs",
                    action, attempt, self.retry_attempts, e, delay,
                )
                await asyncio.sleep(delay)
        raise UpstreamError(f"Session store unavailable during {action}")

    async def load(self, session_id: str) -> QueryState | None:
        key = self._key(session_id)

        async def operation() -> str | bytes | None:
            raw = await self.client.get(key)
            if raw is not None and self.ttl_seconds:
                await self.client.expire(key, self.ttl_seconds)
            return raw

        raw = await self._with_retry("load", operation)
        if raw is None:
            return None
        logger.debug("Loaded session %s", key)
        return QueryState.from_dict(json.loads(raw))

    async def save(self, session_id: str, state: QueryState) -> None:
        key = self._key(session_id)
        payload = json.dumps(state.to_dict())

        async def operation() -> None:
            async with self.client.pipeline(transaction=True) as pipe:
                await pipe.watch(key)
                current = await pipe.get(key)
                if current is not None and json.loads(current).get("revision", 0) >= state.revision:
                    raise _stale_write(session_id)
                pipe.multi()
                if self.ttl_seconds:
                    pipe.setex(key, self.ttl_seconds, payload)
                else:
                    pipe.set(key, payload)
                try:
                    await pipe.execute()
                except WatchError:
                    raise _stale_write(session_id) from None

        await self._with_retry("save", operation)
        logger.debug("Saved session %s at revision %d", key, state.revision)

    async def delete(self, session_id: str) -> bool:
        key = self._key(session_id)
        deleted = await self._with_retry("delete", lambda: self.client.delete(key))
        return bool(deleted)

    async def close(self) -> None:
        await self.client.aclose()
