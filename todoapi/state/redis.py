"""Redis state store implementations.

Production backend for replicated deployments: every replica sees the
same session records and pending login attempts.

Keys:
- ``{prefix}:session:{session_id}``: hash with the record JSON and the
  pending state fields kept separate so they can be taken atomically
- ``{prefix}:login_state:{session_id}``: JSON attempt with ``SETEX`` TTL
"""

from __future__ import annotations

import json
import logging
import time

from typing import Any

from redis.asyncio import Redis as RedisClient
from redis.exceptions import RedisError

from ..exceptions import SessionPersistenceError
from ..log import token_prefix
from .base import SessionStore, StateTokenBackend
from .types import LoginAttempt, SessionRecord


logger = logging.getLogger("todoapi.state")

_PENDING_TOKEN_FIELD = "pending_state_token"  # noqa: S105
_PENDING_CREATED_FIELD = "pending_state_created_at"


class _RedisBacked:
    """Shared connection handling for the Redis stores."""

    def __init__(
        self,
        redis_url: str,
        prefix: str,
        pool_size: int,
        redis_client: Any | None,
    ) -> None:
        self._prefix = prefix
        if redis_client is not None:
            self._redis: Any = redis_client
        else:
            self._redis = RedisClient.from_url(
                redis_url,
                max_connections=pool_size,
                decode_responses=True,
            )

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self._redis.aclose()


class RedisSessionStore(_RedisBacked, SessionStore):
    """Redis-backed session store.

    Parameters
    ----------
    redis_url : str
        Redis connection URL.
    prefix : str
        Key prefix for namespacing.
    pool_size : int
        Connection pool size.
    redis_client : Redis, optional
        Pre-configured Redis client (for testing with fakeredis).
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "todoapi",
        pool_size: int = 10,
        *,
        redis_client: Any | None = None,
    ) -> None:
        """Initialize the Redis session store."""
        super().__init__(redis_url, prefix, pool_size, redis_client)

    def _session_key(self, session_id: str) -> str:
        """Get Redis key for a session."""
        return f"{self._prefix}:session:{session_id}"

    async def load(self, session_id: str) -> SessionRecord | None:
        """Load a session record."""
        data = await self._redis.hgetall(self._session_key(session_id))
        if not data or "record" not in data:
            return None

        try:
            payload = json.loads(data["record"])
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt session %s", token_prefix(session_id))
            return None

        payload["pending_state_token"] = data.get(_PENDING_TOKEN_FIELD)
        created = data.get(_PENDING_CREATED_FIELD)
        payload["pending_state_created_at"] = float(created) if created else None
        record = SessionRecord.from_dict(payload)

        # Redis expires keys lazily; the stored timestamp catches stragglers.
        if record.expires_at and record.expires_at < time.time():
            return None
        return record

    async def save(self, record: SessionRecord, ttl: int) -> None:
        """Persist a session record with a TTL."""
        expires_at = time.time() + ttl
        payload = record.to_dict()
        payload.pop("pending_state_token")
        payload.pop("pending_state_created_at")
        payload["expires_at"] = expires_at

        mapping = {"record": json.dumps(payload)}
        if record.pending_state_token and record.pending_state_created_at is not None:
            mapping[_PENDING_TOKEN_FIELD] = record.pending_state_token
            mapping[_PENDING_CREATED_FIELD] = str(record.pending_state_created_at)

        key = self._session_key(record.session_id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.hset(key, mapping=mapping)
                pipe.expire(key, ttl)
                await pipe.execute()
        except RedisError as exc:
            msg = "Failed to save session"
            raise SessionPersistenceError(
                msg, session_id=token_prefix(record.session_id)
            ) from exc

        record.expires_at = expires_at
        record.is_new = False

    async def destroy(self, session_id: str) -> bool:
        """Delete a session record."""
        try:
            return bool(await self._redis.delete(self._session_key(session_id)))
        except RedisError as exc:
            msg = "Failed to destroy session"
            raise SessionPersistenceError(msg, session_id=token_prefix(session_id)) from exc

    async def take_pending_state(self, session_id: str) -> bool:
        """Atomically clear the stored pending state token."""
        key = self._session_key(session_id)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.hdel(key, _PENDING_TOKEN_FIELD)
                pipe.hdel(key, _PENDING_CREATED_FIELD)
                removed, _ = await pipe.execute()
        except RedisError as exc:
            msg = "Failed to clear pending state"
            raise SessionPersistenceError(msg, session_id=token_prefix(session_id)) from exc
        return bool(removed)


class RedisStateTokenBackend(_RedisBacked, StateTokenBackend):
    """Shared, replica-visible store of pending login attempts.

    Redis expires entries on its own; :meth:`sweep` only removes entries
    whose stored ``created_at`` is already past the TTL.

    Parameters
    ----------
    redis_url : str
        Redis connection URL.
    prefix : str
        Key prefix for namespacing.
    pool_size : int
        Connection pool size.
    redis_client : Redis, optional
        Pre-configured Redis client (for testing with fakeredis).
    """

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379/0",
        prefix: str = "todoapi",
        pool_size: int = 10,
        *,
        redis_client: Any | None = None,
    ) -> None:
        """Initialize the Redis state token backend."""
        super().__init__(redis_url, prefix, pool_size, redis_client)

    def _key(self, key: str) -> str:
        """Build a Redis key with prefix."""
        return f"{self._prefix}:login_state:{key}"

    @staticmethod
    def _decode(data: str) -> LoginAttempt:
        obj = json.loads(data)
        return LoginAttempt(state_token=obj["state_token"], created_at=float(obj["created_at"]))

    async def put(self, key: str, attempt: LoginAttempt, ttl: int) -> None:
        """Store an attempt with a TTL."""
        data = json.dumps({"state_token": attempt.state_token, "created_at": attempt.created_at})
        await self._redis.setex(self._key(key), ttl, data)

    async def get(self, key: str) -> LoginAttempt | None:
        """Get the attempt stored under ``key``."""
        data = await self._redis.get(self._key(key))
        if data is None:
            return None
        return self._decode(data)

    async def delete(self, key: str) -> bool:
        """Delete the attempt stored under ``key``."""
        return bool(await self._redis.delete(self._key(key)))

    async def sweep(self, ttl: int, now: float) -> int:
        """Delete attempts older than ``ttl``."""
        removed = 0
        async for redis_key in self._redis.scan_iter(match=self._key("*")):
            data = await self._redis.get(redis_key)
            if data is None:
                continue
            if self._decode(data).is_expired(ttl, now) and await self._redis.delete(redis_key):
                removed += 1
        return removed

    async def count(self) -> int:
        """Get the number of stored attempts."""
        return len([k async for k in self._redis.scan_iter(match=self._key("*"))])
