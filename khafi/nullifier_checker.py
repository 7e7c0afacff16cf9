"""Replay protection: each nullifier is accepted only once."""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from khafi.storage import NULLIFIER_SIZE, StorageError

NULLIFIER_TTL_SECS = 2_592_000  # 30 days


class NullifierChecker:
    """Records nullifiers in Redis and reports whether each one is new."""

    def __init__(self, client: Any) -> None:
        self.client = client

    @classmethod
    def from_url(cls, redis_url: str) -> "NullifierChecker":
        """Create a checker on a Redis client for the given URL."""
        try:
            client = aioredis.Redis.from_url(redis_url)
        except ValueError as exc:
            raise StorageError(str(exc)) from exc
        return cls(client)

    async def check_and_set(self, nullifier: bytes) -> bool:
        """Atomically record a nullifier; return True if it had not been seen."""
        nullifier = bytes(nullifier)
        if len(nullifier) != NULLIFIER_SIZE:
            raise ValueError(
                f"Nullifier must be {NULLIFIER_SIZE} bytes, got {len(nullifier)}"
            )
        key = f"nullifier:{nullifier.hex()}"
        try:
            created = await self.client.set(key, "1", nx=True, ex=NULLIFIER_TTL_SECS)
        except RedisError as exc:
            raise StorageError(str(exc)) from exc
        return bool(created)