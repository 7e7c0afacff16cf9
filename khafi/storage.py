"""Redis-backed storage of received payments.

Keys:
    payment:{nullifier_hex}  hash of payment fields
    payments:all             set of all nullifiers
    payments:unused          set of unused nullifiers
    payments:by_height       sorted set, score = block height
"""

from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterator

import redis.asyncio as aioredis
from redis.exceptions import RedisError

log = logging.getLogger(__name__)

NULLIFIER_SIZE = 32
ALL_KEY = "payments:all"
UNUSED_KEY = "payments:unused"
BY_HEIGHT_KEY = "payments:by_height"

_UNSIGNED = re.compile(r"\+?[0-9]+")
_FRACTION = re.compile(r"\.(\d+)")


class StorageError(Exception):
    """Raised when the storage backend fails."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ReceivedPayment:
    """A payment received on chain."""

    nullifier: bytes
    amount: int
    tx_id: str
    block_height: int
    timestamp: datetime = field(default_factory=_now)
    used: bool = False
    used_at: datetime | None = None

    def __post_init__(self) -> None:
        self.nullifier = bytes(self.nullifier)
        if len(self.nullifier) != NULLIFIER_SIZE:
            raise ValueError(
                f"Nullifier must be {NULLIFIER_SIZE} bytes, got {len(self.nullifier)}"
            )

    @property
    def nullifier_hex(self) -> str:
        return self.nullifier.hex()


@dataclass(frozen=True)
class PaymentStats:
    total_payments: int
    unused_payments: int
    total_amount: int


def _payment_key(nullifier_hex: str) -> str:
    return f"payment:{nullifier_hex}"


def _text(value: Any) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def _parse_unsigned(value: str | None, bits: int) -> int | None:
    if value is None or not _UNSIGNED.fullmatch(value):
        return None
    number = int(value)
    return number if number < 1 << bits else None


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return None
    return parsed.astimezone(timezone.utc)


@contextmanager
def _redis_errors(action: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        raise StorageError(f"{action}: {exc}") from exc


class Storage:
    """Payment store on top of an asyncio Redis client."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @classmethod
    async def connect(cls, redis_url: str) -> "Storage":
        """Open a connection to Redis and check that it answers."""
        log.info("Connecting to Redis at %s", redis_url)
        try:
            client = aioredis.Redis.from_url(redis_url, decode_responses=True)
        except ValueError as exc:
            raise StorageError(f"Failed to create Redis client: {exc}") from exc
        with _redis_errors("Failed to connect to Redis"):
            await client.ping()
        log.info("Successfully connected to Redis")
        return cls(client)

    async def __aenter__(self) -> "Storage":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def insert_payment(self, payment: ReceivedPayment) -> bool:
        """Store a payment. Return False if it was already stored."""
        nullifier_hex = payment.nullifier_hex
        key = _payment_key(nullifier_hex)
        with _redis_errors("Failed to insert payment"):
            if await self._client.exists(key):
                log.debug("Payment %s already exists, skipping", nullifier_hex)
                return False
            await self._client.hset(
                key,
                mapping={
                    "nullifier": nullifier_hex,
                    "amount": str(payment.amount),
                    "tx_id": payment.tx_id,
                    "block_height": str(payment.block_height),
                    "timestamp": payment.timestamp.isoformat(),
                    "used": "false",
                    "used_at": "",
                },
            )
            await self._client.sadd(ALL_KEY, nullifier_hex)
            await self._client.sadd(UNUSED_KEY, nullifier_hex)
            await self._client.zadd(BY_HEIGHT_KEY, {nullifier_hex: payment.block_height})
        log.info(
            "Inserted payment: nullifier=%s, amount=%d, block_height=%d",
            nullifier_hex,
            payment.amount,
            payment.block_height,
        )
        return True

    async def get_payment(self, nullifier: bytes) -> ReceivedPayment | None:
        """Return the payment with this nullifier, or None."""
        nullifier = bytes(nullifier)
        key = _payment_key(nullifier.hex())
        with _redis_errors("Failed to get payment"):
            if not await self._client.exists(key):
                return None
            raw = await self._client.hgetall(key)
        fields = {_text(k): _text(v) for k, v in raw.items()}
        amount = _parse_unsigned(fields.get("amount"), 64)
        height = _parse_unsigned(fields.get("block_height"), 32)
        return ReceivedPayment(
            nullifier=nullifier,
            amount=amount if amount is not None else 0,
            tx_id=fields.get("tx_id", ""),
            block_height=height if height is not None else 0,
            timestamp=_parse_timestamp(fields.get("timestamp")) or _now(),
            used=fields.get("used") == "true",
            used_at=_parse_timestamp(fields.get("used_at")),
        )

    async def check_exists(self, nullifier: bytes) -> bool:
        """Return True if a payment with this nullifier is stored."""
        with _redis_errors("Failed to check payment"):
            return bool(await self._client.exists(_payment_key(bytes(nullifier).hex())))

    async def mark_used(self, nullifier: bytes) -> bool:
        """Mark a payment used. Return False if missing or already used."""
        nullifier_hex = bytes(nullifier).hex()
        key = _payment_key(nullifier_hex)
        with _redis_errors("Failed to mark payment used"):
            used = await self._client.hget(key, "used")
            if used is None:
                log.warning("Cannot mark nonexistent payment as used: %s", nullifier_hex)
                return False
            if _text(used) == "true":
                log.debug("Payment %s already marked as used", nullifier_hex)
                return False
            await self._client.hset(
                key, mapping={"used": "true", "used_at": _now().isoformat()}
            )
            await self._client.srem(UNUSED_KEY, nullifier_hex)
        log.info("Marked payment as used: %s", nullifier_hex)
        return True

    async def get_stats(self) -> PaymentStats:
        """Return counts of stored payments and the total amount."""
        with _redis_errors("Failed to get stats"):
            total = await self._client.scard(ALL_KEY)
            unused = await self._client.scard(UNUSED_KEY)
            members = await self._client.smembers(ALL_KEY)
        total_amount = 0
        for member in members:
            try:
                value = await self._client.hget(_payment_key(_text(member)), "amount")
            except RedisError:
                continue
            amount = _parse_unsigned(None if value is None else _text(value), 64)
            if amount is not None:
                total_amount += amount
        return PaymentStats(
            total_payments=int(total),
            unused_payments=int(unused),
            total_amount=total_amount,
        )

    async def get_latest_block_height(self) -> int | None:
        """Return the highest block height of any stored payment, or None."""
        with _redis_errors("Failed to get latest block height"):
            result = await self._client.zrevrange(BY_HEIGHT_KEY, 0, 0, withscores=True)
        if not result:
            return None
        _, score = result[0]
        return int(score)

    async def health_check(self) -> None:
        """Raise StorageError if Redis does not answer a ping."""
        with _redis_errors("Redis health check failed"):
            await self._client.ping()

    async def close(self) -> None:
        await self._client.aclose()