from datetime import datetime, timezone

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from khafi.storage import PaymentStats, ReceivedPayment, Storage, StorageError


class FakeRedis:
    """In-memory stand-in for the asyncio Redis client."""

    def __init__(self):
        self.hashes = {}
        self.sets = {}
        self.zsets = {}
        self.closed = False

    async def exists(self, key):
        return int(key in self.hashes)

    async def hset(self, key, mapping):
        self.hashes.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def hget(self, key, name):
        return self.hashes.get(key, {}).get(name)

    async def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    async def sadd(self, key, *values):
        self.sets.setdefault(key, set()).update(values)
        return len(values)

    async def srem(self, key, *values):
        self.sets.setdefault(key, set()).difference_update(values)
        return len(values)

    async def scard(self, key):
        return len(self.sets.get(key, set()))

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def zadd(self, key, mapping):
        self.zsets.setdefault(key, {}).update(mapping)
        return len(mapping)

    async def zrevrange(self, key, start, end, withscores=False):
        items = sorted(self.zsets.get(key, {}).items(), key=lambda kv: -kv[1])
        items = items[start : end + 1]
        if withscores:
            return [(m, float(s)) for m, s in items]
        return [m for m, _ in items]

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


class BrokenRedis(FakeRedis):
    async def ping(self):
        raise RedisConnectionError("connection refused")

    async def exists(self, key):
        raise RedisConnectionError("connection refused")


@pytest.fixture
def fake():
    return FakeRedis()


@pytest.fixture
def storage(fake):
    return Storage(fake)


@pytest.mark.asyncio
async def test_insert_and_get_payment(storage):
    nullifier = bytes([1]) * 32
    payment = ReceivedPayment(nullifier, 10000000, "test_tx_123", 12345)
    assert await storage.insert_payment(payment) is True
    retrieved = await storage.get_payment(nullifier)
    assert retrieved.amount == 10000000
    assert retrieved.tx_id == "test_tx_123"
    assert retrieved.block_height == 12345
    assert retrieved.used is False
    assert retrieved.used_at is None
    assert retrieved.timestamp == payment.timestamp


@pytest.mark.asyncio
async def test_mark_used(storage):
    nullifier = bytes([2]) * 32
    payment = ReceivedPayment(nullifier, 5000000, "test_tx_456", 12346)
    await storage.insert_payment(payment)
    assert await storage.mark_used(nullifier) is True
    retrieved = await storage.get_payment(nullifier)
    assert retrieved.used is True
    assert isinstance(retrieved.used_at, datetime)
    assert await storage.mark_used(nullifier) is False


@pytest.mark.asyncio
async def test_storage_operations(storage):
    nullifier = bytes([42]) * 32
    payment = ReceivedPayment(nullifier, 20000000, "test_integration_tx", 200000)
    assert await storage.insert_payment(payment) is True
    retrieved = await storage.get_payment(nullifier)
    assert retrieved.amount == 20000000
    assert retrieved.block_height == 200000
    assert retrieved.used is False
    assert await storage.mark_used(nullifier) is True
    assert (await storage.get_payment(nullifier)).used is True
    stats = await storage.get_stats()
    assert stats.total_payments > 0


@pytest.mark.asyncio
async def test_duplicate_insert(storage):
    payment = ReceivedPayment(bytes(32), 1, "tx", 1)
    assert await storage.insert_payment(payment) is True
    assert await storage.insert_payment(payment) is False


@pytest.mark.asyncio
async def test_missing_payment(storage):
    assert await storage.get_payment(bytes([9]) * 32) is None
    assert await storage.check_exists(bytes([9]) * 32) is False
    assert await storage.mark_used(bytes([9]) * 32) is False


@pytest.mark.asyncio
async def test_check_exists(storage):
    await storage.insert_payment(ReceivedPayment(bytes([3]) * 32, 1, "tx", 5))
    assert await storage.check_exists(bytes([3]) * 32) is True


@pytest.mark.asyncio
async def test_stats(storage):
    await storage.insert_payment(ReceivedPayment(bytes([1]) * 32, 100, "a", 1))
    await storage.insert_payment(ReceivedPayment(bytes([2]) * 32, 250, "b", 2))
    await storage.mark_used(bytes([1]) * 32)
    assert await storage.get_stats() == PaymentStats(
        total_payments=2, unused_payments=1, total_amount=350
    )


@pytest.mark.asyncio
async def test_latest_block_height(storage):
    assert await storage.get_latest_block_height() is None
    await storage.insert_payment(ReceivedPayment(bytes([1]) * 32, 1, "a", 50))
    await storage.insert_payment(ReceivedPayment(bytes([2]) * 32, 1, "b", 700))
    await storage.insert_payment(ReceivedPayment(bytes([3]) * 32, 1, "c", 300))
    assert await storage.get_latest_block_height() == 700


@pytest.mark.asyncio
async def test_stored_fields(storage, fake):
    nullifier = bytes([7]) * 32
    await storage.insert_payment(ReceivedPayment(nullifier, 42, "tx7", 9))
    stored = fake.hashes["payment:" + nullifier.hex()]
    assert stored["amount"] == "42"
    assert stored["used"] == "false"
    assert stored["used_at"] == ""
    assert fake.sets["payments:unused"] == {nullifier.hex()}


@pytest.mark.asyncio
async def test_corrupt_fields_fall_back(storage, fake):
    nullifier = bytes([8]) * 32
    fake.hashes["payment:" + nullifier.hex()] = {
        "amount": "abc",
        "block_height": "-3",
        "timestamp": "2024-05-01T10:00:00.123456789Z",
        "used": "yes",
        "used_at": "garbage",
    }
    payment = await storage.get_payment(nullifier)
    assert payment.amount == 0
    assert payment.block_height == 0
    assert payment.tx_id == ""
    assert payment.used is False
    assert payment.used_at is None
    assert payment.timestamp == datetime(2024, 5, 1, 10, 0, 0, 123456, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_health_check_failure():
    storage = Storage(BrokenRedis())
    with pytest.raises(StorageError, match="health check"):
        await storage.health_check()


@pytest.mark.asyncio
async def test_operation_error_translated():
    storage = Storage(BrokenRedis())
    with pytest.raises(StorageError):
        await storage.check_exists(bytes(32))


@pytest.mark.asyncio
async def test_connect_invalid_url():
    with pytest.raises(StorageError, match="Failed to create Redis client"):
        await Storage.connect("notaurl")


@pytest.mark.asyncio
async def test_context_manager_closes(fake):
    async with Storage(fake) as storage:
        await storage.health_check()
    assert fake.closed is True


def test_invalid_nullifier_length():
    with pytest.raises(ValueError, match="32 bytes"):
        ReceivedPayment(b"\x01\x02", 1, "tx", 1)