import pytest
from starlette.testclient import TestClient

from khafi.backend_api import create_app, parse_nullifier
from khafi.storage import PaymentStats, StorageError

VALID_HEX = "0102030405060708090a0b0c0d0e0f101112131415161718191a1b1c1d1e1f20"


class FakeStorage:
    def __init__(self):
        self.payments = {}
        self.healthy = True
        self.failing = False

    async def health_check(self):
        if not self.healthy:
            raise StorageError("connection refused")

    async def get_payment(self, nullifier):
        if self.failing:
            raise StorageError("broken")
        return self.payments.get(bytes(nullifier))

    async def insert_payment(self, payment):
        if self.failing:
            raise StorageError("broken")
        if payment.nullifier in self.payments:
            return False
        self.payments[payment.nullifier] = payment
        return True

    async def get_stats(self):
        if self.failing:
            raise StorageError("broken")
        values = list(self.payments.values())
        return PaymentStats(
            total_payments=len(values),
            unused_payments=sum(not p.used for p in values),
            total_amount=sum(p.amount for p in values),
        )


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def client(storage):
    with TestClient(create_app(storage)) as test_client:
        yield test_client


def insert(client, nullifier_hex=VALID_HEX, amount=20000000, block_height=200000):
    return client.post(
        "/admin/payment",
        json={
            "nullifier_hex": nullifier_hex,
            "amount": amount,
            "tx_id": "test_integration_tx",
            "block_height": block_height,
        },
    )


def test_parse_nullifier():
    assert parse_nullifier(VALID_HEX) == bytes(range(1, 33))


def test_parse_nullifier_invalid_length():
    with pytest.raises(ValueError, match="32 bytes"):
        parse_nullifier("0102030405")


def test_parse_nullifier_invalid_hex():
    with pytest.raises(ValueError, match="Invalid hex"):
        parse_nullifier("zzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzzz")


def test_health_ok(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.text == "OK"


def test_health_unavailable(client, storage):
    storage.healthy = False
    response = client.get("/health")
    assert response.status_code == 503
    assert response.text.startswith("Redis connection failed")


def test_unknown_payment(client):
    response = client.get(f"/payment/{VALID_HEX}")
    assert response.status_code == 200
    assert response.json() == {
        "exists": False, "used": False, "amount": None, "block_height": None, "tx_id": None,
    }


def test_insert_then_get(client):
    assert insert(client).status_code == 201
    body = client.get(f"/payment/{VALID_HEX}").json()
    assert body["exists"] is True
    assert body["used"] is False
    assert body["amount"] == 20000000
    assert body["block_height"] == 200000
    assert body["tx_id"] == "test_integration_tx"


def test_duplicate_insert_conflicts(client):
    insert(client)
    response = insert(client)
    assert response.status_code == 409
    assert response.json() == {"error": "Payment already exists"}


def test_get_invalid_nullifier(client):
    response = client.get("/payment/0102030405")
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid nullifier")


def test_insert_invalid_nullifier(client):
    response = insert(client, nullifier_hex="zz")
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid nullifier")


def test_insert_missing_field(client):
    response = client.post("/admin/payment", json={"nullifier_hex": VALID_HEX})
    assert response.status_code == 422


def test_insert_negative_amount(client):
    response = insert(client, amount=-1)
    assert response.status_code == 422


def test_storage_error(client, storage):
    storage.failing = True
    response = client.get(f"/payment/{VALID_HEX}")
    assert response.status_code == 500
    assert response.json()["error"].startswith("Storage error")


def test_stats(client):
    insert(client, amount=20000000)
    insert(client, nullifier_hex="01" * 32, amount=10000000)
    body = client.get("/stats").json()
    assert body["total_payments"] == 2
    assert body["unused_payments"] == 2
    assert body["total_amount_zec"] == pytest.approx(0.3)