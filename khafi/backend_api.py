"""HTTP API for querying and recording payments."""

from __future__ import annotations

import asyncio
import binascii
import json
import logging
from dataclasses import dataclass
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from khafi.storage import NULLIFIER_SIZE, ReceivedPayment, StorageError

log = logging.getLogger(__name__)

ZATOSHIS_PER_ZEC = 100_000_000


def parse_nullifier(text: str) -> bytes:
    """Decode a hex nullifier, raising ValueError unless it is 32 bytes."""
    try:
        raw = binascii.unhexlify(text)
    except ValueError as exc:
        raise ValueError(f"Invalid hex: {exc}") from exc
    if len(raw) != NULLIFIER_SIZE:
        raise ValueError(f"Nullifier must be {NULLIFIER_SIZE} bytes, got {len(raw)}")
    return raw


@dataclass(frozen=True)
class _InsertPaymentRequest:
    nullifier_hex: str
    amount: int
    tx_id: str
    block_height: int

    @classmethod
    def from_json(cls, data: Any) -> "_InsertPaymentRequest":
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        missing = [k for k in ("nullifier_hex", "amount", "tx_id", "block_height") if k not in data]
        if missing:
            raise ValueError(f"missing field `{missing[0]}`")
        for name in ("nullifier_hex", "tx_id"):
            if not isinstance(data[name], str):
                raise ValueError(f"invalid type for `{name}`: expected a string")
        for name, bits in (("amount", 64), ("block_height", 32)):
            value = data[name]
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 1 << bits:
                raise ValueError(f"invalid value for `{name}`: expected u{bits}")
        return cls(data["nullifier_hex"], data["amount"], data["tx_id"], data["block_height"])


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status)


def create_app(storage: Any) -> Starlette:
    """Build the API application around a payment store."""
    lock = asyncio.Lock()

    async def health(request: Request) -> Response:
        async with lock:
            try:
                await storage.health_check()
            except StorageError as exc:
                return PlainTextResponse(f"Redis connection failed: {exc}", status_code=503)
        return PlainTextResponse("OK")

    async def get_payment(request: Request) -> Response:
        try:
            nullifier = parse_nullifier(request.path_params["nullifier"])
        except ValueError as exc:
            return _error(400, f"Invalid nullifier: {exc}")
        async with lock:
            try:
                payment = await storage.get_payment(nullifier)
            except StorageError as exc:
                return _error(500, f"Storage error: {exc}")
        if payment is None:
            body = {"exists": False, "used": False, "amount": None,
                    "block_height": None, "tx_id": None}
        else:
            body = {"exists": True, "used": payment.used, "amount": payment.amount,
                    "block_height": payment.block_height, "tx_id": payment.tx_id}
        return JSONResponse(body)

    async def insert_payment(request: Request) -> Response:
        try:
            data = json.loads(await request.body())
        except ValueError as exc:
            return _error(400, f"Invalid JSON body: {exc}")
        try:
            req = _InsertPaymentRequest.from_json(data)
        except ValueError as exc:
            return _error(422, f"Invalid request: {exc}")
        try:
            nullifier = parse_nullifier(req.nullifier_hex)
        except ValueError as exc:
            return _error(400, f"Invalid nullifier: {exc}")
        payment = ReceivedPayment(nullifier, req.amount, req.tx_id, req.block_height)
        async with lock:
            try:
                inserted = await storage.insert_payment(payment)
            except StorageError as exc:
                return _error(500, f"Storage error: {exc}")
        if not inserted:
            return _error(409, "Payment already exists")
        log.info("Manually inserted payment: %s", req.nullifier_hex)
        return PlainTextResponse("Payment inserted", status_code=201)

    async def stats(request: Request) -> Response:
        async with lock:
            try:
                result = await storage.get_stats()
            except StorageError as exc:
                return _error(500, f"Storage error: {exc}")
        return JSONResponse({
            "total_payments": result.total_payments,
            "unused_payments": result.unused_payments,
            "total_amount_zec": result.total_amount / ZATOSHIS_PER_ZEC,
        })

    return Starlette(routes=[
        Route("/health", health, methods=["GET"]),
        Route("/payment/{nullifier}", get_payment, methods=["GET"]),
        Route("/admin/payment", insert_payment, methods=["POST"]),
        Route("/stats", stats, methods=["GET"]),
    ])