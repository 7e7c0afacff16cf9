"""Checks performed inside the proving program."""

from __future__ import annotations

NULLIFIER_SIZE = 32


def verify_zcash_payment(spending_key: bytes) -> bytes:
    """Derive the payment nullifier from a spending key.

    Keys of at least 32 bytes give their first 32 bytes; shorter keys
    give an all-zero nullifier.
    """
    spending_key = bytes(spending_key)
    if len(spending_key) >= NULLIFIER_SIZE:
        return spending_key[:NULLIFIER_SIZE]
    return bytes(NULLIFIER_SIZE)


def execute_business_logic(private_data: bytes, public_params: bytes) -> bool:
    """Return True when both the private data and public parameters are present."""
    return bool(private_data) and bool(public_params)