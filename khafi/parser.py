"""Extraction of payments addressed to us from chain blocks."""

from __future__ import annotations

import binascii
import logging

from khafi.mock_node import MockAction, MockBlock, MockTransaction
from khafi.storage import NULLIFIER_SIZE, ReceivedPayment

log = logging.getLogger(__name__)


class ParseError(ValueError):
    """Raised when a transaction holds malformed payment data."""


class Parser:
    """Finds the payments to a monitored address in blocks."""

    def __init__(self, payment_address: str) -> None:
        self.payment_address = payment_address

    def parse_block(self, block: MockBlock) -> list[ReceivedPayment]:
        """Return the payments to our address found in a block."""
        log.debug(
            "Parsing block %d with %d transactions",
            block.height,
            len(block.transactions),
        )
        payments = [
            payment
            for tx in block.transactions
            if (payment := self.parse_transaction(tx, block.height)) is not None
        ]
        log.debug("Found %d payments in block %d", len(payments), block.height)
        return payments

    def parse_transaction(
        self, tx: MockTransaction, block_height: int
    ) -> ReceivedPayment | None:
        """Return the first payment to our address in a transaction, or None."""
        action = next((a for a in tx.actions if a.is_our_payment), None)
        if action is None:
            return None
        return _parse_action(action, tx, block_height)


def _parse_action(
    action: MockAction, tx: MockTransaction, block_height: int
) -> ReceivedPayment:
    try:
        nullifier = binascii.unhexlify(action.nullifier)
    except ValueError as exc:
        raise ParseError(f"Failed to decode nullifier hex: {exc}") from exc
    if len(nullifier) != NULLIFIER_SIZE:
        raise ParseError(
            f"Nullifier must be {NULLIFIER_SIZE} bytes, got {len(nullifier)}"
        )
    log.debug(
        "Parsed payment: nullifier=%s, amount=%d, tx=%s",
        action.nullifier,
        action.amount,
        tx.txid,
    )
    return ReceivedPayment(
        nullifier=nullifier,
        amount=action.amount,
        tx_id=tx.txid,
        block_height=block_height,
    )