"""A simulated chain node producing deterministic blocks for development."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

log = logging.getLogger(__name__)

INITIAL_HEIGHT = 100_000
_GENESIS_TIME = 1_234_567_890
_BLOCK_SECONDS = 75


@dataclass(frozen=True)
class MockAction:
    """A simplified shielded action."""

    nullifier: str
    amount: int
    is_our_payment: bool


@dataclass(frozen=True)
class MockTransaction:
    txid: str
    actions: list[MockAction] = field(default_factory=list)


@dataclass(frozen=True)
class MockBlock:
    height: int
    hash: str
    time: int
    transactions: list[MockTransaction] = field(default_factory=list)


def generate_nullifier_bytes(height: int, index: int) -> bytes:
    """Return a deterministic 32-byte nullifier for a block height and index."""
    head = height.to_bytes(4, "little") + bytes([index])
    tail = bytes((i * 17 + height * 7) % 256 for i in range(5, 32))
    return head + tail


class MockNode:
    """Simulates a node whose chain starts at height 100000."""

    def __init__(self, payment_address: str) -> None:
        self.payment_address = payment_address
        self._height = INITIAL_HEIGHT

    def get_block_count(self) -> int:
        """Return the current chain height."""
        log.debug("Mock node: get_block_count() -> %d", self._height)
        return self._height

    def get_block(self, height: int) -> MockBlock | None:
        """Return the block at a height, or None if it is beyond the tip."""
        if height < 0:
            raise ValueError(f"block height must be non-negative, got {height}")
        if height > self._height:
            return None
        block = self._generate_block(height)
        log.debug(
            "Mock node: get_block(%d) -> block with %d txs",
            height,
            len(block.transactions),
        )
        return block

    def advance_chain(self) -> None:
        """Simulate a newly mined block."""
        self._height += 1
        log.debug("Mock node: Advanced to height %d", self._height)

    def _generate_block(self, height: int) -> MockBlock:
        transactions = []
        if height % 10 == 0:
            transactions.append(_payment_transaction(height))
        if height % 5 == 0:
            transactions.append(_other_transaction(height))
        return MockBlock(
            height=height,
            hash=f"mock_block_hash_{height:08x}",
            time=_GENESIS_TIME + height * _BLOCK_SECONDS,
            transactions=transactions,
        )


def _payment_transaction(height: int) -> MockTransaction:
    return MockTransaction(
        txid=f"mock_payment_tx_{height:08x}",
        actions=[
            MockAction(
                nullifier=generate_nullifier_bytes(height, 0).hex(),
                amount=10_000_000 + height * 1000,
                is_our_payment=True,
            )
        ],
    )


def _other_transaction(height: int) -> MockTransaction:
    return MockTransaction(
        txid=f"mock_other_tx_{height:08x}",
        actions=[
            MockAction(
                nullifier=generate_nullifier_bytes(height, 1).hex(),
                amount=5_000_000,
                is_our_payment=False,
            )
        ],
    )