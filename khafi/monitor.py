"""Polling loop that stores payments found in new blocks."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, NoReturn

from khafi.backend_config import Config
from khafi.mock_node import MockNode
from khafi.parser import Parser
from khafi.storage import Storage, StorageError

log = logging.getLogger(__name__)


class Monitor:
    """Watches the chain and records payments to our address."""

    def __init__(
        self,
        config: Config,
        node: MockNode,
        parser: Parser,
        storage: Any,
        last_processed_height: int = 0,
    ) -> None:
        self.config = config
        self.node = node
        self.parser = parser
        self.storage = storage
        self.last_processed_height = last_processed_height

    @classmethod
    async def create(cls, config: Config) -> "Monitor":
        """Connect to storage and resume from the highest stored block height."""
        node = MockNode(config.payment_address)
        parser = Parser(config.payment_address)
        storage = await Storage.connect(config.redis_url)
        try:
            latest = await storage.get_latest_block_height()
        except BaseException:
            await storage.close()
            raise
        if latest is None:
            log.info("No previous block height found, will start from current chain height")
            latest = 0
        log.info("Monitor initialized, starting from block height %d", latest)
        return cls(config, node, parser, storage, latest)

    async def start(self) -> NoReturn:
        """Poll forever at the configured interval."""
        log.info(
            "Starting blockchain monitor (polling every %d seconds)",
            self.config.polling_interval_secs,
        )
        while True:
            try:
                await self.poll_once()
            except Exception:
                log.exception("Error polling blockchain")
            await asyncio.sleep(self.config.polling_interval_secs)
            if self.config.mock_mode:
                self.node.advance_chain()

    async def poll_once(self) -> None:
        """Process every block above the last processed height."""
        current = self.node.get_block_count()
        if current <= self.last_processed_height:
            log.info(
                "No new blocks (current: %d, last processed: %d)",
                current,
                self.last_processed_height,
            )
            return
        log.info("Processing blocks %d to %d", self.last_processed_height + 1, current)
        for height in range(self.last_processed_height + 1, current + 1):
            await self.process_block(height)
        self.last_processed_height = current

    async def process_block(self, height: int) -> int:
        """Store the payments in one block; return how many were newly stored."""
        log.info("Processing block %d", height)
        block = self.node.get_block(height)
        if block is None:
            log.warning("Block %d not found, skipping", height)
            return 0
        payments = self.parser.parse_block(block)
        if not payments:
            log.info("No payments found in block %d", height)
            return 0
        log.info("Found %d payment(s) in block %d", len(payments), height)
        stored = 0
        for payment in payments:
            try:
                inserted = await self.storage.insert_payment(payment)
            except StorageError as exc:
                log.error("Failed to store payment: %s", exc)
                continue
            if inserted:
                stored += 1
                log.info(
                    "Stored payment: %s ZEC from tx %s",
                    payment.amount / 100_000_000,
                    payment.tx_id,
                )
            else:
                log.warning("Payment already exists: %s", payment.nullifier_hex)
        return stored