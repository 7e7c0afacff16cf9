"""Client for the payment backend's commitment tree and nullifier endpoints."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from khafi.storage import NULLIFIER_SIZE

ROOT_SIZE = 32


class ZcashClientError(Exception):
    """Raised when the backend cannot be reached or answers unexpectedly."""


def _is_uint(value: Any, bits: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 1 << bits


@dataclass(frozen=True)
class CommitmentTreeRoot:
    """The commitment tree root at a block height."""

    root: bytes
    block_height: int

    @classmethod
    def from_json(cls, data: Any) -> "CommitmentTreeRoot":
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        root = data.get("root")
        if (
            not isinstance(root, list)
            or len(root) != ROOT_SIZE
            or not all(_is_uint(b, 8) for b in root)
        ):
            raise ValueError(f"root must be an array of {ROOT_SIZE} bytes")
        height = data.get("block_height")
        if not _is_uint(height, 64):
            raise ValueError("block_height must be an unsigned integer")
        return cls(root=bytes(root), block_height=height)

    def to_json(self) -> dict[str, Any]:
        return {"root": list(self.root), "block_height": self.block_height}


class ZcashClient:
    """Async HTTP client for the payment backend."""

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()

    async def __aenter__(self) -> "ZcashClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _get(self, path: str, context: str) -> httpx.Response:
        try:
            return await self._client.get(f"{self.base_url}{path}")
        except httpx.HTTPError as exc:
            raise ZcashClientError(f"{context}: {exc}") from exc

    async def get_commitment_tree_root(self) -> CommitmentTreeRoot:
        """Fetch the latest commitment tree root."""
        response = await self._get(
            "/api/commitment-tree/root", "Failed to fetch commitment tree root"
        )
        try:
            return CommitmentTreeRoot.from_json(response.json())
        except ValueError as exc:
            raise ZcashClientError(
                f"Failed to parse commitment tree root response: {exc}"
            ) from exc

    async def check_nullifier(self, nullifier: bytes) -> bool:
        """Return True if the nullifier has already been used."""
        nullifier = bytes(nullifier)
        if len(nullifier) != NULLIFIER_SIZE:
            raise ValueError(
                f"Nullifier must be {NULLIFIER_SIZE} bytes, got {len(nullifier)}"
            )
        response = await self._get(
            f"/api/nullifier/check/{nullifier.hex()}", "Failed to check nullifier"
        )
        try:
            data = response.json()
        except ValueError as exc:
            raise ZcashClientError(
                f"Failed to parse nullifier check response: {exc}"
            ) from exc
        if not isinstance(data, dict) or not isinstance(data.get("exists"), bool):
            raise ZcashClientError(
                "Failed to parse nullifier check response: missing boolean `exists`"
            )
        return data["exists"]

    async def health_check(self) -> bool:
        """Return True if the backend answers its health check with success."""
        response = await self._get("/health", "Failed to reach Zcash backend")
        return response.is_success

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()