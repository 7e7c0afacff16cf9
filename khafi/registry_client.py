"""Client for the image id registry."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

import httpx

log = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when the registry cannot be reached or answers with an error."""


@dataclass(frozen=True)
class DeploymentInfo:
    """A customer's deployment as recorded by the registry."""

    customer_id: str
    image_id: str
    guest_program_path: str

    @classmethod
    def from_json(cls, data: Any) -> "DeploymentInfo":
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        for name in ("customer_id", "image_id", "guest_program_path"):
            if not isinstance(data.get(name), str):
                raise ValueError(f"missing or invalid field `{name}`")
        return cls(data["customer_id"], data["image_id"], data["guest_program_path"])

    def to_json(self) -> dict[str, str]:
        return asdict(self)


class RegistryClient:
    """Async HTTP client for the registry service."""

    def __init__(self, base_url: str, client: httpx.AsyncClient | None = None) -> None:
        self.base_url = base_url
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient()

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _get(self, url: str) -> httpx.Response:
        try:
            return await self._client.get(url)
        except httpx.HTTPError as exc:
            raise RegistryError(f"Failed to reach registry: {exc}") from exc

    async def _fetch(self, url: str, what: str) -> DeploymentInfo | None:
        log.debug("Fetching %s from registry: %s", what, url)
        response = await self._get(url)
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise RegistryError(
                f"Failed to fetch {what}: {response.status_code} {response.reason_phrase}"
            )
        try:
            data = response.json()
            if not isinstance(data, dict) or "deployment" not in data:
                raise ValueError("missing field `deployment`")
            return DeploymentInfo.from_json(data["deployment"])
        except ValueError as exc:
            raise RegistryError(f"Failed to parse deployment response: {exc}") from exc

    async def get_deployment(self, customer_id: str) -> DeploymentInfo | None:
        """Return a customer's deployment, or None if the registry has none."""
        return await self._fetch(
            f"{self.base_url}/api/deployments/{customer_id}", "deployment"
        )

    async def get_deployment_by_image_id(self, image_id: str) -> DeploymentInfo | None:
        """Return the deployment with an image id, or None if unknown."""
        return await self._fetch(
            f"{self.base_url}/api/deployments/by-image-id/{image_id}",
            "deployment by image_id",
        )

    async def health_check(self) -> bool:
        """Return True if the registry answers its health check with success."""
        response = await self._get(f"{self.base_url}/health")
        return response.is_success

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()