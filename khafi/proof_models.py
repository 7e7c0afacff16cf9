"""Request, response and program records of the proof generation service."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class GenerateProofRequest:
    """A request to prove a customer's inputs."""

    customer_id: str
    private_inputs: Any
    public_params: Any

    @classmethod
    def from_json(cls, data: Any) -> "GenerateProofRequest":
        """Build a request from decoded JSON, raising ValueError if malformed."""
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        for name in ("customer_id", "private_inputs", "public_params"):
            if name not in data:
                raise ValueError(f"missing field `{name}`")
        if not isinstance(data["customer_id"], str):
            raise ValueError("invalid type for `customer_id`: expected a string")
        return cls(data["customer_id"], data["private_inputs"], data["public_params"])


@dataclass(frozen=True)
class GenerateProofResponse:
    """The outcome of a proof generation request."""

    success: bool
    proof: str | None = None
    image_id: str | None = None
    outputs: Any = None
    error: str | None = None

    def to_json(self) -> dict[str, Any]:
        """Return a JSON-ready dict; absent fields are omitted."""
        body: dict[str, Any] = {"success": self.success}
        for name in ("proof", "image_id", "outputs", "error"):
            value = getattr(self, name)
            if value is not None:
                body[name] = value
        return body


@dataclass(frozen=True)
class GuestProgram:
    """A customer's deployed guest program and its binary."""

    customer_id: str
    image_id: str
    elf_path: str
    elf_binary: bytes

    @classmethod
    def load(cls, customer_id: str, image_id: str, elf_path: str) -> "GuestProgram":
        """Read the program binary from disk."""
        return cls(customer_id, image_id, elf_path, Path(elf_path).read_bytes())