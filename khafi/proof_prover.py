"""Proof generation over customers' guest programs."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

from khafi.proof_models import GuestProgram

log = logging.getLogger(__name__)

# Runs a guest binary on the given serialized inputs and returns the
# serialized receipt and the journal (public outputs) it committed.
Executor = Callable[[bytes, Sequence[str]], "tuple[bytes, bytes]"]


class ProofError(Exception):
    """Raised when a proof cannot be generated."""


@dataclass(frozen=True)
class ProofResult:
    """A generated proof and the outputs it commits to."""

    proof: str
    image_id: str
    outputs: Any


def _reject_constant(name: str) -> Any:
    raise ValueError(f"invalid JSON constant {name}")


def decode_journal(journal: bytes) -> Any:
    """Decode a journal as JSON, falling back to its hex form."""
    journal = bytes(journal)
    if not journal:
        return {}
    try:
        return json.loads(journal.decode("utf-8"), parse_constant=_reject_constant)
    except ValueError:
        return {"raw_journal": journal.hex()}


def _to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


class Prover:
    """Holds loaded guest programs by customer and proves inputs against them."""

    def __init__(self, executor: Executor | None = None) -> None:
        self._executor = executor
        self._programs: dict[str, GuestProgram] = {}

    def load_program(self, program: GuestProgram) -> None:
        """Load (or replace) the guest program of a customer."""
        log.info(
            "Loading guest program for customer: %s (image_id: %s)",
            program.customer_id,
            program.image_id,
        )
        self._programs[program.customer_id] = program

    def generate_proof(
        self, customer_id: str, private_inputs: Any, public_params: Any
    ) -> ProofResult:
        """Prove a customer's inputs with their loaded guest program."""
        program = self._programs.get(customer_id)
        if program is None:
            raise ProofError(f"Guest program not found for customer: {customer_id}")
        log.info("Generating proof for customer: %s", customer_id)
        log.debug("Private inputs: %r", private_inputs)
        log.debug("Public params: %r", public_params)

        try:
            inputs = [_to_json(private_inputs), _to_json(public_params)]
        except (TypeError, ValueError) as exc:
            raise ProofError(f"Failed to serialize inputs: {exc}") from exc

        if self._executor is None:
            raise ProofError("Failed to generate proof: no prover backend configured")
        try:
            receipt, journal = self._executor(program.elf_binary, inputs)
            receipt = bytes(receipt)
            journal = bytes(journal)
        except Exception as exc:
            raise ProofError(f"Failed to generate proof: {exc}") from exc

        log.info(
            "Proof generated successfully for customer: %s (%d bytes)",
            customer_id,
            len(receipt),
        )
        return ProofResult(
            proof=receipt.hex(),
            image_id=program.image_id,
            outputs=decode_journal(journal),
        )

    def program_count(self) -> int:
        """Return how many guest programs are loaded."""
        return len(self._programs)

    def has_program(self, customer_id: str) -> bool:
        """Return True if the customer has a loaded guest program."""
        return customer_id in self._programs