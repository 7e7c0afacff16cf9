"""Entry point of the proof generation service."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
from typing import Sequence

import uvicorn
from dotenv import load_dotenv

from khafi.proof_prover import Executor, Prover
from khafi.proof_service import AppState, create_app
from khafi.registry_client import RegistryClient, RegistryError

log = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "http://127.0.0.1:8083"
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = "8084"

_DIGITS = re.compile(r"[0-9]+")


def build_state(registry_url: str, executor: Executor | None = None) -> AppState:
    """Create the shared service state."""
    return AppState(prover=Prover(executor), registry_client=RegistryClient(registry_url))


def _parse_port(text: str) -> int:
    if not _DIGITS.fullmatch(text) or int(text) > 65535:
        raise ValueError(f"invalid port: {text!r}")
    return int(text)


async def _serve(registry_url: str, host: str, port: int) -> None:
    state = build_state(registry_url)
    try:
        log.info("Checking Image ID Registry health...")
        try:
            if await state.registry_client.health_check():
                log.info("Image ID Registry is healthy")
            else:
                log.info("Warning: Image ID Registry returned non-success status")
        except RegistryError as exc:
            log.info("Warning: Failed to connect to Image ID Registry: %s", exc)

        server = uvicorn.Server(
            uvicorn.Config(create_app(state), host=host, port=port, log_config=None)
        )
        log.info("Proof Generation Service running on http://%s:%d", host, port)
        try:
            await server.serve()
        except SystemExit as exc:
            raise OSError("Failed to bind to address") from exc
    finally:
        await state.registry_client.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    """Start the proof generation service; return the process exit status."""
    argparse.ArgumentParser(
        prog="khafi-prover",
        description="REST API for generating proofs of customer guest programs.",
    ).parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("khafi").setLevel(logging.DEBUG)
    load_dotenv()

    registry_url = os.environ.get("REGISTRY_URL", DEFAULT_REGISTRY_URL)
    host = os.environ.get("PROVER_HOST", DEFAULT_HOST)
    try:
        port = _parse_port(os.environ.get("PROVER_PORT", DEFAULT_PORT))
    except ValueError as exc:
        log.error("Failed to bind to address: %s", exc)
        return 1

    log.info("Starting Proof Generation Service")
    log.info("Registry URL: %s", registry_url)
    log.info("Listening on %s:%d", host, port)

    try:
        asyncio.run(_serve(registry_url, host, port))
    except KeyboardInterrupt:
        log.info("Received shutdown signal")
    except OSError as exc:
        log.error("Server error: %s", exc)
        return 1
    return 0