"""HTTP API of the proof generation service."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from khafi.proof_models import GenerateProofRequest, GenerateProofResponse, GuestProgram
from khafi.proof_prover import ProofError, Prover
from khafi.registry_client import DeploymentInfo, RegistryClient, RegistryError

log = logging.getLogger(__name__)

SERVICE_NAME = "proof-generation-service"


@dataclass
class AppState:
    """State shared by the request handlers."""

    prover: Prover
    registry_client: RegistryClient


class _ApiError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message


async def _api_error_handler(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, _ApiError)
    return JSONResponse({"error": exc.message}, status_code=exc.status)


async def _json_body(request: Request) -> Any:
    try:
        return json.loads(await request.body())
    except ValueError as exc:
        raise _ApiError(400, f"Invalid JSON body: {exc}") from exc


def create_app(state: AppState) -> Starlette:
    """Build the service application around shared state."""
    write_lock = asyncio.Lock()

    async def require_deployment(customer_id: str) -> DeploymentInfo:
        try:
            deployment = await state.registry_client.get_deployment(customer_id)
        except RegistryError as exc:
            raise _ApiError(500, str(exc)) from exc
        if deployment is None:
            raise _ApiError(404, f"No deployment found for customer: {customer_id}")
        return deployment

    async def health(request: Request) -> Response:
        return JSONResponse({"status": "healthy", "service": SERVICE_NAME})

    async def status(request: Request) -> Response:
        try:
            registry_healthy = await state.registry_client.health_check()
        except RegistryError:
            registry_healthy = False
        return JSONResponse({
            "service": SERVICE_NAME,
            "loaded_programs": state.prover.program_count(),
            "registry_healthy": registry_healthy,
        })

    async def generate_proof(request: Request) -> Response:
        data = await _json_body(request)
        try:
            req = GenerateProofRequest.from_json(data)
        except ValueError as exc:
            raise _ApiError(422, f"Invalid request: {exc}") from exc
        log.info("Generating proof for customer: %s", req.customer_id)

        if not state.prover.has_program(req.customer_id):
            log.info("Guest program not loaded, fetching from registry")
            deployment = await require_deployment(req.customer_id)
            try:
                program = GuestProgram.load(
                    deployment.customer_id,
                    deployment.image_id,
                    deployment.guest_program_path,
                )
            except OSError as exc:
                raise _ApiError(500, f"Failed to load guest program: {exc}") from exc
            async with write_lock:
                state.prover.load_program(program)

        try:
            result = await asyncio.to_thread(
                state.prover.generate_proof,
                req.customer_id,
                req.private_inputs,
                req.public_params,
            )
        except ProofError as exc:
            log.error("Proof generation failed for customer %s: %s", req.customer_id, exc)
            response = GenerateProofResponse(
                success=False, error=f"Proof generation failed: {exc}"
            )
        else:
            log.info("Proof generated successfully for customer: %s", req.customer_id)
            response = GenerateProofResponse(
                success=True,
                proof=result.proof,
                image_id=result.image_id,
                outputs=result.outputs,
            )
        return JSONResponse(response.to_json())

    async def load_program(request: Request) -> Response:
        customer_id = await _json_body(request)
        if not isinstance(customer_id, str):
            raise _ApiError(422, "Invalid request: expected a JSON string")
        log.info("Loading guest program for customer: %s", customer_id)
        deployment = await require_deployment(customer_id)
        try:
            program = GuestProgram.load(
                deployment.customer_id,
                deployment.image_id,
                deployment.guest_program_path,
            )
        except OSError as exc:
            raise _ApiError(500, str(exc)) from exc
        async with write_lock:
            state.prover.load_program(program)
        log.info("Guest program loaded successfully for customer: %s", customer_id)
        return JSONResponse({
            "success": True,
            "customer_id": customer_id,
            "image_id": deployment.image_id,
        })

    return Starlette(
        routes=[
            Route("/health", health, methods=["GET"]),
            Route("/api/status", status, methods=["GET"]),
            Route("/api/generate-proof", generate_proof, methods=["POST"]),
            Route("/api/load-program", load_program, methods=["POST"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_methods=["*"],
                allow_headers=["*"],
            )
        ],
        exception_handlers={_ApiError: _api_error_handler},
    )