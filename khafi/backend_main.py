"""Entry point of the payment backend: API server and chain monitor."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Sequence

import uvicorn

from khafi.backend_api import create_app
from khafi.backend_config import Config, ConfigError
from khafi.monitor import Monitor
from khafi.storage import Storage, StorageError

log = logging.getLogger(__name__)


async def _serve_api(server: uvicorn.Server) -> None:
    log.info("Starting API server task")
    try:
        await server.serve()
    except SystemExit:
        log.error("API server failed to start")
    except Exception:
        log.exception("API server error")


async def _run_monitor(config: Config) -> None:
    log.info("Starting blockchain monitor task")
    try:
        monitor = await Monitor.create(config)
    except Exception:
        log.exception("Failed to create monitor")
        return
    try:
        await monitor.start()
    except Exception:
        log.exception("Monitor error")
    finally:
        await monitor.storage.close()


async def run(config: Config) -> None:
    """Run the API server and the monitor until one of them stops."""
    storage = await Storage.connect(config.redis_url)
    log.info("Connected to Redis for API")
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(storage),
            host=config.api_host,
            port=config.api_port,
            log_config=None,
            lifespan="off",
        )
    )
    log.info("API server listening on %s", config.api_address())
    api_task = asyncio.create_task(_serve_api(server), name="api")
    monitor_task = asyncio.create_task(_run_monitor(config), name="monitor")
    log.info("All tasks started successfully")
    log.info("Zcash Backend Service is running")
    try:
        done, _ = await asyncio.wait(
            {api_task, monitor_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if api_task in done:
            log.error("API task terminated unexpectedly")
        else:
            log.error("Monitor task terminated unexpectedly")
    finally:
        server.should_exit = True
        for task in (api_task, monitor_task):
            task.cancel()
        await asyncio.gather(api_task, monitor_task, return_exceptions=True)
        await storage.close()


def _configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("khafi").setLevel(logging.DEBUG)


def main(argv: Sequence[str] | None = None) -> int:
    """Start the payment backend service; return the process exit status."""
    argparse.ArgumentParser(
        prog="khafi-backend",
        description="Chain monitoring and payment verification service.",
    ).parse_args(argv)
    _configure_logging()
    log.info("Starting Zcash Backend Service")

    try:
        config = Config.from_env()
    except ConfigError as exc:
        log.error("Configuration error: %s", exc)
        return 1
    log.info("Configuration loaded")
    log.info("  Redis URL: %s", config.redis_url)
    log.info("  API address: %s", config.api_address())
    log.info("  Mock mode: %s", config.mock_mode)
    log.info("  Polling interval: %ds", config.polling_interval_secs)

    try:
        asyncio.run(run(config))
    except KeyboardInterrupt:
        log.info("Received shutdown signal")
    except (StorageError, OSError) as exc:
        log.error("%s", exc)
        return 1

    log.info("Shutting down Zcash Backend Service")
    return 0