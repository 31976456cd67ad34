# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/web_app.py
"""
Process entry point: runs the admission service inside a FastAPI lifespan and
exposes the liveness probe.

SIGINT/SIGTERM are handled by uvicorn, which runs the lifespan shutdown; if
any collaborator fails to close, the process exits with status 1.
"""
import logging
import sys
from contextlib import asynccontextmanager
from typing import Callable, Optional

from dotenv import load_dotenv, find_dotenv
from fastapi import FastAPI

load_dotenv(find_dotenv(usecwd=True))

from queuebot_app.apps.chat.resolvers import build_admission_service
from queuebot_app.apps.chat.sdk.config import get_settings
from queuebot_app.apps.chat.service import AdmissionService
from queuebot_app.infra.redis.client import close_async_redis_clients

import queuebot_app.apps.utils.logging_config as logging_config
logger = logging.getLogger("Chat.WebApp")

ServiceFactory = Callable[[], AdmissionService]


def _default_service_factory() -> AdmissionService:
    return build_admission_service(get_settings())


async def _close_redis_pools() -> bool:
    try:
        await close_async_redis_clients()
        return True
    except Exception:
        logger.exception("Error during shutdown: closing Redis pools")
        return False


def create_app(service_factory: Optional[ServiceFactory] = None) -> FastAPI:
    factory = service_factory or _default_service_factory

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.exit_code = 0
        service = factory()
        app.state.service = service
        try:
            await service.start()
        except Exception:
            logger.critical("Startup failed; shutting down")
            await service.stop()
            await _close_redis_pools()
            app.state.exit_code = 1
            raise

        try:
            yield
        finally:
            ok = await service.stop()
            ok = await _close_redis_pools() and ok
            if not ok:
                app.state.exit_code = 1

    app = FastAPI(title="queuebot", lifespan=lifespan)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/status")
    async def status():
        service: Optional[AdmissionService] = getattr(app.state, "service", None)
        if service is None:
            return {"started": False}
        return service.status()

    return app


app = create_app()


def main() -> None:
    import uvicorn

    logging_config.configure_logging()
    port = get_settings().PORT
    logger.info("Starting Uvicorn: port=%s", port)
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=port,
        log_config=None,
        log_level=None,
        timeout_graceful_shutdown=15,
    )
    exit_code = getattr(app.state, "exit_code", 0)
    if exit_code:
        logger.error("Exiting with status %s", exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
