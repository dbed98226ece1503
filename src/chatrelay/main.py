"""
ChatRelay entrypoint — HTTP server hosting the bridge webhook and /health.

Run: chatrelay            (or: python -m chatrelay)

Exit codes:
    0  clean shutdown (SIGINT / SIGTERM)
    1  missing credential, startup failure, or WhatsApp auth failure
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse

import chatrelay.core.config as config_module
from chatrelay import __version__
from chatrelay.agent import RelayApp
from chatrelay.core.errors import ConfigError
from chatrelay.core.logging import setup_logging

logger = logging.getLogger("chatrelay")


def create_app(relay: RelayApp) -> FastAPI:
    app = FastAPI(title="ChatRelay", version=__version__)

    router = relay.transport.create_router()
    if router is not None:
        app.include_router(router)

    @app.on_event("startup")
    async def startup():
        await relay.start()

    @app.on_event("shutdown")
    async def shutdown():
        await relay.stop()

    @app.get("/health")
    async def health():
        report = await relay.health()
        return JSONResponse(report, status_code=503 if relay.fatal_error else 200)

    return app


def main() -> int:
    setup_logging()
    cfg = config_module.config
    try:
        cfg.validate()
    except ConfigError as e:
        logger.critical("Error: %s", e)
        return 1

    relay = RelayApp(cfg)
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(relay),
            host=cfg.server.host,
            port=cfg.server.port,
            log_config=None,
        )
    )
    relay.on_fatal(lambda: setattr(server, "should_exit", True))

    try:
        server.run()
    except KeyboardInterrupt:
        # uvicorn re-raises the captured SIGINT after its own graceful shutdown
        pass

    if relay.exit_code:
        logger.error("Exiting with status %d", relay.exit_code)
    return relay.exit_code
