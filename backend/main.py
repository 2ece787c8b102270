"""
Chat Relay Backend - FastAPI Application Entry Point
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from routers import chat
from services.config_manager import ConfigManager
from services.errors import RelayError
from services.logging_config import init_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown logic"""
    init_logging(os.environ.get("CHAT_RELAY_LOG_LEVEL", "INFO"))
    logger.info("Starting chat relay backend...")
    config = ConfigManager.get_instance().get_config()
    if not config.get("upstream", {}).get("apiKey"):
        logger.warning("Upstream API key not configured; relay requests will fail")
    if not config.get("identity", {}).get("baseUrl"):
        logger.warning("Identity service URL not configured; relay requests will fail")

    yield
    logger.info("Shutting down chat relay backend...")


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 with field details"""
    details = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "Invalid input", "details": details})


async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
    """Report authentication and relay failures with their mapped status"""
    logger.info("Relay request rejected: %s", exc.message)
    return chat.error_response(exc.status_code, exc.message)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Chat Relay Backend",
        description="Authenticated streaming relay to an LLM completion provider",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Browser clients call the relay cross-origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RelayError, relay_error_handler)

    app.include_router(chat.router, prefix="/api/chat", tags=["chat"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "chat-relay"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    server = ConfigManager.get_instance().get_config().get("server", {})
    uvicorn.run(app, host=server.get("host", "0.0.0.0"), port=int(server.get("port", 8000)))
