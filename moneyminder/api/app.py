"""
FastAPI application factory.

Every MoneyMinderError becomes ``{"error": message}`` with the status the
error class carries. Malformed request bodies are 400, not FastAPI's 422.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from moneyminder import __version__
from moneyminder.api.routes import ROUTERS
from moneyminder.errors import MoneyMinderError
from moneyminder.orchestrator import AppComponents, create_app_components


logger = structlog.get_logger(__name__)


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def create_app(components: Optional[AppComponents] = None) -> FastAPI:
    """
    Build the API.

    Args:
        components: Prebuilt components (tests inject in-memory ones).
                    Built from the environment when omitted.
    """
    components = components or create_app_components()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await components.startup()
        yield
        await components.shutdown()

    app = FastAPI(title="MoneyMinder", version=__version__, lifespan=lifespan)
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=components.settings.app.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(MoneyMinderError)
    async def handle_domain_error(request: Request, exc: MoneyMinderError):
        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message)
            await components.audit.log_error(
                type(exc).__name__,
                exc.message,
                details={"path": request.url.path},
            )
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse({"error": _validation_message(exc)}, status_code=400)

    for router in ROUTERS:
        app.include_router(router)

    @app.get("/api/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app
