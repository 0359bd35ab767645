"""
Folio - Application Entry Point
================================
FastAPI application factory.  ``create_app()`` registers the routers,
CORS and the JSON error handlers; the lifespan hook builds the shared
services once (unless a pre-built container is injected, as tests do).

Run:
    uvicorn folio.src.main:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from folio.config.settings import settings
from folio.src.api.dependencies import Services, build_services
from folio.src.api.routes import debug_router, error_response, router
from folio.src.utils.logger import get_logger, quiet_library_loggers

logger = get_logger(__name__)


def create_app(services: Services | None = None) -> FastAPI:
    """
    Build the FastAPI application.

    Parameters
    ----------
    services
        Pre-built service container.  When ``None`` the container is
        built from ``settings`` during startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = services or build_services(settings)
        logger.info("Folio API started (env: %s).", settings.ENV)
        yield
        logger.info("Folio API stopped.")

    quiet_library_loggers()
    app = FastAPI(title="Folio", description="Portfolio content sync and retrieval-augmented chat", version="0.1.0", lifespan=lifespan)

    origins = [origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()]
    app.add_middleware(CORSMiddleware, allow_origins=origins, allow_methods=["*"], allow_headers=["*"])

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        detail = "; ".join(f"{'.'.join(str(p) for p in e.get('loc', ()))}: {e.get('msg', '')}" for e in errors) or "Invalid request"
        logger.warning("Rejected request to %s: %s", request.url.path, detail)
        return JSONResponse({"error": detail}, status_code=400)

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return error_response(exc)

    app.include_router(router)
    app.include_router(debug_router)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("folio.src.main:app", host="0.0.0.0", port=8000)
