# SPDX-License-Identifier: GPL-3.0-or-later
# Copyright (C) 2026 Bareforge Contributors

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from bareforge.api.router import forge_router
from bareforge.config import get_settings
from bareforge.logger import setup_logging
from bareforge.schemas.forge import ErrorDetail, ForgeInfo
from bareforge.services.errors import ForgeError, NotFoundError, UpstreamAuthError
from bareforge.services.forge import LocalForge, get_forge
from bareforge.webhooks.hook import router as hook_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: configuration is loaded and logging set up at startup."""
    settings = get_settings()
    setup_logging(settings)
    logger.info("Serving repositories from %s at %s", settings.repos, settings.url)
    yield
    logger.debug("bye bye")


class SafetyNetMiddleware(BaseHTTPMiddleware):
    """Outermost error boundary around request dispatch.

    Per-operation errors are mapped by the exception handlers below; anything
    that still escapes is logged with its traceback and the caller gets a JSON
    500. The process keeps serving other requests.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        start_time = time.monotonic()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "Unhandled fault in %s %s", request.method, request.url.path
            )
            detail = ErrorDetail(message="Internal server error", type="InternalError")
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=detail.model_dump(exclude_none=True),
            )
        logger.debug(
            "%s %s - %s - %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            time.monotonic() - start_time,
        )
        return response


def _error_response(status_code: int, exc: ForgeError, stage: str | None = None) -> JSONResponse:
    detail = ErrorDetail(message=str(exc), type=exc.__class__.__name__, stage=stage)
    return JSONResponse(status_code=status_code, content=detail.model_dump(exclude_none=True))


async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return _error_response(status.HTTP_404_NOT_FOUND, exc)


async def upstream_auth_handler(request: Request, exc: UpstreamAuthError) -> JSONResponse:
    return _error_response(status.HTTP_502_BAD_GATEWAY, exc, stage=exc.stage)


async def forge_error_handler(request: Request, exc: ForgeError) -> JSONResponse:
    logger.error("Forge error in %s %s: %s", request.method, request.url.path, exc)
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Bareforge",
        version="0.1.0",
        lifespan=lifespan,
        exception_handlers={
            NotFoundError: not_found_handler,
            UpstreamAuthError: upstream_auth_handler,
            ForgeError: forge_error_handler,
        },
    )
    app.add_middleware(SafetyNetMiddleware)

    app.include_router(forge_router)
    app.include_router(hook_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe. Returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/forge", response_model=ForgeInfo)
    async def forge_info(forge: LocalForge = Depends(get_forge)) -> ForgeInfo:
        return ForgeInfo(name=forge.name(), url=forge.url())

    return app


app = create_app()
