from contextlib import asynccontextmanager
import logging
import time

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request

from marketplace.api.router import build_api_router
from marketplace.core.config import Settings, get_settings
from marketplace.core.middleware import RequestBodyLimitMiddleware, RequestDeadlineMiddleware
from marketplace.core.telemetry import configure_api_logging, setup_api_telemetry, shutdown_api_telemetry
from marketplace.services.errors import MarketplaceError
from marketplace.services.repository import get_repository

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def _resolve_repository(app: FastAPI):
    return app.dependency_overrides.get(get_repository, get_repository)()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        repository = _resolve_repository(app)
        if settings.storage_backend == "postgres" and settings.database_url:
            # StoreUnavailableError after the last attempt aborts start-up.
            await repository.connect(
                attempts=settings.database_connect_attempts,
                delay_seconds=settings.database_connect_retry_seconds,
            )
        try:
            yield
        finally:
            shutdown_api_telemetry(app, app.state.telemetry)
            await repository.close()
            get_repository.cache_clear()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.telemetry = setup_api_telemetry(app, settings)

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("request failed method=%s path=%s error=%s", request.method, request.url.path, exc.message)
        return _error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        errors = exc.errors()
        if not errors:
            return _error_response(400, "invalid request")
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part not in {"body", "query", "path"})
        message = first.get("msg", "invalid value")
        return _error_response(400, f"{location}: {message}" if location else message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
        return _error_response(500, "internal server error")

    app.add_middleware(RequestBodyLimitMiddleware, max_bytes=settings.body_limit_bytes)
    app.add_middleware(RequestDeadlineMiddleware, timeout_seconds=settings.request_timeout_seconds)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        started_at = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started_at) * 1000.0
        logger.info(
            "http request method=%s path=%s status=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_origin_regex=settings.cors_origin_regex,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(build_api_router(settings))
    return app


configure_api_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("marketplace.main:app", host="0.0.0.0", port=8000)
