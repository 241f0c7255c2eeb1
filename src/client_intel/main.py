"""Client Intelligence Engine service entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from client_intel.api.router import router
from client_intel.container import ServiceContainer
from client_intel.errors import ClientIntelError, ErrorCode, NotFoundError
from client_intel.observability import configure_logging, get_logger
from client_intel.settings import Settings

logger = get_logger(__name__)

_STATUS_BY_CODE: dict[ErrorCode, int] = {
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.MALFORMED_RECORD: 422,
    ErrorCode.QUOTA_EXCEEDED: 429,
    ErrorCode.SOURCE_UNAVAILABLE: 503,
    ErrorCode.ENRICHMENT_FAILED: 502,
    ErrorCode.CONFIGURATION_MISSING: 503,
}


async def _handle_engine_error(request: Request, exc: ClientIntelError) -> JSONResponse:
    status_code = _STATUS_BY_CODE.get(exc.error_code, 500)
    if not isinstance(exc, NotFoundError):
        logger.warning("request_failed", path=request.url.path, error_code=exc.error_code.value, error=exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error_code": exc.error_code.value, "detail": exc.message},
    )


def create_app(container: ServiceContainer | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        container: Pre-built container (tests pass one wired to in-memory sources).
        settings: Used to build a container when none is given.
    """
    settings = settings or (container.settings if container else Settings())
    configure_logging(settings.log_level, json=settings.log_json)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "client-intel starting",
            service=settings.service_name,
            search_configured=bool(settings.search_api_key and settings.search_engine_id),
            ai_configured=bool(settings.ai_api_key),
            persistence="sql" if settings.database_url else "memory",
        )
        yield
        await app.state.container.aclose()
        logger.info("client-intel shutting down")

    app = FastAPI(title=settings.service_name, version="0.1.0", lifespan=lifespan)
    app.state.container = container or ServiceContainer.from_settings(settings)
    app.add_exception_handler(ClientIntelError, _handle_engine_error)  # type: ignore[arg-type]
    app.include_router(router, prefix="/api/v1")
    return app


app = create_app()
