import logging
from contextlib import asynccontextmanager

from arq import create_pool
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from housematch.api.limiter import limiter
from housematch.api.responses import create_error_response, create_success_response
from housematch.core.config import get_settings
from housematch.core.exceptions import MatchingError
from housematch.services.collaborators import build_profile_store, build_property_store
from housematch.services.events import ArqEventPublisher
from housematch.workers.connection import get_redis_settings

settings = get_settings()

logger = logging.getLogger(__name__)

__all__ = ["create_success_response", "create_error_response", "app", "create_app"]


@asynccontextmanager
async def lifespan(app: FastAPI):

    app.state.profile_store = build_profile_store(settings)
    app.state.property_store = build_property_store(settings)
    redis = await create_pool(get_redis_settings())
    app.state.event_publisher = ArqEventPublisher(redis)
    logger.info("API started")

    yield

    await app.state.profile_store.close()
    await app.state.property_store.close()
    await redis.close()
    logger.info("API stopped")


def create_app() -> FastAPI:

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Roommate and housing matching API",
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.limiter = limiter

    _configure_cors(app)

    _configure_error_handlers(app)

    _include_routers(app)

    return app


def _configure_cors(app: FastAPI) -> None:

    origins = ["*"] if settings.debug else [
        "https://housematch.app",
        "https://www.housematch.app",
    ]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def _configure_error_handlers(app: FastAPI) -> None:

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.exception_handler(MatchingError)
    async def matching_exception_handler(
        request: Request, exc: MatchingError
    ) -> JSONResponse:
        """Map domain errors to the response envelope."""
        if exc.status_code >= 500:
            logger.warning(f"{exc.code} on {request.url.path}: {exc.message}")

        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(
            status_code=exc.status_code,
            content=create_error_response(
                code=exc.code,
                message=exc.message,
                details=exc.details,
            ),
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with consistent format."""
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
            errors.append({
                "field": field,
                "message": error["msg"],
            })

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=create_error_response(
                code="VALIDATION_ERROR",
                message="Invalid input data",
                details=errors,
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception(f"Unhandled error on {request.url.path}: {exc}")

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=create_error_response(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred" if not settings.debug else str(exc),
            ),
        )


def _include_routers(app: FastAPI) -> None:

    from housematch.api.v1.router import api_router

    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict:

        return create_success_response(data={"status": "healthy"})


app = create_app()


def run() -> None:
    import uvicorn

    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        "housematch.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
