from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .api import links, redirect
from .api.deps import configure_rate_limit, limiter
from .api.middleware import LoggingMiddleware
from .config import Settings, settings as default_settings
from .core.errors import GenerationExhausted, ShortLinkError, Unavailable
from .core.resolver import ResolutionEngine
from .core.security import PasswordHasher
from .core.shortener import CodeGenerator
from .core.store import LinkStore
from .database import create_db_engine, create_session_factory, init_models
from .services.click_recorder import ClickRecorder, DatabaseClickSink
from .services.links import LinkService
from .utils.geo import GeoLocator
from .utils.logging_config import setup_logging

SERVICE_NAME = "Short Links"


async def shortlink_error_handler(request: Request, exc: ShortLinkError) -> JSONResponse:
    headers = None
    if isinstance(exc, (Unavailable, GenerationExhausted)):
        headers = {"Retry-After": "1"}

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error_code},
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors()), "error": "validation_error"},
    )


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application with all components wired explicitly.

    Args:
        app_settings: Settings to use (defaults to the environment settings)
    """
    app_settings = app_settings or default_settings

    logger = setup_logging(
        level=app_settings.LOG_LEVEL,
        log_file=app_settings.LOG_FILE,
        json_format=app_settings.LOG_JSON,
    )

    engine = create_db_engine(app_settings.DATABASE_URL)
    store = LinkStore(create_session_factory(engine))
    hasher = PasswordHasher(rounds=app_settings.BCRYPT_ROUNDS)
    generator = CodeGenerator(
        store,
        length=app_settings.SHORT_CODE_LENGTH,
        strategy=app_settings.CODE_STRATEGY,
        max_attempts=app_settings.CODE_MAX_ATTEMPTS,
    )
    geo_locator = None
    if app_settings.GEO_LOOKUP_ENABLED:
        geo_locator = GeoLocator(app_settings.GEO_LOOKUP_URL, timeout=app_settings.GEO_LOOKUP_TIMEOUT)

    recorder = ClickRecorder(
        DatabaseClickSink(store, geo_lookup=geo_locator),
        max_queue_size=app_settings.CLICK_QUEUE_SIZE,
        batch_size=app_settings.CLICK_BATCH_SIZE,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {SERVICE_NAME} service")
        init_models(engine)
        recorder.start()

        yield

        logger.info(f"Shutting down {SERVICE_NAME} service")
        recorder.stop()
        if geo_locator is not None:
            geo_locator.close()
        engine.dispose()

    app = FastAPI(
        title=SERVICE_NAME,
        description="Short link creation and resolution service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    app.state.store = store
    app.state.recorder = recorder
    app.state.resolver = ResolutionEngine(store, verify_password=hasher.verify)
    app.state.link_service = LinkService(
        store,
        generator,
        hasher,
        daily_link_limit=app_settings.DAILY_LINK_LIMIT,
        block_spam=app_settings.BLOCK_SPAM_URLS,
        default_domain=app_settings.default_domain,
    )

    # Setup rate limiter
    app.state.limiter = limiter
    configure_rate_limit(app_settings.RATE_LIMIT_PER_HOUR)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(ShortLinkError, shortlink_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        """Health check endpoint"""
        try:
            database_ok = store.ping()
        except Unavailable:
            database_ok = False

        return JSONResponse(
            status_code=200 if database_ok else 503,
            content={
                "status": "healthy" if database_ok else "unhealthy",
                "service": SERVICE_NAME,
                "database": database_ok,
                "clicks": recorder.stats(),
            },
        )

    app.include_router(links.router, tags=["links"])
    # Redirect routes must be last to not conflict with other routes
    app.include_router(redirect.router, tags=["redirect"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
