"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from language_test_api.api.routes import router
from language_test_api.config import Settings, get_settings, load_reference_data
from language_test_api.errors import LanguageTestError
from language_test_api.gateway.openai_gateway import OpenAIGateway
from language_test_api.lifecycle.accounts import AccountService
from language_test_api.lifecycle.orchestrator import TestLifecycle
from language_test_api.storage.database import create_engine_and_sessionmaker, init_database
from language_test_api.storage.repository import Repository

logger = structlog.get_logger()


def configure_logging(production: bool) -> None:
    """JSON logs in production, console output otherwise."""
    renderer = (
        structlog.processors.JSONRenderer() if production else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.INFO if production else logging.DEBUG
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


async def handle_language_test_error(request: Request, exc: LanguageTestError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            error=exc.message,
            details=exc.details,
        )
    else:
        logger.warning("request_rejected", path=request.url.path, error=exc.message)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def handle_request_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    logger.warning("request_invalid", path=request.url.path, errors=len(exc.errors()))
    return JSONResponse(
        {"message": "Invalid request", "details": jsonable_errors(exc)},
        status_code=400,
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse({"message": "Internal server error", "details": None}, status_code=500)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in exc.errors()
    ]


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application; storage and gateway are wired on startup."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine, session_factory = create_engine_and_sessionmaker(settings.sqlalchemy_url)
        await init_database(engine, session_factory, load_reference_data())

        repository = Repository(session_factory)
        gateway = OpenAIGateway(repository, settings)
        app.state.repository = repository
        app.state.gateway = gateway
        app.state.accounts = AccountService(repository)
        app.state.lifecycle = TestLifecycle(repository, gateway)
        logger.info("startup_complete", port=settings.port, uploads=str(settings.uploads_dir))
        try:
            yield
        finally:
            await engine.dispose()
            logger.info("shutdown_complete")

    app = FastAPI(title="Language Test API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(LanguageTestError, handle_language_test_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
    app.include_router(router)
    return app


settings = get_settings()
configure_logging(settings.is_production)

app = create_app(settings)


def main() -> None:
    """Run the application."""
    uvicorn.run(
        "language_test_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
