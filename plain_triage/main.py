import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from plain_triage.api.routes import router
from plain_triage.core.errors import (
    ConfigurationError,
    ExternalServiceError,
    RepositoryError,
    SignatureVerificationError,
    ValidationError,
)
from plain_triage.core.log_config import setup_logging
from plain_triage.deps import get_plain_client, get_rule_evaluator

load_dotenv()
logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[Exception], int] = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    SignatureVerificationError: status.HTTP_401_UNAUTHORIZED,
    RepositoryError: status.HTTP_502_BAD_GATEWAY,
    ExternalServiceError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ConfigurationError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _register_exception_handlers(app: FastAPI) -> None:
    def handler(request: Request, exc: Exception) -> JSONResponse:
        status_code = next(
            (code for exc_type, code in _ERROR_STATUS.items() if isinstance(exc, exc_type)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, exc)
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    for exc_type in _ERROR_STATUS:
        app.add_exception_handler(exc_type, handler)

    def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error")
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal server error"})

    app.add_exception_handler(Exception, unhandled_handler)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield

    # Shutdown: only close a client that was actually built
    if get_plain_client.cache_info().currsize:
        plain_client = get_plain_client()
        if plain_client is not None:
            await plain_client.aclose()
            logger.info("Plain API client closed")
        get_plain_client.cache_clear()


def create_app() -> FastAPI:
    setup_logging()
    app = FastAPI(title="Plain Priority Triage API", version="1.0.0", lifespan=lifespan)
    _register_exception_handlers(app)

    # Mount router with dependency injection
    app.include_router(router)

    # a broken rule table is fatal
    get_rule_evaluator()

    return app


app = create_app()
