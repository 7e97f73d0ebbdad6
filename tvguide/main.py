"""
FastAPI front end for the guide client.

Serve it with the optional server extra installed:

    pip install -e ".[server]"
    uvicorn tvguide.main:app --host 0.0.0.0 --port 8000
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tvguide.config import setup_logging
from tvguide.dependencies import reset_guide_client
from tvguide.exceptions import DecodeError, GuideError, StateError, TransportFailure

from tvguide.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting TV Guide API...")

    yield

    logger.info("Shutting down TV Guide API...")
    try:
        reset_guide_client()
        logger.info("Guide client closed")
    except Exception as e:
        logger.error(f"Error during client shutdown: {e}", exc_info=True)

    logger.info("TV Guide API stopped")


app = FastAPI(
    title="TV Guide API",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)


def error_response(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)}
    )


@app.exception_handler(GuideError)
async def guide_exception_handler(request: Request, exc: GuideError):
    """Map client errors to HTTP statuses with the standard error body"""
    if isinstance(exc, TransportFailure):
        logger.error(f"Upstream failure for {request.method} {request.url.path}: {exc}")
        return error_response(502, exc)
    if isinstance(exc, StateError):
        return error_response(409, exc)
    if isinstance(exc, DecodeError):
        logger.error(f"Unusable upstream document for {request.method} {request.url.path}: {exc}")
        return error_response(502, exc)
    logger.error(f"Unhandled client error for {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(500, exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    # Create a properly serializable error response
    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )
