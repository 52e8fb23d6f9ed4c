"""
FastAPI glue shared by both services: correlation id propagation, JSON body parsing and error responses.
Error bodies are flat: {"error": ..., "correlation_id": ...}.
"""
import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from token_core.audit import EVENT_INTERNAL_ERROR, OUTCOME_FAIL, log_event
from token_core.errors import BrokerError, RateLimitExceeded, ValidationError

logger = logging.getLogger(__name__)

CORRELATION_HEADERS = ("x-correlation-id", "x-factora-correlation-id")


def request_correlation_id(request: Request) -> str | None:
    """Correlation id supplied by the caller, if any."""
    for name in CORRELATION_HEADERS:
        value = request.headers.get(name)
        if value and value.strip():
            return value.strip()
    return None


def new_correlation_id() -> str:
    return str(uuid.uuid4())


async def read_json(request: Request, correlation_id: str | None):
    """Decode the request body as JSON; invalid_json ValidationError otherwise."""
    try:
        return await request.json()
    except ValueError as e:
        raise ValidationError("body is not valid JSON", correlation_id=correlation_id, error_code="invalid_json") from e


def add_cors(app: FastAPI, origins: list[str]) -> None:
    if not origins:
        return
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["authorization", "content-type", "x-correlation-id", "x-factora-correlation-id"],
        max_age=86400,
    )


def install_error_handlers(app: FastAPI, service: str) -> None:
    @app.exception_handler(BrokerError)
    async def _broker_error(request: Request, exc: BrokerError):
        if exc.correlation_id is None:
            exc.correlation_id = request_correlation_id(request) or new_correlation_id()
        if exc.status_code >= 500:
            log_event(
                EVENT_INTERNAL_ERROR,
                level=logging.ERROR,
                outcome=OUTCOME_FAIL,
                correlation_id=exc.correlation_id,
                service=service,
                error_type=type(exc).__name__,
            )
            logger.error("%s failed: %s", service, exc)
            body = {"error": "internal_error", "correlation_id": exc.correlation_id}
            return JSONResponse(body, status_code=500)
        headers = {}
        if exc.status_code == 401:
            headers["WWW-Authenticate"] = "Bearer"
        if isinstance(exc, RateLimitExceeded):
            headers["Retry-After"] = str(exc.retry_after)
        return JSONResponse(exc.to_body(), status_code=exc.status_code, headers=headers)

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        correlation_id = request_correlation_id(request) or new_correlation_id()
        logger.exception("%s unexpected error correlation_id=%s", service, correlation_id)
        return JSONResponse({"error": "internal_error", "correlation_id": correlation_id}, status_code=500)
