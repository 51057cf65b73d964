from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from fencequote.core.errors import (
    IllegalTransition,
    InvalidPricingData,
    PersistenceFailure,
    QuoteEngineError,
    QuoteNotFound,
)
from fencequote.core.logging_config import logger

STATUS_BY_ERROR = (
    (QuoteNotFound, 404),
    (IllegalTransition, 409),
    (InvalidPricingData, 422),
    (PersistenceFailure, 503),
)


def status_for(exc: QuoteEngineError) -> int:
    for cls, status in STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    return 400


async def quote_engine_error_handler(request: Request, exc: QuoteEngineError) -> JSONResponse:
    status = status_for(exc)
    log = logger.bind(endpoint=str(request.url.path), code=exc.code, status_code=status)
    if status >= 500:
        log.error("request_failed", error=exc.message)
    else:
        log.info("request_rejected", error=exc.message)
    return JSONResponse(status_code=status, content={"error": exc.to_dict()})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuoteEngineError, quote_engine_error_handler)
