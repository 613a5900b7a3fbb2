"""Maps engine errors onto HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import (
    Contended,
    FloorError,
    InvalidTransition,
    NotFound,
    TableOccupied,
    TableUnavailable,
)

logger = logging.getLogger(__name__)

STATUS_CODES = {
    NotFound: 404,
    InvalidTransition: 409,
    TableUnavailable: 409,
    TableOccupied: 409,
    Contended: 423,
}


def status_for(exc: FloorError) -> int:
    for error_cls, status_code in STATUS_CODES.items():
        if isinstance(exc, error_cls):
            return status_code
    return 400


async def floor_error_handler(request: Request, exc: FloorError) -> JSONResponse:
    status_code = status_for(exc)
    logger.debug("%s %s -> %d %s", request.method, request.url.path, status_code, exc.code)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=422, content={"error": "invalid_argument", "detail": str(exc)}
    )


def register_error_handlers(app: FastAPI):
    app.add_exception_handler(FloorError, floor_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
