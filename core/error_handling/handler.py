"""
Exception Handlers

Converts errors into structured JSON responses at the HTTP boundary.
Every body carries `error`, `message` and a `timestamp`; application errors
add their code and context (module name, source, underlying error text).
"""

from datetime import datetime, timezone
from typing import Any, Dict

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from core.exceptions import ModgateException

logger = structlog.get_logger("error-handler")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_response(status_code: int, body: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={**body, "timestamp": _timestamp()})


async def modgate_exception_handler(request: Request, exc: ModgateException):
    """Application errors carry their own status code and JSON body"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request failed",
        error_code=exc.error_code,
        error=exc.message,
        status_code=exc.status_code,
    )
    return error_response(exc.status_code, exc.to_dict())


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return error_response(404, {
            "error": "Not Found",
            "message": f"Route {request.url.path} does not exist",
        })
    return error_response(exc.status_code, {
        "error": exc.detail,
        "message": str(exc.detail),
    })


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(422, {
        "error": "Validation Error",
        "message": "Invalid request parameters",
        "details": jsonable_encoder(exc.errors()),
    })


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors"""
    logger.error("Unhandled exception", error=str(exc), exc_info=exc)
    return error_response(500, {
        "error": "Internal Server Error",
        "message": str(exc),
    })


def register_exception_handlers(app: FastAPI):
    """Install the JSON error handlers on an app"""
    app.add_exception_handler(ModgateException, modgate_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
