"""
Error taxonomy shared by the core and the HTTP layer.

Each error is an HTTPException so routes and dependencies can raise them
directly; anything else reaching the app is reported as a generic 500.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from typehub.config import IS_PRODUCTION

logger = logging.getLogger(__name__)


class Unauthorized(HTTPException):
    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(status_code=401, detail=detail)


class Forbidden(HTTPException):
    def __init__(self, detail: str = "Forbidden"):
        super().__init__(status_code=403, detail=detail)


class NotFound(HTTPException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class InvalidInput(HTTPException):
    def __init__(self, detail: str = "Invalid input"):
        super().__init__(status_code=400, detail=detail)


class VerificationFailed(HTTPException):
    def __init__(self, detail: str = "Payment verification failed."):
        super().__init__(status_code=400, detail=detail)


def describe_validation_error(exc: RequestValidationError) -> str:
    """Turn the first pydantic error into a human-readable message"""
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    # loc is ("body", "fieldName") or ("query", "language")
    field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
    if first.get("type") == "missing":
        return f"Missing required field: {field}."
    return f"Invalid value for '{field}': {first.get('msg', 'invalid')}."


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": describe_validation_error(exc)})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"detail": "Internal server error"}
    if not IS_PRODUCTION:
        content["error"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=500, content=content)


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
