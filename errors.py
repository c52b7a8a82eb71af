# /quickpick/errors.py

import logging
from typing import List, Optional

from bson import errors as bson_errors
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("ERRORS")


# --- Error taxonomy ---
# All of them are HTTPExceptions, so routers raise them exactly like HTTPException.

class ValidationFailed(HTTPException):
    def __init__(self, message: str = "Validation errors", errors: Optional[List[str]] = None):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=message)
        self.errors = errors


class Unauthenticated(HTTPException):
    def __init__(self, message: str = "Not authorized, token failed"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=message,
            headers={"WWW-Authenticate": "Bearer"},
        )


class TokenExpired(Unauthenticated):
    def __init__(self, message: str = "Not authorized, token expired"):
        super().__init__(message)


class Forbidden(HTTPException):
    def __init__(self, message: str = "Forbidden: You do not have permission to access this route"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=message)


class NotFound(HTTPException):
    def __init__(self, message: str = "Resource not found"):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=message)


class Conflict(HTTPException):
    # Duplicate registration data is reported as 400, which is what the dashboards expect.
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST):
        super().__init__(status_code=status_code, detail=message)


class UpstreamError(HTTPException):
    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=message)


class ServiceUnavailable(HTTPException):
    def __init__(self, message: str = "Service temporarily unavailable. Please try again."):
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)


# --- Request validation messages ---

def describe_validation_error(err: dict) -> str:
    loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc) or "request"
    kind = err.get("type", "")
    ctx = err.get("ctx") or {}

    if kind == "missing":
        return f"{field} is required"
    if kind == "value_error" and "error" in ctx:
        # Raised by our own validators; the message is already user-facing.
        return str(ctx["error"])
    if field == "email":
        return "Please include a valid email"
    if kind == "json_invalid":
        return "Request body is not valid JSON"
    return f"{field}: {err.get('msg', 'invalid value')}"


# --- Handlers ---

async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    content = {"message": exc.detail}
    errors = getattr(exc, "errors", None)
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        text = describe_validation_error(err)
        if text not in messages:
            messages.append(text)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Validation errors", "errors": messages},
    )


async def invalid_id_handler(request: Request, exc: bson_errors.InvalidId):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": "Invalid ID"})


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"message": "Server error"})


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(bson_errors.InvalidId, invalid_id_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
