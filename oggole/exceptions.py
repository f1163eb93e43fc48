"""
Error taxonomy shared by the services and the HTTP layer.

Services raise these; the handlers registered in main.py turn them into
JSON responses. Messages are written for the client: storage and upstream
details are logged where they happen and never copied into an error.
"""
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class OggoleError(Exception):
    """Base exception. Carries the HTTP status the router should use."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(OggoleError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(OggoleError):
    """Bad credentials. The message never says whether the user exists."""

    status_code = 401
    code = "AUTHENTICATION_FAILED"

    def __init__(self, message: str = "Invalid username or password"):
        super().__init__(message)


class ConflictError(OggoleError):
    status_code = 409
    code = "CONFLICT"


class NotFoundError(OggoleError):
    """No usable session: token missing or unknown."""

    status_code = 401
    code = "SESSION_NOT_FOUND"

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class ExpiredError(NotFoundError):
    code = "SESSION_EXPIRED"

    def __init__(self, message: str = "Session expired"):
        super().__init__(message)


class ConfigurationError(OggoleError):
    status_code = 503
    code = "NOT_CONFIGURED"


class UpstreamError(OggoleError):
    status_code = 502
    code = "UPSTREAM_ERROR"


class StorageError(OggoleError):
    status_code = 500
    code = "STORAGE_ERROR"


class SearchError(StorageError):
    code = "SEARCH_ERROR"

    def __init__(self, message: str = "Search is temporarily unavailable"):
        super().__init__(message)


async def oggole_error_handler(request: Request, exc: OggoleError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OggoleError, oggole_error_handler)
