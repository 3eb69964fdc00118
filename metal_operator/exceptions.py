"""Error taxonomy shared by the store, the BMC backends and the controllers.

The same classes are rendered as JSON responses by the HTTP API.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class OperatorError(Exception):
    """Base operator error."""

    def __init__(self, error: str, message: str, status_code: int = 400, details: dict | None = None):
        self.error = error
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class NotFoundError(OperatorError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__("NOT_FOUND", message, 404, details)


class AlreadyExistsError(OperatorError):
    def __init__(self, message: str, details: dict | None = None):
        super().__init__("ALREADY_EXISTS", message, 409, details)


class ConflictError(OperatorError):
    """A write carried a stale resourceVersion, or lost a field-ownership race."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("CONFLICT", message, 409, details)


class TransientError(OperatorError):
    """Retried with backoff: store unavailable, BMC unreachable, missing dependency."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("UNAVAILABLE", message, 503, details)


class BMCError(TransientError):
    pass


class PermanentError(OperatorError):
    """Not retried until the object's inputs change."""

    reason = "Failed"


class BindingConflictError(PermanentError):
    reason = "HostAlreadyClaimed"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("BINDING_CONFLICT", message, 409, details)


class ConfigurationError(PermanentError):
    reason = "InvalidConfiguration"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__("CONFIGURATION_INVALID", message, 422, details)


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""

    @app.exception_handler(OperatorError)
    async def _operator_error_handler(_request: Request, exc: OperatorError) -> JSONResponse:
        body: dict = {"error": exc.error, "message": exc.message}
        if exc.details:
            body["details"] = exc.details
        headers = {}
        if isinstance(exc, TransientError):
            headers["Retry-After"] = "5"
        return JSONResponse(status_code=exc.status_code, content=body, headers=headers)
