"""
Domain errors for the flow subsystem and their HTTP rendering.
"""
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

log = logging.getLogger("flowcraft.errors")


class FlowErrorCode:
    FLOW_NOT_FOUND = "FLOW_NOT_FOUND"
    FLOW_VERSION_NOT_FOUND = "FLOW_VERSION_NOT_FOUND"
    FLOW_CONFLICT = "FLOW_CONFLICT"
    FLOW_VALIDATION_FAILED = "FLOW_VALIDATION_FAILED"
    FLOW_SUBMISSION_VALIDATION_FAILED = "FLOW_SUBMISSION_VALIDATION_FAILED"
    FLOW_META_SYNC_FAILED = "FLOW_META_SYNC_FAILED"
    FLOW_PUBLISH_FAILED = "FLOW_PUBLISH_FAILED"
    FLOW_STATE_INVALID = "FLOW_STATE_INVALID"


class FlowError(Exception):
    """Base error raised by flow services"""

    status_code = 400
    default_code = FlowErrorCode.FLOW_VALIDATION_FAILED

    def __init__(self, message: str, code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details

    def to_dict(self):
        return {"detail": self.message, "code": self.code, "details": self.details}


class FlowNotFoundError(FlowError):
    status_code = 404
    default_code = FlowErrorCode.FLOW_NOT_FOUND


class FlowConflictError(FlowError):
    status_code = 409
    default_code = FlowErrorCode.FLOW_CONFLICT


class FlowStateError(FlowError):
    status_code = 409
    default_code = FlowErrorCode.FLOW_STATE_INVALID


class FlowValidationError(FlowError):
    status_code = 422
    default_code = FlowErrorCode.FLOW_VALIDATION_FAILED


class MetaSyncError(FlowError):
    status_code = 502
    default_code = FlowErrorCode.FLOW_META_SYNC_FAILED


def setup_exception_handlers(app: FastAPI) -> None:
    """Render FlowError subclasses as JSON responses."""

    @app.exception_handler(FlowError)
    async def flow_error_handler(request: Request, exc: FlowError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error(f"❌ {exc.code} on {request.url.path}: {exc.message}")
        else:
            log.info(f"{exc.code} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
