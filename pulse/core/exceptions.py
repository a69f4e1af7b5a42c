"""
Global exception handling for the application.
Domain errors share one shape so the HTTP handler and the WebSocket
router can both report them as ``{code, message, details}``.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import Request, status
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return self.__class__.__name__


class EntityNotFoundException(AppError):
    """Resource not found error."""
    def __init__(self, message: str = "Entity not found", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_404_NOT_FOUND, details)


class BusinessRuleViolationException(AppError):
    """Business logic violation error."""
    def __init__(self, message: str = "Business rule violation", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY, details)


class ProposalNotFoundError(EntityNotFoundException):
    def __init__(self, proposal_id: str):
        super().__init__("Proposal not found", {"proposalId": proposal_id})


class DuplicateCommentError(BusinessRuleViolationException):
    """A user may comment on a proposal only once."""
    def __init__(self, proposal_id: str, user_id: str):
        super().__init__(
            "User has already commented on this proposal",
            {"proposalId": proposal_id, "userId": user_id},
        )


class InvalidEnvelopeError(AppError):
    """Inbound frame is not a well-formed envelope."""
    def __init__(self, message: str = "Invalid message format", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_400_BAD_REQUEST, details)


class UnknownMessageTypeError(AppError):
    def __init__(self, message_type: Any):
        super().__init__("Unknown message type", status.HTTP_400_BAD_REQUEST, {"type": message_type})


class ConnectionFailedError(AppError):
    """Client gave up reconnecting; needs an explicit retry."""
    def __init__(self, message: str = "Connection failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE, details)


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all uncaught exceptions globally."""

    if isinstance(exc, AppError):
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": exc.code,
                    "message": exc.message,
                    "details": exc.details,
                    "path": request.url.path,
                }
            },
        )

    logger.exception("Unexpected error occurred", path=request.url.path)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "InternalServerError",
                "message": "An unexpected error occurred. Please try again later.",
                "path": request.url.path,
            }
        },
    )
