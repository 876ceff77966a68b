"""
Domain error taxonomy.

Every error is an HTTPException subclass so services can raise it directly
and FastAPI renders the right status code without extra handlers.
"""
from typing import Optional

from fastapi import HTTPException, status


class ChatException(HTTPException):
    """Base class for chat domain errors."""

    status_code_default: int = status.HTTP_400_BAD_REQUEST
    default_detail: str = "Request failed"

    def __init__(self, detail: Optional[str] = None, headers: Optional[dict] = None):
        super().__init__(
            status_code=self.status_code_default,
            detail=detail or self.default_detail,
            headers=headers,
        )


class Unauthenticated(ChatException):
    """No identity, or an identity token that failed verification."""

    status_code_default = status.HTTP_401_UNAUTHORIZED
    default_detail = "Not authenticated"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class Forbidden(ChatException):
    """Authenticated, but not the author / not a member."""

    status_code_default = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFound(ChatException):
    status_code_default = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class Conflict(ChatException):
    status_code_default = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


class Partial(Conflict):
    """A multi-row creation failed part way and was rolled back."""

    default_detail = "Operation partially failed and was rolled back"


class ValidationFailed(ChatException):
    status_code_default = 422
    default_detail = "Validation failed"
