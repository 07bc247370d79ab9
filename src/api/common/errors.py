from typing import Any, Optional
from fastapi import HTTPException


class BillingError(Exception):
    """Base class for billing domain errors"""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(BillingError):
    """Entity missing or not owned by the caller"""


class InvalidStateError(BillingError):
    """Operation not allowed in the entity's current state"""


def to_http_exception(error: BillingError) -> HTTPException:
    """Map a domain error to the HTTP error returned by the endpoints"""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    return HTTPException(status_code=400, detail=error.message)
