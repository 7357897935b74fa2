"""
CanteenGo — Call-site wrapper for store operations

Bounds every operation by REQUEST_TIMEOUT_SECONDS and turns domain errors
into HTTP errors. Unexpected store failures are logged here and surfaced as
a retryable 503; nothing is retried automatically.
"""
import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from canteengo.core.config import get_settings
from canteengo.core.errors import (
    AuthorizationError,
    CanteenGoError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    OrderValidationError,
    PickupCodeConflict,
)

settings = get_settings()
logger = logging.getLogger(__name__)

T = TypeVar("T")

ERROR_STATUS: list[tuple[type[CanteenGoError], int]] = [
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (OrderValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PickupCodeConflict, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def http_status_for(exc: CanteenGoError) -> int:
    for cls, code in ERROR_STATUS:
        if isinstance(exc, cls):
            return code
    return status.HTTP_400_BAD_REQUEST


async def run_store_op(operation: Awaitable[T], action: str) -> T:
    try:
        return await asyncio.wait_for(operation, timeout=settings.REQUEST_TIMEOUT_SECONDS)
    except CanteenGoError as exc:
        code = http_status_for(exc)
        if code >= 500:
            logger.error("%s failed: %s", action, exc)
        else:
            logger.info("%s rejected (%d): %s", action, code, exc)
        raise HTTPException(status_code=code, detail=str(exc))
    except asyncio.TimeoutError:
        logger.error("%s timed out after %.1fs", action, settings.REQUEST_TIMEOUT_SECONDS)
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail=f"{action} did not complete in time. Please retry.",
        )
    except SQLAlchemyError:
        logger.exception("%s failed", action)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{action} failed. Please retry.",
        )
