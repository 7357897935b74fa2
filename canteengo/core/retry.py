"""
CanteenGo — Retry decorator for pickup-code collisions

Uses exponential backoff + jitter. A PickupCodeConflict means another
transaction committed an active order with the same code between our
uniqueness check and our insert.
"""
import asyncio
import functools
import logging
import random

from canteengo.core.config import get_settings
from canteengo.core.errors import PickupCodeConflict

settings = get_settings()
logger = logging.getLogger(__name__)


def with_pickup_code_retry(max_retries: int | None = None):
    """
    Decorator for async functions that insert an order with a fresh code.
    The wrapped function must roll back its session before raising
    PickupCodeConflict so the next attempt starts clean.

    Usage:
        @with_pickup_code_retry()
        async def place_order(db, ...):
            ...
    """
    _max = max_retries or settings.PICKUP_CODE_MAX_RETRIES

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            for attempt in range(1, _max + 1):
                try:
                    return await func(*args, **kwargs)
                except PickupCodeConflict:
                    if attempt == _max:
                        logger.error(
                            "Pickup code collision unresolved after %d attempts for %s",
                            _max, func.__name__,
                        )
                        raise
                    base_delay = settings.PICKUP_CODE_BASE_DELAY_MS / 1000.0
                    max_delay = settings.PICKUP_CODE_MAX_DELAY_MS / 1000.0
                    jitter = random.uniform(0, settings.PICKUP_CODE_JITTER_MS / 1000.0)
                    delay = min(base_delay * (2 ** attempt), max_delay) + jitter
                    logger.warning(
                        "Pickup code collision on attempt %d/%d, retrying in %.3fs",
                        attempt, _max, delay,
                    )
                    await asyncio.sleep(delay)
        return wrapper
    return decorator
