"""
CanteenGo — Domain exceptions

Raised by the db/*_ops modules; API routes translate them to HTTP errors.
"""


class CanteenGoError(Exception):
    """Base class for every rejected operation."""


class AuthorizationError(CanteenGoError):
    """Actor failed the role or ownership check. Nothing was written."""


class NotFoundError(CanteenGoError):
    pass


class OrderValidationError(CanteenGoError):
    """Order payload references items that cannot be ordered."""


class InvalidTransitionError(CanteenGoError):
    """Requested status skips a state or moves backwards."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move order from '{current}' to '{target}'.")


class PickupCodeConflict(CanteenGoError):
    """Another order claimed the same active pickup code before we committed."""


class ConflictError(CanteenGoError):
    """Write would duplicate a row that must be unique (email, vendor canteen)."""
