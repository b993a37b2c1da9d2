"""Exceptions raised by the creation path and the durable store.

Resolution outcomes (not found, expired) are not exceptions; they are
``ResolutionStatus`` values. Everything here is raised synchronously to a
caller that is waiting for a created record or an actionable rejection.

Classes:
    ShortlinkError:
        Generic base class for service exceptions.

    SlugConflictError:
        Raised when a requested slug already exists. Maps to HTTP 409.

    SlugGenerationExhaustedError:
        Raised when no free random slug was found within the retry budget.
        Signals a capacity or configuration problem, not a user error.

    ValidationFailureError:
        Raised when input is rejected before any store mutation.

    StoreUnavailableError:
        Raised by the durable store on connection, driver or timeout failures.

Example:
    >>> from shortlink.exceptions import SlugConflictError
    >>> raise SlugConflictError("promo123")
    Traceback (most recent call last):
        ...
    shortlink.exceptions.SlugConflictError: Slug "promo123" already exists
"""

__all__ = [
    "ShortlinkError",
    "SlugConflictError",
    "SlugGenerationExhaustedError",
    "StoreUnavailableError",
    "ValidationFailureError",
]


class ShortlinkError(Exception):
    """Generic base class for service exceptions."""

    pass


class SlugConflictError(ShortlinkError):
    """Exception raised when a slug is already taken."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f'Slug "{slug}" already exists')


class SlugGenerationExhaustedError(ShortlinkError):
    """Exception raised when random slug generation keeps colliding."""

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Failed to generate unique slug after {attempts} attempts")


class ValidationFailureError(ShortlinkError, ValueError):
    """Exception raised when creation input is malformed."""

    pass


class StoreUnavailableError(ShortlinkError):
    """Exception raised when the durable store cannot serve a request.

    e.g. connection issues, driver errors, pool timeouts, etc.
    """

    pass
