"""Shared enums for the slug resolution service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["CacheStatus", "CreationStatus", "HealthStatus", "ResolutionStatus"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class ResolutionStatus(StrEnum):
    """Outcome of resolving a slug for redirect.

    Not-found and expired are ordinary outcomes, not errors: the boundary
    sends the visitor to a dead-link page for the former and to an
    explanatory page for the latter.
    """

    FOUND = "found"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class CacheStatus(StrEnum):
    """Slug cache lookup result, used as a metrics label."""

    HIT = "hit"
    MISS = "miss"


class CreationStatus(StrEnum):
    """Short URL creation outcome, used as a metrics label."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    VALIDATION_ERROR = "validation_error"
    EXHAUSTED = "exhausted"
    ERROR = "error"
