"""Pydantic schemas for records, request validation and response serialization.

This module defines the immutable record snapshots that flow between the
store, the slug cache and the services, plus the API input/output models.

Schema Hierarchy
=================
::
    URLCreate (Input)
    ├─ original_url: str (validated absolute URL)
    ├─ slug: str | None (alphanumeric, length checked by the service)
    ├─ expiration_date: datetime | None
    └─ utm_params: UtmParams | None

    UrlRecord (Snapshot, frozen)
    ├─ id: UUID
    ├─ original_url: str
    ├─ slug: str
    ├─ expiration_date: datetime | None
    ├─ utm_params: dict[str, str] | None
    ├─ click_count: int
    ├─ expired_access_count: int
    ├─ created_at: datetime
    └─ updated_at: datetime

    ClickEvent (Snapshot, frozen)
    ├─ id: UUID
    ├─ url_id: UUID
    ├─ referrer: str | None
    ├─ user_agent: str | None
    └─ created_at: datetime

    URLResponse / AnalyticsResponse / HealthResponse (Output)

Key Behaviours
===============
- URL validation uses the validators library for RFC compliance.
- UTM fields are restricted to source, medium, campaign, term and content,
  each at most 100 characters of letters, digits, dots, hyphens, underscores.
- Naive datetimes are interpreted as UTC. SQLite drops tzinfo on read, so
  snapshots normalise every timestamp they receive.
- Snapshots are frozen: the cache can hand the same instance to many
  concurrent callers.

Classes:
    UtmParams:  Caller-supplied UTM configuration.
    URLCreate:  Input schema for URL shortening requests.
    UrlRecord:  Immutable snapshot of a stored URL.
    ClickEvent:  Immutable snapshot of a stored click.
    URLResponse:  Output schema for created URLs.
    ClickLogResponse:  Output schema for one click in an analytics report.
    AnalyticsResponse:  Output schema for analytics.
    HealthResponse:  Output schema for health checks.
"""

import datetime
import re
import uuid

import validators
from pydantic import BaseModel, ConfigDict, Field, field_validator

from shortlink.enums import HealthStatus

__all__ = [
    "AnalyticsResponse",
    "ClickEvent",
    "ClickLogResponse",
    "HealthResponse",
    "URLCreate",
    "URLResponse",
    "UrlRecord",
    "UtmParams",
]

SLUG_CHARSET = re.compile(r"^[0-9a-zA-Z]+$")
UTM_VALUE_PATTERN = r"^[a-zA-Z0-9._-]+$"


def _as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=datetime.UTC)
    return value


class UtmParams(BaseModel):
    source: str | None = Field(default=None, max_length=100, pattern=UTM_VALUE_PATTERN)
    medium: str | None = Field(default=None, max_length=100, pattern=UTM_VALUE_PATTERN)
    campaign: str | None = Field(default=None, max_length=100, pattern=UTM_VALUE_PATTERN)
    term: str | None = Field(default=None, max_length=100, pattern=UTM_VALUE_PATTERN)
    content: str | None = Field(default=None, max_length=100, pattern=UTM_VALUE_PATTERN)

    model_config = ConfigDict(extra="forbid")

    def as_dict(self) -> dict[str, str]:
        return self.model_dump(exclude_none=True)


class URLCreate(BaseModel):
    original_url: str
    slug: str | None = None
    expiration_date: datetime.datetime | None = None
    utm_params: UtmParams | None = None

    @field_validator("original_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not validators.url(v):
            raise ValueError("original_url must be a valid URL")
        return v

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str | None) -> str | None:
        if v is not None and not SLUG_CHARSET.match(v):
            raise ValueError("slug must be alphanumeric")
        return v

    @field_validator("expiration_date")
    @classmethod
    def validate_expiration_date(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return _as_utc(v)


class UrlRecord(BaseModel):
    """Snapshot of a stored URL, shared by the store, cache and services."""

    id: uuid.UUID
    original_url: str
    slug: str
    expiration_date: datetime.datetime | None = None
    utm_params: dict[str, str] | None = None
    click_count: int = 0
    expired_access_count: int = 0
    created_at: datetime.datetime
    updated_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("expiration_date", "created_at", "updated_at")
    @classmethod
    def ensure_aware(cls, v: datetime.datetime | None) -> datetime.datetime | None:
        return _as_utc(v)

    def is_expired(self, now: datetime.datetime) -> bool:
        # Equal to the expiration instant is still valid.
        return self.expiration_date is not None and now > self.expiration_date


class ClickEvent(BaseModel):
    """Snapshot of one resolution attempt, valid or expired."""

    id: uuid.UUID
    url_id: uuid.UUID
    referrer: str | None = None
    user_agent: str | None = None
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True, frozen=True)

    @field_validator("created_at")
    @classmethod
    def ensure_aware(cls, v: datetime.datetime) -> datetime.datetime:
        return _as_utc(v)


class URLResponse(BaseModel):
    id: uuid.UUID
    original_url: str
    short_url: str
    slug: str
    expiration_date: datetime.datetime | None
    utm_params: dict[str, str] | None
    click_count: int
    created_at: datetime.datetime


class ClickLogResponse(BaseModel):
    id: uuid.UUID
    referrer: str | None
    user_agent: str | None
    created_at: datetime.datetime

    model_config = {"from_attributes": True}


class AnalyticsResponse(BaseModel):
    url: UrlRecord
    clicks: list[ClickLogResponse]
    is_expired: bool


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
