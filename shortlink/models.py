"""SQLAlchemy ORM models for the durable store.

This module defines the database schema using SQLAlchemy declarative models
with proper indexing and timestamp management for URL records and click events.

Data Model Layout
=================
::
    urls table
    ├─ id (UUID PRIMARY KEY)
    ├─ original_url (TEXT NOT NULL, UTM params stripped)
    ├─ slug (VARCHAR(32) UNIQUE, INDEXED)
    ├─ expiration_date (TIMESTAMPTZ NULL)
    ├─ utm_params (JSONB NULL)
    ├─ click_count (INTEGER DEFAULT 0)
    ├─ expired_access_count (INTEGER DEFAULT 0)
    ├─ created_at (TIMESTAMPTZ, DEFAULT NOW())
    └─ updated_at (TIMESTAMPTZ, DEFAULT NOW(), ON UPDATE)

    clicks table
    ├─ id (UUID PRIMARY KEY)
    ├─ url_id (UUID FK -> urls.id ON DELETE CASCADE, INDEXED)
    ├─ referrer (TEXT NULL)
    ├─ user_agent (TEXT NULL)
    └─ created_at (TIMESTAMPTZ, DEFAULT NOW(), INDEXED)

How to Use
===========
**Step 1 — Import**::
    from shortlink.models import URL, Click

**Step 2 — Query by slug**::
    result = await session.execute(select(URL).where(URL.slug == "abc12345"))
    url = result.scalar_one_or_none()

**Step 3 — Atomic counter update**::
    await session.execute(
        update(URL).where(URL.id == url_id).values(click_count=URL.click_count + 1)
    )

Key Behaviours
===============
- slug carries a unique index: the store, not the application, closes the
  race between "check uniqueness" and "insert".
- Counters are only ever changed with in-database increments.
- Click rows are append-only and removed only by cascade.

Classes:
    URL:  A shortened link with expiration, UTM configuration and counters.
    Click:  One resolution attempt against a URL.
"""

import datetime
import uuid

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from shortlink.database import Base

__all__ = ["URL", "Click"]


class URL(Base):
    __tablename__ = "urls"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    original_url: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    expiration_date: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    utm_params: Mapped[dict[str, str] | None] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), nullable=True
    )
    click_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    expired_access_count: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<URL(id={self.id}, slug='{self.slug}', clicks={self.click_count})>"


class Click(Base):
    __tablename__ = "clicks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    url_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("urls.id", ondelete="CASCADE"), index=True, nullable=False
    )
    referrer: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Click(id={self.id}, url_id={self.url_id})>"
