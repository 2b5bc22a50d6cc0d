"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Video(Base):
    """
    ORM model for videos table.

    Price is stored in the processor's minor currency unit and is the only
    amount ever charged for the video.
    """

    __tablename__ = "videos"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    video_url: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)  # seconds
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    purchases: Mapped[list["Purchase"]] = relationship(
        back_populates="video", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (CheckConstraint("price >= 0", name="ck_video_price_non_negative"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Video(id={self.id}, title={self.title!r}, price={self.price})>"


class UserProfile(Base):
    """
    ORM model for profiles table.

    Mirror of the identity provider's users: email for webhook identity
    fallback and the admin flag for the access override.
    """

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    full_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (Index("uq_profiles_email_lower", text("lower(email)"), unique=True),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<UserProfile(id={self.id}, email={self.email}, is_admin={self.is_admin})>"


class Purchase(Base):
    """
    ORM model for purchases table.

    One row per initialize call; status moves pending -> success|failed once.
    """

    __tablename__ = "purchases"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False, index=True)
    video_id: Mapped[UUID] = mapped_column(
        PG_UUID(as_uuid=True),
        ForeignKey("videos.id", ondelete="CASCADE"),
        nullable=False,
    )
    amount_paid: Mapped[int] = mapped_column(BigInteger, nullable=False)
    processor_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    video: Mapped[Video] = relationship(back_populates="purchases")

    __table_args__ = (
        CheckConstraint("amount_paid > 0", name="ck_purchase_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'success', 'failed')", name="ck_purchase_status"
        ),
        UniqueConstraint("processor_reference", name="uq_purchases_processor_reference"),
        Index(
            "uq_purchases_user_video_success",
            "user_id",
            "video_id",
            unique=True,
            postgresql_where=text("status = 'success'"),
        ),
        Index("idx_purchases_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Purchase(id={self.id}, reference={self.processor_reference}, "
            f"status={self.status})>"
        )


class Subscription(Base):
    """
    ORM model for subscriptions table.

    Projection of the processor's subscription state, upserted per
    (user_id, plan_code) by webhook events.
    """

    __tablename__ = "subscriptions"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    processor_customer_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    processor_subscription_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    plan_code: Mapped[str] = mapped_column(String(100), nullable=False)
    current_period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    current_period_end: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_event_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'canceled', 'past_due')", name="ck_subscription_status"
        ),
        UniqueConstraint("user_id", "plan_code", name="uq_subscriptions_user_plan"),
        Index("idx_subscriptions_user_status", "user_id", "status"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<Subscription(id={self.id}, user_id={self.user_id}, "
            f"plan_code={self.plan_code}, status={self.status})>"
        )


class WebhookEventLog(Base):
    """
    ORM model for webhook_events table.

    Audit trail of every signature-verified webhook and its reconciliation outcome.
    """

    __tablename__ = "webhook_events"

    id: Mapped[UUID] = mapped_column(PG_UUID(as_uuid=True), primary_key=True, default=uuid4)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    outcome: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    received_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    __table_args__ = (
        Index("idx_webhook_events_reference", "reference", postgresql_where=text("reference IS NOT NULL")),
        Index("idx_webhook_events_received_at", "received_at"),
    )
