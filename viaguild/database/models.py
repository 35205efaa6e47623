"""
viaguild.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- users                      — User directory (case-insensitive usernames)
- badge_templates            — Reusable badge definitions with visual defaults
- metadata_field_definitions — Ordered instance-level data slots per template
- badge_instances            — Awarded badges with per-field overrides
- metadata_values            — (data_key, data_value) rows per instance
- user_badge_allocations     — Tiered award scarcity ledger
- user_badge_cases           — One curated display case per user
- user_badge_items           — Instances placed in a case, ordered
- notifications              — Recipient notifications (badge received)
- uploaded_assets            — Temporary and permanent hosted uploads
- system_icons               — Named SVG icons usable as badge foregrounds

Visual config columns (``*_config``) hold the tagged-union JSON documented
in :mod:`viaguild.engine.visual_config`.  The scalar ``*_color`` /
``*_type`` / ``*_value`` columns are legacy mirrors kept in sync by
:mod:`viaguild.engine.legacy`.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _uuid() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ViaGuild ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class EntityType(enum.StrEnum):
    """Either end of an award, and template owners."""
    USER = "USER"
    GUILD = "GUILD"


class BadgeTier(enum.StrEnum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    BRONZE = "BRONZE"


class BadgeShape(enum.StrEnum):
    CIRCLE = "CIRCLE"
    SQUARE = "SQUARE"
    STAR = "STAR"
    HEXAGON = "HEXAGON"
    HEART = "HEART"


class BackgroundContentType(enum.StrEnum):
    SOLID_COLOR = "SOLID_COLOR"
    HOSTED_IMAGE = "HOSTED_IMAGE"


class ForegroundContentType(enum.StrEnum):
    TEXT = "TEXT"
    SYSTEM_ICON = "SYSTEM_ICON"
    UPLOADED_ICON = "UPLOADED_ICON"


class BadgeAwardStatus(enum.StrEnum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    DECLINED = "DECLINED"


class NotificationType(enum.StrEnum):
    BADGE_RECEIVED = "BADGE_RECEIVED"


class AssetStatus(enum.StrEnum):
    TEMP = "TEMP"
    PERMANENT = "PERMANENT"


# ---------------------------------------------------------------------------
# Users — case-insensitive user directory
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    username_ci: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    avatar_url: Mapped[str | None] = mapped_column(String(500), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    allocations: Mapped[list[UserBadgeAllocation]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )
    badge_case: Mapped[UserBadgeCase | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username!r}>"


# ---------------------------------------------------------------------------
# BadgeTemplate — reusable badge definitions
# ---------------------------------------------------------------------------
class BadgeTemplate(Base):
    __tablename__ = "badge_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    template_slug: Mapped[str] = mapped_column(String(100), nullable=False)
    template_slug_ci: Mapped[str] = mapped_column(String(100), nullable=False)
    owner_type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=EntityType.USER.value
    )
    owner_id: Mapped[str] = mapped_column(String(36), nullable=False)
    authored_by_user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Content defaults
    default_badge_name: Mapped[str] = mapped_column(String(100), nullable=False)
    default_subtitle_text: Mapped[str | None] = mapped_column(String(200), default=None)
    default_display_description: Mapped[str | None] = mapped_column(Text, default=None)
    default_outer_shape: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BadgeShape.CIRCLE.value
    )
    default_text_font: Mapped[str | None] = mapped_column(String(100), default=None)
    default_text_size: Mapped[int | None] = mapped_column(Integer, default=None)

    # Visual config slots
    default_border_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    default_background_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    default_foreground_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    # Legacy scalar mirrors
    default_border_color: Mapped[str | None] = mapped_column(String(20), default=None)
    default_background_type: Mapped[str | None] = mapped_column(String(20), default=None)
    default_background_value: Mapped[str | None] = mapped_column(Text, default=None)
    default_foreground_type: Mapped[str | None] = mapped_column(String(20), default=None)
    default_foreground_value: Mapped[str | None] = mapped_column(Text, default=None)
    default_foreground_color: Mapped[str | None] = mapped_column(String(20), default=None)

    # Tier & measure semantics
    inherent_tier: Mapped[str | None] = mapped_column(String(10), default=None)
    defines_measure: Mapped[bool] = mapped_column(Boolean, default=False)
    measure_label: Mapped[str | None] = mapped_column(String(100), default=None)
    measure_best: Mapped[float | None] = mapped_column(Float, default=None)
    measure_worst: Mapped[float | None] = mapped_column(Float, default=None)
    measure_notes: Mapped[str | None] = mapped_column(Text, default=None)
    measure_is_normalizable: Mapped[bool] = mapped_column(Boolean, default=False)
    higher_is_better: Mapped[bool | None] = mapped_column(Boolean, default=None)
    measure_best_label: Mapped[str | None] = mapped_column(String(100), default=None)
    measure_worst_label: Mapped[str | None] = mapped_column(String(100), default=None)

    # Policy
    is_modifiable_by_issuer: Mapped[bool] = mapped_column(Boolean, default=False)
    allows_pushed_instance_updates: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    metadata_fields: Mapped[list[MetadataFieldDefinition]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="MetadataFieldDefinition.display_order",
    )
    instances: Mapped[list[BadgeInstance]] = relationship(back_populates="template")

    __table_args__ = (
        UniqueConstraint(
            "template_slug_ci", "owner_type", "owner_id",
            name="uq_badge_templates_owner_slug",
        ),
        Index("ix_badge_templates_owner", "owner_type", "owner_id"),
    )

    def __repr__(self) -> str:
        return f"<BadgeTemplate id={self.id} slug={self.template_slug!r}>"


# ---------------------------------------------------------------------------
# MetadataFieldDefinition — instance-level data slots
# ---------------------------------------------------------------------------
class MetadataFieldDefinition(Base):
    __tablename__ = "metadata_field_definitions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    badge_template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("badge_templates.id", ondelete="CASCADE"), nullable=False
    )
    field_key: Mapped[str] = mapped_column(String(100), nullable=False)
    label: Mapped[str] = mapped_column(String(100), nullable=False)
    prefix: Mapped[str | None] = mapped_column(String(20), default=None)
    suffix: Mapped[str | None] = mapped_column(String(20), default=None)
    style: Mapped[str | None] = mapped_column(String(50), default=None)
    display_order: Mapped[int] = mapped_column(Integer, default=0)

    template: Mapped[BadgeTemplate] = relationship(back_populates="metadata_fields")

    __table_args__ = (
        UniqueConstraint("badge_template_id", "field_key", name="uq_metadata_fields_key"),
    )

    def __repr__(self) -> str:
        return f"<MetadataFieldDefinition key={self.field_key!r} order={self.display_order}>"


# ---------------------------------------------------------------------------
# BadgeInstance — one awarded badge
# ---------------------------------------------------------------------------
class BadgeInstance(Base):
    __tablename__ = "badge_instances"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("badge_templates.id", ondelete="RESTRICT"), nullable=False
    )
    giver_type: Mapped[str] = mapped_column(String(10), nullable=False)
    giver_id: Mapped[str] = mapped_column(String(36), nullable=False)
    receiver_type: Mapped[str] = mapped_column(String(10), nullable=False)
    receiver_id: Mapped[str] = mapped_column(String(36), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, default=None)

    award_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BadgeAwardStatus.ACCEPTED.value
    )
    api_visible: Mapped[bool] = mapped_column(Boolean, default=False)
    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    revoked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Content overrides — NULL means "inherit from template"
    override_badge_name: Mapped[str | None] = mapped_column(String(100), default=None)
    override_subtitle: Mapped[str | None] = mapped_column(String(200), default=None)
    override_display_description: Mapped[str | None] = mapped_column(Text, default=None)
    override_outer_shape: Mapped[str | None] = mapped_column(String(20), default=None)
    override_text_font: Mapped[str | None] = mapped_column(String(100), default=None)
    override_text_size: Mapped[int | None] = mapped_column(Integer, default=None)

    # Visual config overrides
    override_border_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    override_background_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    override_foreground_config: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    # Legacy scalar overrides
    override_border_color: Mapped[str | None] = mapped_column(String(20), default=None)
    override_background_type: Mapped[str | None] = mapped_column(String(20), default=None)
    override_background_value: Mapped[str | None] = mapped_column(Text, default=None)
    override_foreground_type: Mapped[str | None] = mapped_column(String(20), default=None)
    override_foreground_value: Mapped[str | None] = mapped_column(Text, default=None)
    override_foreground_color: Mapped[str | None] = mapped_column(String(20), default=None)

    # Measure
    measure_value: Mapped[float | None] = mapped_column(Float, default=None)
    override_measure_best: Mapped[float | None] = mapped_column(Float, default=None)
    override_measure_worst: Mapped[float | None] = mapped_column(Float, default=None)
    override_measure_is_normalizable: Mapped[bool | None] = mapped_column(
        Boolean, default=None
    )
    override_measure_best_label: Mapped[str | None] = mapped_column(String(100), default=None)
    override_measure_worst_label: Mapped[str | None] = mapped_column(String(100), default=None)

    template: Mapped[BadgeTemplate] = relationship(back_populates="instances")
    metadata_values: Mapped[list[MetadataValue]] = relationship(
        back_populates="instance", cascade="all, delete-orphan"
    )
    case_item: Mapped[UserBadgeItem | None] = relationship(
        back_populates="badge_instance", uselist=False
    )

    __table_args__ = (
        Index("ix_badge_instances_receiver", "receiver_type", "receiver_id", "assigned_at"),
        Index("ix_badge_instances_giver", "giver_type", "giver_id", "assigned_at"),
        Index("ix_badge_instances_template", "template_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<BadgeInstance id={self.id} template={self.template_id} "
            f"receiver={self.receiver_type}:{self.receiver_id}>"
        )


# ---------------------------------------------------------------------------
# MetadataValue — instance data matching template field definitions
# ---------------------------------------------------------------------------
class MetadataValue(Base):
    __tablename__ = "metadata_values"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    badge_instance_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("badge_instances.id", ondelete="CASCADE"), nullable=False
    )
    data_key: Mapped[str] = mapped_column(String(100), nullable=False)
    data_value: Mapped[str] = mapped_column(Text, nullable=False)

    instance: Mapped[BadgeInstance] = relationship(back_populates="metadata_values")

    __table_args__ = (
        UniqueConstraint("badge_instance_id", "data_key", name="uq_metadata_values_key"),
    )

    def __repr__(self) -> str:
        return f"<MetadataValue key={self.data_key!r}>"


# ---------------------------------------------------------------------------
# UserBadgeAllocation — tiered scarcity ledger
# ---------------------------------------------------------------------------
class UserBadgeAllocation(Base):
    __tablename__ = "user_badge_allocations"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    tier: Mapped[str] = mapped_column(String(10), primary_key=True)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_replenished_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="allocations")

    def __repr__(self) -> str:
        return f"<UserBadgeAllocation user={self.user_id} tier={self.tier} left={self.remaining}>"


# ---------------------------------------------------------------------------
# UserBadgeCase / UserBadgeItem — curated display collection
# ---------------------------------------------------------------------------
class UserBadgeCase(Base):
    __tablename__ = "user_badge_cases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="badge_case")
    items: Mapped[list[UserBadgeItem]] = relationship(
        back_populates="badge_case",
        cascade="all, delete-orphan",
        order_by="UserBadgeItem.display_order",
    )

    def __repr__(self) -> str:
        return f"<UserBadgeCase id={self.id} user={self.user_id} public={self.is_public}>"


class UserBadgeItem(Base):
    __tablename__ = "user_badge_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    badge_case_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("user_badge_cases.id", ondelete="CASCADE"), nullable=False
    )
    badge_instance_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("badge_instances.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    added_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    badge_case: Mapped[UserBadgeCase] = relationship(back_populates="items")
    badge_instance: Mapped[BadgeInstance] = relationship(back_populates="case_item")

    __table_args__ = (
        UniqueConstraint(
            "badge_case_id", "badge_instance_id", name="uq_badge_items_case_instance"
        ),
        Index("ix_badge_items_case_order", "badge_case_id", "display_order"),
    )

    def __repr__(self) -> str:
        return f"<UserBadgeItem instance={self.badge_instance_id} order={self.display_order}>"


# ---------------------------------------------------------------------------
# Notification — recipient-facing events
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, default=None)
    link_url: Mapped[str | None] = mapped_column(String(500), default=None)
    source_id: Mapped[str | None] = mapped_column(String(36), default=None)
    source_type: Mapped[str | None] = mapped_column(String(30), default=None)
    actor_id: Mapped[str | None] = mapped_column(String(36), default=None)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} type={self.type}>"


# ---------------------------------------------------------------------------
# UploadedAsset — temp uploads and their permanent successors
# ---------------------------------------------------------------------------
class UploadedAsset(Base):
    """An uploaded file tracked from temporary upload to permanent storage.

    Temporary assets expire after ``temp_asset_ttl_hours``; once a template
    references one it is moved to a permanent key and never expires.
    """
    __tablename__ = "uploaded_assets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    uploader_id: Mapped[str | None] = mapped_column(String(36), default=None)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str | None] = mapped_column(String(100), default=None)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    storage_key: Mapped[str] = mapped_column(String(500), nullable=False)
    hosted_url: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AssetStatus.TEMP.value
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_uploaded_assets_status_expiry", "status", "expires_at"),
    )

    def __repr__(self) -> str:
        return f"<UploadedAsset id={self.id} status={self.status}>"


# ---------------------------------------------------------------------------
# SystemIcon — named SVG foregrounds
# ---------------------------------------------------------------------------
class SystemIcon(Base):
    __tablename__ = "system_icons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    svg_content: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<SystemIcon name={self.name!r}>"
