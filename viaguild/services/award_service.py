"""
viaguild.services.award_service — Allocations and badge awards
================================================================

Tiered templates are scarce: each user holds a per-tier allocation
(lazily created with the configured defaults) and every award from a
tiered template consumes one.

``give_badge`` runs its checks first (template, ownership, recipient,
allocation, overrides) and then writes, in one transaction:

  1. the ``BadgeInstance`` with overrides and metadata values,
  2. the allocation decrement (tiered templates only),
  3. the recipient's notification.

The decrement is a single conditional ``UPDATE … WHERE remaining > 0``;
if it touches no row the whole transaction rolls back, so two concurrent
awards can never push an allocation below zero.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from viaguild.constants import DEFAULT_ALLOCATIONS
from viaguild.database.models import (
    BadgeAwardStatus,
    BadgeInstance,
    BadgeShape,
    BadgeTemplate,
    BadgeTier,
    EntityType,
    MetadataValue,
    NotificationType,
    User,
    UserBadgeAllocation,
)
from viaguild.engine.legacy import sync_visual_fields
from viaguild.errors import (
    BadgeError,
    ForbiddenError,
    InsufficientAllocationError,
    NotFoundError,
    ValidationError,
)
from viaguild.services.instance_service import load_instance
from viaguild.services.notification_service import create_notification
from viaguild.services.user_directory import find_user_by_username

logger = logging.getLogger(__name__)

# Instance columns a giver may set when awarding
CUSTOMIZABLE_FIELDS: frozenset[str] = frozenset(
    c.key for c in BadgeInstance.__table__.columns if c.key.startswith("override_")
) | {"measure_value", "message"}


@dataclass
class BulkAwardResult:
    """Per-recipient outcome of :func:`give_badges_bulk`."""
    successful: list[BadgeInstance] = field(default_factory=list)
    failed: list[dict[str, str]] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Allocations
# ---------------------------------------------------------------------------
def _ensure_allocations(
    session: Session, user_id: str, defaults: Mapping[str, int] | None = None
) -> dict[str, UserBadgeAllocation]:
    """Return the user's allocation rows by tier, creating missing ones.

    Commits the session when rows were created.
    """
    defaults = defaults or DEFAULT_ALLOCATIONS
    existing = {
        a.tier: a for a in session.scalars(
            select(UserBadgeAllocation).where(UserBadgeAllocation.user_id == user_id)
        ).all()
    }
    missing = [tier for tier in BadgeTier if tier.value not in existing]
    if not missing:
        return existing

    for tier in missing:
        session.add(UserBadgeAllocation(
            user_id=user_id,
            tier=tier.value,
            remaining=defaults.get(tier.value, DEFAULT_ALLOCATIONS[tier.value]),
            last_replenished_at=datetime.now(UTC),
        ))
    try:
        session.commit()
    except IntegrityError:
        # A concurrent request created them first.
        session.rollback()

    return {
        a.tier: a for a in session.scalars(
            select(UserBadgeAllocation)
            .where(UserBadgeAllocation.user_id == user_id)
            .execution_options(populate_existing=True)
        ).all()
    }


def get_allocations(
    engine: Engine, user_id: str, defaults: Mapping[str, int] | None = None
) -> list[UserBadgeAllocation]:
    """The user's allocations in tier order (GOLD, SILVER, BRONZE)."""
    with Session(engine, expire_on_commit=False) as session:
        allocations = _ensure_allocations(session, user_id, defaults)
        session.expunge_all()
        return [allocations[tier.value] for tier in BadgeTier]


def set_allocation(engine: Engine, user_id: str, tier: str, remaining: int) -> UserBadgeAllocation:
    """Seed or replenish one tier of a user's allocation."""
    if tier not in BadgeTier.__members__:
        raise ValidationError(f"Unknown tier: {tier!r}")
    if remaining < 0:
        raise ValidationError("Allocation cannot be negative")

    with Session(engine, expire_on_commit=False) as session:
        allocation = _ensure_allocations(session, user_id)[tier]
        allocation.remaining = remaining
        allocation.last_replenished_at = datetime.now(UTC)
        session.commit()
        session.expunge(allocation)

    logger.info("Allocation for %s set: %s=%d", user_id, tier, remaining)
    return allocation


def allocation_to_dict(allocation: UserBadgeAllocation) -> dict[str, Any]:
    return {
        "tier": allocation.tier,
        "remaining": allocation.remaining,
        "last_replenished_at": (
            allocation.last_replenished_at.isoformat()
            if allocation.last_replenished_at else None
        ),
    }


# ---------------------------------------------------------------------------
# Award
# ---------------------------------------------------------------------------
def _prepare_overrides(customizations: Mapping[str, Any]) -> dict[str, Any]:
    overrides = {k: v for k, v in customizations.items()
                 if k in CUSTOMIZABLE_FIELDS and v is not None}
    shape = overrides.get("override_outer_shape")
    if shape is not None and shape not in BadgeShape.__members__:
        raise ValidationError(f"Unknown shape: {shape!r}")
    return sync_visual_fields(overrides, "override_")


def _prepare_metadata(template: BadgeTemplate, raw: Any) -> list[MetadataValue]:
    if not raw:
        return []
    if isinstance(raw, Mapping):
        pairs = list(raw.items())
    else:
        pairs = [(item["data_key"], item.get("data_value")) for item in raw]

    known = {f.field_key for f in template.metadata_fields}
    rows = []
    for key, value in pairs:
        if key not in known:
            raise ValidationError(f"Unknown metadata field: {key!r}")
        if value is None:
            continue
        rows.append(MetadataValue(data_key=key, data_value=str(value)))
    return rows


def give_badge(
    engine: Engine,
    giver_id: str,
    template_id: str,
    recipient_username: str,
    customizations: Mapping[str, Any] | None = None,
    *,
    defaults: Mapping[str, int] | None = None,
) -> BadgeInstance:
    """Award a badge from *template_id* to *recipient_username*.

    ``customizations`` may hold any ``override_*`` field, ``measure_value``,
    ``message`` and ``metadata_values`` (a ``{key: value}`` mapping or a
    list of ``{data_key, data_value}``).

    Raises
    ------
    NotFoundError
        Unknown template or recipient.
    ForbiddenError
        *giver_id* doesn't own the template.
    InsufficientAllocationError
        No allocation left for the template's tier.
    ValidationError
        Invalid override config, shape or metadata key.
    """
    customizations = customizations or {}

    with Session(engine, expire_on_commit=False) as session:
        template = session.scalar(
            select(BadgeTemplate)
            .options(selectinload(BadgeTemplate.metadata_fields))
            .where(BadgeTemplate.id == template_id)
        )
        if template is None:
            raise NotFoundError("Badge template not found")
        if not (template.owner_type == EntityType.USER and template.owner_id == giver_id):
            raise ForbiddenError("Only the template owner can award this badge")

        recipient = find_user_by_username(session, recipient_username)
        if recipient is None:
            raise NotFoundError("Recipient user not found")

        tier = template.inherent_tier
        if tier is not None:
            allocation = _ensure_allocations(session, giver_id, defaults).get(tier)
            if allocation is None or allocation.remaining <= 0:
                raise InsufficientAllocationError("Insufficient allocations")

        overrides = _prepare_overrides(customizations)
        metadata_rows = _prepare_metadata(template, customizations.get("metadata_values"))

        # Transaction: instance → decrement → notification
        instance = BadgeInstance(
            template_id=template.id,
            giver_type=EntityType.USER.value,
            giver_id=giver_id,
            receiver_type=EntityType.USER.value,
            receiver_id=recipient.id,
            award_status=BadgeAwardStatus.ACCEPTED.value,
            api_visible=False,
            **overrides,
        )
        instance.metadata_values = metadata_rows
        session.add(instance)
        session.flush()

        if tier is not None:
            result = session.execute(
                update(UserBadgeAllocation)
                .where(
                    UserBadgeAllocation.user_id == giver_id,
                    UserBadgeAllocation.tier == tier,
                    UserBadgeAllocation.remaining > 0,
                )
                .values(remaining=UserBadgeAllocation.remaining - 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                session.rollback()
                raise InsufficientAllocationError("Insufficient allocations")

        giver = session.get(User, giver_id)
        giver_name = giver.username if giver is not None else "Someone"
        badge_name = overrides.get("override_badge_name") or template.default_badge_name
        create_notification(
            session,
            user_id=recipient.id,
            type=NotificationType.BADGE_RECEIVED,
            title="You received a badge!",
            content=f'{giver_name} gave you the "{badge_name}" badge',
            link_url=f"/users/{recipient.username}/badges",
            source_id=instance.id,
            source_type="BADGE_INSTANCE",
            actor_id=giver_id,
        )
        session.commit()

        instance_id = instance.id
        instance = load_instance(session, instance_id)
        session.expunge_all()

    logger.info(
        "Badge given: template=%s giver=%s recipient=%s instance=%s",
        template_id, giver_id, recipient_username, instance_id,
    )
    return instance


def give_badges_bulk(
    engine: Engine,
    giver_id: str,
    template_id: str,
    recipients: list[str],
    customizations: Mapping[str, Any] | None = None,
    *,
    defaults: Mapping[str, int] | None = None,
) -> BulkAwardResult:
    """Award to each recipient independently; failures don't stop the batch."""
    result = BulkAwardResult()
    for username in recipients:
        try:
            instance = give_badge(
                engine, giver_id, template_id, username, customizations, defaults=defaults,
            )
        except BadgeError as exc:
            logger.warning("Bulk award to %s rejected: %s", username, exc.message)
            result.failed.append({"username": username, "error": exc.message})
            continue
        result.successful.append(instance)
    return result
