"""
viaguild.services.instance_service — Badge instance lifecycle
===============================================================

Reads, listings and revocation of awarded badges, plus the API
serialiser that attaches resolved display properties.

Revoked instances are never deleted: they drop out of received listings
and badge cases but stay visible to their giver.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session, selectinload

from viaguild.constants import DEFAULT_BORDER_WIDTH
from viaguild.database.models import (
    BadgeAwardStatus,
    BadgeInstance,
    BadgeTemplate,
    EntityType,
    User,
)
from viaguild.engine.display import resolve_display_props
from viaguild.engine.visual_config import SystemIconConfig, parse_config
from viaguild.errors import AlreadyRevokedError, ForbiddenError, NotFoundError
from viaguild.services.system_icon_service import get_icon_svg
from viaguild.services.user_directory import (
    find_user_by_username,
    get_users_by_ids,
    user_summary,
)

logger = logging.getLogger(__name__)


def instance_load_options() -> tuple:
    """Eager-load everything display resolution touches."""
    return (
        selectinload(BadgeInstance.template).selectinload(BadgeTemplate.metadata_fields),
        selectinload(BadgeInstance.metadata_values),
        selectinload(BadgeInstance.case_item),
    )


def load_instance(session: Session, instance_id: str) -> BadgeInstance:
    instance = session.scalar(
        select(BadgeInstance)
        .options(*instance_load_options())
        .where(BadgeInstance.id == instance_id)
        .execution_options(populate_existing=True)
    )
    if instance is None:
        raise NotFoundError("Badge not found")
    return instance


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_instance(engine: Engine, instance_id: str) -> BadgeInstance:
    with Session(engine, expire_on_commit=False) as session:
        instance = load_instance(session, instance_id)
        session.expunge_all()
        return instance


def list_received(engine: Engine, username: str) -> list[BadgeInstance]:
    """Non-revoked, accepted badges received by *username*, newest first."""
    with Session(engine, expire_on_commit=False) as session:
        user = find_user_by_username(session, username)
        if user is None:
            raise NotFoundError("User not found")
        instances = session.scalars(
            select(BadgeInstance)
            .options(*instance_load_options())
            .where(
                BadgeInstance.receiver_type == EntityType.USER.value,
                BadgeInstance.receiver_id == user.id,
                BadgeInstance.revoked_at.is_(None),
                BadgeInstance.award_status == BadgeAwardStatus.ACCEPTED.value,
            )
            .order_by(BadgeInstance.assigned_at.desc())
        ).all()
        session.expunge_all()
        return list(instances)


def list_given(
    engine: Engine,
    giver_id: str,
    *,
    status: str | None = None,
    template_id: str | None = None,
    receiver_username: str | None = None,
) -> list[BadgeInstance]:
    """Badges given by user *giver_id*, newest first, revoked ones included."""
    with Session(engine, expire_on_commit=False) as session:
        stmt = (
            select(BadgeInstance)
            .options(*instance_load_options())
            .where(
                BadgeInstance.giver_type == EntityType.USER.value,
                BadgeInstance.giver_id == giver_id,
            )
        )
        if status is not None:
            stmt = stmt.where(BadgeInstance.award_status == status)
        if template_id is not None:
            stmt = stmt.where(BadgeInstance.template_id == template_id)
        if receiver_username is not None:
            receiver = find_user_by_username(session, receiver_username)
            if receiver is None:
                return []
            stmt = stmt.where(
                BadgeInstance.receiver_type == EntityType.USER.value,
                BadgeInstance.receiver_id == receiver.id,
            )

        instances = session.scalars(stmt.order_by(BadgeInstance.assigned_at.desc())).all()
        session.expunge_all()
        return list(instances)


# ---------------------------------------------------------------------------
# Revocation
# ---------------------------------------------------------------------------
def revoke(engine: Engine, instance_id: str, actor_id: str) -> BadgeInstance:
    """Soft-delete a received badge.  Only its receiving user may revoke it.

    Raises
    ------
    NotFoundError
        No such instance.
    ForbiddenError
        *actor_id* isn't the receiving user.
    AlreadyRevokedError
        The instance was already revoked.
    """
    with Session(engine, expire_on_commit=False) as session:
        instance = load_instance(session, instance_id)
        if not (instance.receiver_type == EntityType.USER
                and instance.receiver_id == actor_id):
            raise ForbiddenError("Cannot delete another user's badge")
        if instance.revoked_at is not None:
            raise AlreadyRevokedError("Badge has already been revoked")

        instance.revoked_at = datetime.now(UTC)
        instance.api_visible = False
        if instance.case_item is not None:
            session.delete(instance.case_item)
        session.commit()

        instance = load_instance(session, instance_id)
        session.expunge_all()

    logger.info("Badge %s revoked by receiver %s", instance_id, actor_id)
    return instance


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_instance(
    session: Session,
    instance: BadgeInstance,
    *,
    users: dict[str, User] | None = None,
    border_width: int = DEFAULT_BORDER_WIDTH,
) -> dict[str, Any]:
    """API shape of *instance* with ``display_props`` resolved.

    ``users`` (id → User) adds giver/receiver display info for USER ends.
    A ``system-icon`` foreground gets its SVG inlined as
    ``display_props.foreground_svg_content``.
    """
    users = users or {}
    props = resolve_display_props(instance, border_width=border_width).to_dict()

    foreground = parse_config(props["foreground_config"])
    if isinstance(foreground, SystemIconConfig):
        props["foreground_svg_content"] = get_icon_svg(session, foreground.value)

    template = instance.template
    result: dict[str, Any] = {
        "id": instance.id,
        "template_id": instance.template_id,
        "template_slug": template.template_slug,
        "giver_type": instance.giver_type,
        "giver_id": instance.giver_id,
        "receiver_type": instance.receiver_type,
        "receiver_id": instance.receiver_id,
        "message": instance.message,
        "award_status": instance.award_status,
        "api_visible": instance.api_visible,
        "assigned_at": _iso(instance.assigned_at),
        "revoked_at": _iso(instance.revoked_at),
        "is_in_case": instance.case_item is not None and instance.revoked_at is None,
        "metadata_values": {mv.data_key: mv.data_value for mv in instance.metadata_values},
        "display_props": props,
    }
    if instance.giver_type == EntityType.USER and instance.giver_id in users:
        result["giver"] = user_summary(users[instance.giver_id])
    if instance.receiver_type == EntityType.USER and instance.receiver_id in users:
        result["receiver"] = user_summary(users[instance.receiver_id])
    return result


def serialize_instances(
    engine: Engine,
    instances: list[BadgeInstance],
    *,
    border_width: int = DEFAULT_BORDER_WIDTH,
) -> list[dict[str, Any]]:
    """Serialise a listing, batch-loading the users on either end."""
    user_ids = {
        i.giver_id for i in instances if i.giver_type == EntityType.USER
    } | {
        i.receiver_id for i in instances if i.receiver_type == EntityType.USER
    }
    with Session(engine) as session:
        users = get_users_by_ids(session, user_ids)
        return [
            serialize_instance(session, i, users=users, border_width=border_width)
            for i in instances
        ]
