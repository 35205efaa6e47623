"""
viaguild.services.badge_case_service — Curated badge cases
============================================================

Each user owns one badge case: an ordered, visibility-gated selection of
the badges they received.  The case is created lazily on first access
(there is no separate "initialise" step).

Only the owning user may change their case.  Adding an instance makes it
``api_visible``; removing it hides it again.  Reordering applies every
position change in a single transaction and rejects requests that would
leave two items sharing a display order.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from viaguild.constants import BADGE_CASE_TITLE, DEFAULT_BORDER_WIDTH
from viaguild.database.models import (
    BadgeAwardStatus,
    BadgeInstance,
    BadgeTemplate,
    EntityType,
    User,
    UserBadgeCase,
    UserBadgeItem,
)
from viaguild.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from viaguild.services.instance_service import serialize_instance
from viaguild.services.user_directory import find_user_by_username, get_users_by_ids

logger = logging.getLogger(__name__)


def _case_load_options() -> tuple:
    items = UserBadgeCase.items
    instance = UserBadgeItem.badge_instance
    return (
        selectinload(items).selectinload(instance)
        .selectinload(BadgeInstance.template).selectinload(BadgeTemplate.metadata_fields),
        selectinload(items).selectinload(instance)
        .selectinload(BadgeInstance.metadata_values),
        selectinload(items).selectinload(instance)
        .selectinload(BadgeInstance.case_item),
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _get_user(session: Session, username: str) -> User:
    user = find_user_by_username(session, username)
    if user is None:
        raise NotFoundError("User not found")
    return user


def _check_owner(user: User, actor_id: str) -> None:
    if user.id != actor_id:
        raise ForbiddenError("Cannot modify another user's badge case")


def _find_case(session: Session, user_id: str) -> UserBadgeCase | None:
    return session.scalar(select(UserBadgeCase).where(UserBadgeCase.user_id == user_id))


def _ensure_case(session: Session, user: User, is_public: bool = True) -> UserBadgeCase:
    """Return the user's case, creating (and committing) it if missing."""
    case = _find_case(session, user.id)
    if case is not None:
        return case

    session.add(UserBadgeCase(
        user_id=user.id,
        title=BADGE_CASE_TITLE.format(username=user.username),
        is_public=is_public,
    ))
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
    return _find_case(session, user.id)


def _load_case(session: Session, case_id: str) -> UserBadgeCase:
    case = session.scalar(
        select(UserBadgeCase)
        .options(*_case_load_options())
        .where(UserBadgeCase.id == case_id)
        .execution_options(populate_existing=True)
    )
    session.expunge_all()
    return case


def _parse_reorder(entries: Any) -> dict[str, int]:
    if not isinstance(entries, list):
        raise ValidationError("Invalid request body. Expected an array of badges.")
    orders: dict[str, int] = {}
    for entry in entries:
        if not isinstance(entry, Mapping):
            raise ValidationError("Invalid request body. Expected an array of badges.")
        instance_id = entry.get("badge_instance_id")
        display_order = entry.get("display_order")
        if not instance_id or isinstance(display_order, bool) or not isinstance(display_order, int):
            raise ValidationError("Each badge needs a badge_instance_id and integer display_order")
        if instance_id in orders:
            raise ValidationError(f"Badge {instance_id} appears more than once")
        orders[instance_id] = display_order
    return orders


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def get_or_create_case(engine: Engine, username: str) -> UserBadgeCase:
    """The user's case regardless of visibility (owner read path)."""
    with Session(engine, expire_on_commit=False) as session:
        case = _ensure_case(session, _get_user(session, username))
        return _load_case(session, case.id)


def get_public_case(engine: Engine, username: str) -> UserBadgeCase:
    case = get_or_create_case(engine, username)
    if not case.is_public:
        raise ForbiddenError("Badge case is private")
    return case


def add_to_case(engine: Engine, username: str, instance_id: str, actor_id: str) -> UserBadgeCase:
    """Append a received badge to the end of the case.

    Raises
    ------
    ForbiddenError
        *actor_id* doesn't own the case.
    NotFoundError
        Unknown user, or the badge isn't an accepted, unrevoked badge
        received by that user.
    ConflictError
        The badge is already in the case.
    """
    with Session(engine, expire_on_commit=False) as session:
        user = _get_user(session, username)
        _check_owner(user, actor_id)

        instance = session.scalar(
            select(BadgeInstance).where(
                BadgeInstance.id == instance_id,
                BadgeInstance.receiver_type == EntityType.USER.value,
                BadgeInstance.receiver_id == user.id,
                BadgeInstance.revoked_at.is_(None),
                BadgeInstance.award_status == BadgeAwardStatus.ACCEPTED.value,
            )
        )
        if instance is None:
            raise NotFoundError("Badge not found or not owned by user")

        case = _ensure_case(session, user)
        already = session.scalar(
            select(UserBadgeItem.id).where(UserBadgeItem.badge_instance_id == instance_id)
        )
        if already is not None:
            raise ConflictError("Badge is already in the case")

        max_order = session.scalar(
            select(func.max(UserBadgeItem.display_order))
            .where(UserBadgeItem.badge_case_id == case.id)
        )
        session.add(UserBadgeItem(
            badge_case_id=case.id,
            badge_instance_id=instance_id,
            display_order=(max_order or 0) + 1,
        ))
        instance.api_visible = True
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise ConflictError("Badge is already in the case") from exc

        logger.info("Badge %s added to %s's case", instance_id, user.username)
        return _load_case(session, case.id)


def remove_from_case(engine: Engine, username: str, instance_id: str, actor_id: str) -> UserBadgeCase:
    with Session(engine, expire_on_commit=False) as session:
        user = _get_user(session, username)
        _check_owner(user, actor_id)

        case = _find_case(session, user.id)
        if case is None:
            raise NotFoundError("Badge case not found")
        item = session.scalar(
            select(UserBadgeItem).where(
                UserBadgeItem.badge_case_id == case.id,
                UserBadgeItem.badge_instance_id == instance_id,
            )
        )
        if item is None:
            raise NotFoundError("Badge not found in case")

        instance = session.get(BadgeInstance, instance_id)
        if instance is not None:
            instance.api_visible = False
        session.delete(item)
        session.commit()

        logger.info("Badge %s removed from %s's case", instance_id, user.username)
        return _load_case(session, case.id)


def reorder(
    engine: Engine, username: str, entries: list[Mapping[str, Any]], actor_id: str
) -> UserBadgeCase:
    """Set new display orders for case items, all or nothing.

    *entries* is a list of ``{badge_instance_id, display_order}``.  Items
    not mentioned keep their order; the resulting orders must be unique.
    """
    with Session(engine, expire_on_commit=False) as session:
        user = _get_user(session, username)
        _check_owner(user, actor_id)
        new_orders = _parse_reorder(entries)

        case = _find_case(session, user.id)
        if case is None:
            raise NotFoundError("Badge case not found")

        items = {
            item.badge_instance_id: item for item in session.scalars(
                select(UserBadgeItem).where(UserBadgeItem.badge_case_id == case.id)
            ).all()
        }
        for instance_id in new_orders:
            if instance_id not in items:
                raise NotFoundError("Badge not found in case")

        resulting = {
            instance_id: new_orders.get(instance_id, item.display_order)
            for instance_id, item in items.items()
        }
        if len(set(resulting.values())) != len(resulting):
            raise ValidationError("Display orders must be unique within a case")

        for instance_id, display_order in new_orders.items():
            items[instance_id].display_order = display_order
        session.commit()

        logger.info("Badge case of %s reordered (%d items)", user.username, len(new_orders))
        return _load_case(session, case.id)


def set_visibility(engine: Engine, username: str, is_public: bool, actor_id: str) -> UserBadgeCase:
    with Session(engine, expire_on_commit=False) as session:
        user = _get_user(session, username)
        _check_owner(user, actor_id)

        case = _ensure_case(session, user, is_public=is_public)
        case.is_public = is_public
        session.commit()
        return _load_case(session, case.id)


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------
def serialize_case(
    engine: Engine, case: UserBadgeCase, *, border_width: int = DEFAULT_BORDER_WIDTH
) -> dict[str, Any]:
    items = sorted(
        (i for i in case.items if i.badge_instance.revoked_at is None),
        key=lambda i: i.display_order,
    )
    user_ids = {i.badge_instance.giver_id for i in items
                if i.badge_instance.giver_type == EntityType.USER}
    with Session(engine) as session:
        users = get_users_by_ids(session, user_ids)
        badges = []
        for item in items:
            entry = serialize_instance(
                session, item.badge_instance, users=users, border_width=border_width,
            )
            entry["item_id"] = item.id
            entry["display_order"] = item.display_order
            entry["added_at"] = (
                item.added_at.isoformat() if isinstance(item.added_at, datetime) else None
            )
            badges.append(entry)

    return {
        "id": case.id,
        "user_id": case.user_id,
        "title": case.title,
        "is_public": case.is_public,
        "badges": badges,
    }
