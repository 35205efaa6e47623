"""
viaguild.api.routes.badges — Awards, listings, allocations & revocation
=========================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from viaguild.api.deps import get_config, get_current_user, get_engine
from viaguild.config import ViaGuildConfig
from viaguild.errors import ForbiddenError, NotFoundError
from viaguild.services import award_service, instance_service
from viaguild.services.user_directory import find_user_by_username

router = APIRouter(tags=["badges"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class BadgeCustomizations(BaseModel):
    message: str | None = None

    override_badge_name: str | None = None
    override_subtitle: str | None = None
    override_display_description: str | None = None
    override_outer_shape: str | None = None
    override_text_font: str | None = None
    override_text_size: int | None = None

    override_border_config: dict | None = None
    override_background_config: dict | None = None
    override_foreground_config: dict | None = None
    override_border_color: str | None = None
    override_background_type: str | None = None
    override_background_value: str | None = None
    override_foreground_type: str | None = None
    override_foreground_value: str | None = None
    override_foreground_color: str | None = None

    measure_value: float | None = None
    override_measure_best: float | None = None
    override_measure_worst: float | None = None
    override_measure_is_normalizable: bool | None = None
    override_measure_best_label: str | None = None
    override_measure_worst_label: str | None = None

    metadata_values: dict[str, str] | None = None


class GiveBadge(BaseModel):
    template_id: str
    recipient_username: str
    customizations: BadgeCustomizations | None = None


class GiveBadgeBulk(BaseModel):
    template_id: str
    recipient_usernames: list[str]
    customizations: BadgeCustomizations | None = None


def _customizations(body: GiveBadge | GiveBadgeBulk) -> dict:
    if body.customizations is None:
        return {}
    return body.customizations.model_dump(exclude_none=True)


def _resolve_self(engine, username: str, actor_id: str, message: str) -> str:
    """Return *username*'s id, requiring it to be the authenticated user."""
    with Session(engine) as session:
        owner = find_user_by_username(session, username)
        if owner is None:
            raise NotFoundError("User not found")
        if owner.id != actor_id:
            raise ForbiddenError(message)
        return owner.id


# ---------------------------------------------------------------------------
# Awards
# ---------------------------------------------------------------------------
@router.post("/badges/give", status_code=201)
def give_badge(
    body: GiveBadge,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    instance = award_service.give_badge(
        engine, user["sub"], body.template_id, body.recipient_username,
        _customizations(body), defaults=cfg.default_allocations,
    )
    return instance_service.serialize_instances(
        engine, [instance], border_width=cfg.border_width,
    )[0]


@router.post("/badges/give/bulk", status_code=207)
def give_badges_bulk(
    body: GiveBadgeBulk,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    result = award_service.give_badges_bulk(
        engine, user["sub"], body.template_id, body.recipient_usernames,
        _customizations(body), defaults=cfg.default_allocations,
    )
    return JSONResponse(status_code=207, content={
        "successful": instance_service.serialize_instances(
            engine, result.successful, border_width=cfg.border_width,
        ),
        "failed": result.failed,
    })


@router.get("/badges/{instance_id}")
def get_badge(
    instance_id: str,
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    instance = instance_service.get_instance(engine, instance_id)
    return instance_service.serialize_instances(
        engine, [instance], border_width=cfg.border_width,
    )[0]


# ---------------------------------------------------------------------------
# Per-user listings
# ---------------------------------------------------------------------------
@router.get("/users/{username}/badges/received")
def list_received(
    username: str,
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    instances = instance_service.list_received(engine, username)
    return {"badges": instance_service.serialize_instances(
        engine, instances, border_width=cfg.border_width,
    )}


@router.get("/users/{username}/badges/given")
def list_given(
    username: str,
    status: str | None = Query(None),
    template_id: str | None = Query(None),
    receiver_username: str | None = Query(None),
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    with Session(engine) as session:
        giver = find_user_by_username(session, username)
        if giver is None:
            raise NotFoundError("User not found")
        giver_id = giver.id

    instances = instance_service.list_given(
        engine, giver_id,
        status=status, template_id=template_id, receiver_username=receiver_username,
    )
    return {"badges": instance_service.serialize_instances(
        engine, instances, border_width=cfg.border_width,
    )}


@router.get("/users/{username}/badges/allocations")
def list_allocations(
    username: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    user_id = _resolve_self(engine, username, user["sub"],
                            "Cannot view another user's allocations")
    allocations = award_service.get_allocations(engine, user_id, cfg.default_allocations)
    return {"allocations": [award_service.allocation_to_dict(a) for a in allocations]}


@router.delete("/users/{username}/badges/{instance_id}", status_code=204)
def delete_received_badge(
    username: str,
    instance_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    _resolve_self(engine, username, user["sub"], "Cannot delete another user's badge")
    instance_service.revoke(engine, instance_id, actor_id=user["sub"])
    return None
