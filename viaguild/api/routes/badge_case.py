"""
viaguild.api.routes.badge_case — Badge case curation
======================================================
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from viaguild.api.deps import get_config, get_current_user, get_engine
from viaguild.config import ViaGuildConfig
from viaguild.errors import ForbiddenError
from viaguild.services import badge_case_service

router = APIRouter(prefix="/users/{username}/badgecase", tags=["badge-case"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ReorderRequest(BaseModel):
    # Shape is checked by the service so a malformed list is a 400, not a 422
    badges: Any = None


class VisibilityUpdate(BaseModel):
    is_public: bool


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("")
def get_badge_case(
    username: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    """Owner read path: returned regardless of visibility to its owner."""
    case = badge_case_service.get_or_create_case(engine, username)
    if case.user_id != user["sub"] and not case.is_public:
        raise ForbiddenError("Badge case is private")
    return badge_case_service.serialize_case(engine, case, border_width=cfg.border_width)


@router.get("/public")
def get_public_badge_case(
    username: str,
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    case = badge_case_service.get_public_case(engine, username)
    return badge_case_service.serialize_case(engine, case, border_width=cfg.border_width)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
@router.post("/badges/{instance_id}", status_code=201)
def add_badge_to_case(
    username: str,
    instance_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    case = badge_case_service.add_to_case(engine, username, instance_id, actor_id=user["sub"])
    return badge_case_service.serialize_case(engine, case, border_width=cfg.border_width)


@router.delete("/badges/{instance_id}")
def remove_badge_from_case(
    username: str,
    instance_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    case = badge_case_service.remove_from_case(
        engine, username, instance_id, actor_id=user["sub"],
    )
    return badge_case_service.serialize_case(engine, case, border_width=cfg.border_width)


@router.patch("/order")
def reorder_badge_case(
    username: str,
    body: ReorderRequest,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    case = badge_case_service.reorder(engine, username, body.badges, actor_id=user["sub"])
    return badge_case_service.serialize_case(engine, case, border_width=cfg.border_width)


@router.patch("/visibility")
def set_badge_case_visibility(
    username: str,
    body: VisibilityUpdate,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    case = badge_case_service.set_visibility(
        engine, username, body.is_public, actor_id=user["sub"],
    )
    return badge_case_service.serialize_case(engine, case, border_width=cfg.border_width)
