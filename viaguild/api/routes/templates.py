"""
viaguild.api.routes.templates — Badge template CRUD
=====================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from viaguild.api.deps import get_current_user, get_engine
from viaguild.services import template_service

router = APIRouter(tags=["badge-templates"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class MetadataFieldIn(BaseModel):
    field_key: str
    label: str
    prefix: str | None = None
    suffix: str | None = None
    style: str | None = None
    display_order: int | None = None


class TemplateCreate(BaseModel):
    template_slug: str
    default_badge_name: str
    owner_type: str | None = None
    owner_id: str | None = None

    default_subtitle_text: str | None = None
    default_display_description: str | None = None
    default_outer_shape: str | None = None
    default_text_font: str | None = None
    default_text_size: int | None = None

    default_border_config: dict | None = None
    default_background_config: dict | None = None
    default_foreground_config: dict | None = None
    default_border_color: str | None = None
    default_background_type: str | None = None
    default_background_value: str | None = None
    default_foreground_type: str | None = None
    default_foreground_value: str | None = None
    default_foreground_color: str | None = None
    foreground_svg_content: str | None = None

    inherent_tier: str | None = None
    defines_measure: bool | None = None
    measure_label: str | None = None
    measure_best: float | None = None
    measure_worst: float | None = None
    measure_notes: str | None = None
    measure_is_normalizable: bool | None = None
    higher_is_better: bool | None = None
    measure_best_label: str | None = None
    measure_worst_label: str | None = None

    is_modifiable_by_issuer: bool | None = None
    allows_pushed_instance_updates: bool | None = None

    metadata_fields: list[MetadataFieldIn] | None = None


class TemplateUpdate(BaseModel):
    template_slug: str | None = None
    default_badge_name: str | None = None

    default_subtitle_text: str | None = None
    default_display_description: str | None = None
    default_outer_shape: str | None = None
    default_text_font: str | None = None
    default_text_size: int | None = None

    default_border_config: dict | None = None
    default_background_config: dict | None = None
    default_foreground_config: dict | None = None
    default_border_color: str | None = None
    default_background_type: str | None = None
    default_background_value: str | None = None
    default_foreground_type: str | None = None
    default_foreground_value: str | None = None
    default_foreground_color: str | None = None
    foreground_svg_content: str | None = None

    inherent_tier: str | None = None
    defines_measure: bool | None = None
    measure_label: str | None = None
    measure_best: float | None = None
    measure_worst: float | None = None
    measure_notes: str | None = None
    measure_is_normalizable: bool | None = None
    higher_is_better: bool | None = None
    measure_best_label: str | None = None
    measure_worst_label: str | None = None

    is_modifiable_by_issuer: bool | None = None
    allows_pushed_instance_updates: bool | None = None

    metadata_fields: list[MetadataFieldIn] | None = None


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@router.post("/badge-templates", status_code=201)
def create_template(
    body: TemplateCreate,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    template = template_service.create_template(
        engine, body.model_dump(exclude_none=True), actor_id=user["sub"],
    )
    return template_service.template_to_dict(template)


@router.get("/badge-templates/{template_id}")
def get_template(template_id: str, engine=Depends(get_engine)):
    return template_service.template_to_dict(
        template_service.get_template(engine, template_id)
    )


@router.patch("/badge-templates/{template_id}")
def update_template(
    template_id: str,
    body: TemplateUpdate,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    patch = body.model_dump(exclude_unset=True)
    if not patch:
        raise HTTPException(400, "No fields to update")
    template = template_service.update_template(
        engine, template_id, patch, actor_id=user["sub"],
    )
    return template_service.template_to_dict(template)


@router.delete("/badge-templates/{template_id}", status_code=204)
def delete_template(
    template_id: str,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
):
    template_service.delete_template(engine, template_id, actor_id=user["sub"])
    return None


@router.get("/users/{username}/badge-templates")
def list_user_templates(username: str, engine=Depends(get_engine)):
    templates = template_service.get_user_templates(engine, username)
    return {"templates": [template_service.template_to_dict(t) for t in templates]}
