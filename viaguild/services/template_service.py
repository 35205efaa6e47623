"""
viaguild.services.template_service — Badge template store
===========================================================

CRUD for reusable badge definitions.  Every write follows the pattern:
  1. Check ownership (updates/deletes)
  2. Resolve the slug (auto-suffix on create, conflict on update)
  3. Copy any ``upload://`` references to permanent storage
  4. Sync visual configs with their legacy scalar mirrors
  5. Commit, then drop the temporary originals

Steps 3-5 run inside :func:`storage_service.staged_writes`, so a failed
write removes the copied files and leaves the uploads reusable.

Payloads are plain dicts keyed by column name, plus ``metadata_fields``
(a list of field definitions) and ``foreground_svg_content`` (an already
colour-remapped SVG stored in place of the uploaded original).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from viaguild.constants import MAX_SLUG_SUFFIX
from viaguild.database.models import (
    BadgeInstance,
    BadgeShape,
    BadgeTemplate,
    BadgeTier,
    EntityType,
    MetadataFieldDefinition,
)
from viaguild.engine.legacy import SLOTS, sync_visual_fields
from viaguild.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from viaguild.services import storage_service
from viaguild.services.user_directory import find_user_by_username

logger = logging.getLogger(__name__)

PREFIX = "default_"

# Columns a payload may never set directly
FROZEN_KEYS: frozenset[str] = frozenset({
    "id", "template_slug_ci", "owner_type", "owner_id", "authored_by_user_id",
    "created_at", "updated_at",
})

TEMPLATE_FIELDS: frozenset[str] = frozenset(
    c.key for c in BadgeTemplate.__table__.columns
) - FROZEN_KEYS


# ---------------------------------------------------------------------------
# Serialisation
# ---------------------------------------------------------------------------
def _field_to_dict(f: MetadataFieldDefinition) -> dict[str, Any]:
    return {
        "id": f.id,
        "field_key": f.field_key,
        "label": f.label,
        "prefix": f.prefix,
        "suffix": f.suffix,
        "style": f.style,
        "display_order": f.display_order,
    }


def template_to_dict(template: BadgeTemplate) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for col in BadgeTemplate.__table__.columns:
        val = getattr(template, col.key)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.key] = val
    result["metadata_fields"] = [
        _field_to_dict(f) for f in sorted(template.metadata_fields, key=lambda f: f.display_order)
    ]
    return result


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _load_template(session: Session, template_id: str) -> BadgeTemplate:
    template = session.scalar(
        select(BadgeTemplate)
        .options(selectinload(BadgeTemplate.metadata_fields))
        .where(BadgeTemplate.id == template_id)
        .execution_options(populate_existing=True)
    )
    if template is None:
        raise NotFoundError("Badge template not found")
    return template


def _slug_taken(session: Session, slug_ci: str, owner_type: str, owner_id: str,
                exclude_id: str | None = None) -> bool:
    stmt = select(BadgeTemplate.id).where(
        BadgeTemplate.template_slug_ci == slug_ci,
        BadgeTemplate.owner_type == owner_type,
        BadgeTemplate.owner_id == owner_id,
    )
    if exclude_id is not None:
        stmt = stmt.where(BadgeTemplate.id != exclude_id)
    return session.scalar(stmt.limit(1)) is not None


def _resolve_unique_slug(session: Session, slug: str, owner_type: str, owner_id: str) -> str:
    """Return *slug*, or the first free ``slug-N`` for N in 1..999."""
    if not _slug_taken(session, slug.lower(), owner_type, owner_id):
        return slug
    for n in range(1, MAX_SLUG_SUFFIX + 1):
        candidate = f"{slug}-{n}"
        if not _slug_taken(session, candidate.lower(), owner_type, owner_id):
            return candidate
    raise ConflictError(f"Could not find a free slug for {slug!r}")


def _validate_enums(values: Mapping[str, Any]) -> None:
    tier = values.get("inherent_tier")
    if tier is not None and tier not in BadgeTier.__members__:
        raise ValidationError(f"Unknown tier: {tier!r}")
    shape = values.get(f"{PREFIX}outer_shape")
    if shape is not None and shape not in BadgeShape.__members__:
        raise ValidationError(f"Unknown shape: {shape!r}")


def _check_can_modify(template: BadgeTemplate, actor_id: str) -> None:
    """USER templates belong to their owner; GUILD templates to their author."""
    if template.owner_type == EntityType.USER:
        allowed = template.owner_id == actor_id
    else:
        allowed = template.authored_by_user_id == actor_id
    if not allowed:
        raise ForbiddenError("Cannot modify another user's badge template")


def _commit_uploads(session: Session, template_id: str, values: dict[str, Any]) -> dict[str, Any]:
    """Copy ``upload://`` references in *values* to permanent storage.

    Both legacy values and config ``url`` fields are rewritten.  A supplied
    ``foreground_svg_content`` is stored directly and replaces the
    foreground reference.
    """
    result = dict(values)
    svg_content = result.pop("foreground_svg_content", None)

    for slot in ("background", "foreground"):
        key = f"badge-templates/{template_id}/{slot}"
        value_key = f"{PREFIX}{slot}_value"
        config_key = f"{PREFIX}{slot}_config"

        asset_id = storage_service.parse_upload_reference(result.get(value_key))
        if asset_id is not None:
            result[value_key] = storage_service.move_from_temp(session, asset_id, key)

        config = result.get(config_key)
        if isinstance(config, Mapping):
            asset_id = storage_service.parse_upload_reference(config.get("url"))
            if asset_id is not None:
                result[config_key] = {
                    **config, "url": storage_service.move_from_temp(session, asset_id, key),
                }

    if svg_content:
        url = storage_service.upload_content(
            f"badge-templates/{template_id}/foreground-{uuid.uuid4().hex[:8]}.svg",
            svg_content.encode("utf-8"),
            "image/svg+xml",
            session=session,
        )
        result[f"{PREFIX}foreground_value"] = url
        config = result.get(f"{PREFIX}foreground_config")
        if isinstance(config, Mapping) and config.get("type") in ("customizable-svg",
                                                                   "element-path"):
            result[f"{PREFIX}foreground_config"] = {**config, "url": url}

    return result


def _build_fields(raw_fields: list[Mapping[str, Any]]) -> list[MetadataFieldDefinition]:
    fields = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_fields):
        key = raw.get("field_key")
        if not key or not raw.get("label"):
            raise ValidationError("Metadata fields require a field_key and label")
        if key in seen:
            raise ValidationError(f"Duplicate metadata field key: {key!r}")
        seen.add(key)
        display_order = raw.get("display_order")
        fields.append(MetadataFieldDefinition(
            field_key=key,
            label=raw["label"],
            prefix=raw.get("prefix"),
            suffix=raw.get("suffix"),
            style=raw.get("style"),
            display_order=index if display_order is None else display_order,
        ))
    return fields


def _current_visuals(template: BadgeTemplate) -> dict[str, Any]:
    keys = [f"{PREFIX}{slot}_config" for slot in SLOTS] + [
        f"{PREFIX}border_color", f"{PREFIX}background_type", f"{PREFIX}background_value",
        f"{PREFIX}foreground_type", f"{PREFIX}foreground_value", f"{PREFIX}foreground_color",
    ]
    return {key: getattr(template, key) for key in keys}


def _commit(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError("Template slug already exists") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def create_template(engine: Engine, data: Mapping[str, Any], actor_id: str) -> BadgeTemplate:
    """Create a template owned by *actor_id* (or the guild in ``owner_id``).

    Raises
    ------
    ValidationError
        Missing slug/name, unknown tier or shape, invalid visual config.
    ForbiddenError
        Creating a USER template on behalf of someone else.
    ConflictError
        All slug suffixes exhausted.
    """
    slug = (data.get("template_slug") or "").strip()
    name = (data.get(f"{PREFIX}badge_name") or "").strip()
    if not slug or not name:
        raise ValidationError("Template slug and badge name are required")
    _validate_enums(data)

    owner_type = data.get("owner_type") or EntityType.USER.value
    owner_id = data.get("owner_id") or actor_id
    if owner_type == EntityType.USER and owner_id != actor_id:
        raise ForbiddenError("Cannot create templates for another user")

    template_id = str(uuid.uuid4())
    with Session(engine, expire_on_commit=False) as session:
        slug = _resolve_unique_slug(session, slug, owner_type, owner_id)
        fields = _build_fields(data.get("metadata_fields") or [])

        with storage_service.staged_writes(session):
            values = {k: v for k, v in data.items()
                      if k in TEMPLATE_FIELDS or k == "foreground_svg_content"}
            values = _commit_uploads(session, template_id, values)
            values = sync_visual_fields(values, PREFIX)
            values.update(
                template_slug=slug,
                default_badge_name=name,
                is_modifiable_by_issuer=False,
            )

            template = BadgeTemplate(
                id=template_id,
                template_slug_ci=slug.lower(),
                owner_type=owner_type,
                owner_id=owner_id,
                authored_by_user_id=actor_id,
                **values,
            )
            template.metadata_fields = fields
            session.add(template)
            _commit(session)

        template = _load_template(session, template_id)
        session.expunge_all()

    logger.info("Badge template created: %s (%s) by %s", slug, template_id, actor_id)
    return template


def get_template(engine: Engine, template_id: str) -> BadgeTemplate:
    with Session(engine, expire_on_commit=False) as session:
        template = _load_template(session, template_id)
        session.expunge_all()
        return template


def get_templates_by_owner(engine: Engine, owner_type: str, owner_id: str) -> list[BadgeTemplate]:
    with Session(engine, expire_on_commit=False) as session:
        templates = session.scalars(
            select(BadgeTemplate)
            .options(selectinload(BadgeTemplate.metadata_fields))
            .where(BadgeTemplate.owner_type == owner_type, BadgeTemplate.owner_id == owner_id)
            .order_by(BadgeTemplate.created_at.desc(), BadgeTemplate.template_slug)
        ).all()
        session.expunge_all()
        return list(templates)


def get_user_templates(engine: Engine, username: str) -> list[BadgeTemplate]:
    with Session(engine) as session:
        user = find_user_by_username(session, username)
        if user is None:
            raise NotFoundError("User not found")
        user_id = user.id
    return get_templates_by_owner(engine, EntityType.USER.value, user_id)


def update_template(
    engine: Engine, template_id: str, patch: Mapping[str, Any], actor_id: str
) -> BadgeTemplate:
    """Apply *patch* to a template.

    A slug change is checked against the owner's other templates and
    fails with :class:`ConflictError` instead of auto-suffixing.
    ``metadata_fields``, when supplied, replaces the existing definitions.
    """
    with Session(engine, expire_on_commit=False) as session:
        template = _load_template(session, template_id)
        _check_can_modify(template, actor_id)
        _validate_enums(patch)

        values = {k: v for k, v in patch.items()
                  if k in TEMPLATE_FIELDS or k == "foreground_svg_content"}

        if "template_slug" in values:
            slug = (values["template_slug"] or "").strip()
            if not slug:
                raise ValidationError("Template slug cannot be empty")
            if _slug_taken(session, slug.lower(), template.owner_type, template.owner_id,
                           exclude_id=template.id):
                raise ConflictError("Template slug already exists")
            values["template_slug"] = slug
            template.template_slug_ci = slug.lower()

        if f"{PREFIX}badge_name" in values and not (values[f"{PREFIX}badge_name"] or "").strip():
            raise ValidationError("Badge name cannot be empty")

        fields = None
        if patch.get("metadata_fields") is not None:
            fields = _build_fields(patch["metadata_fields"])

        with storage_service.staged_writes(session):
            values = _commit_uploads(session, template.id, values)
            values = sync_visual_fields(values, PREFIX, current=_current_visuals(template))
            values["is_modifiable_by_issuer"] = False

            for key, value in values.items():
                setattr(template, key, value)

            if fields is not None:
                template.metadata_fields.clear()
                session.flush()
                template.metadata_fields.extend(fields)

            _commit(session)

        template = _load_template(session, template_id)
        session.expunge_all()

    logger.info("Badge template updated: %s by %s", template_id, actor_id)
    return template


def delete_template(engine: Engine, template_id: str, actor_id: str) -> None:
    """Hard-delete a template that no instance references.

    Revoked instances still reference their template, so they block
    deletion too.
    """
    with Session(engine) as session:
        template = _load_template(session, template_id)
        _check_can_modify(template, actor_id)

        in_use = session.scalar(
            select(func.count()).select_from(BadgeInstance)
            .where(BadgeInstance.template_id == template_id)
        )
        if in_use:
            raise ConflictError("Cannot delete a template that has been awarded")

        session.delete(template)
        session.commit()

    logger.info("Badge template deleted: %s by %s", template_id, actor_id)
