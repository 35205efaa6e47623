"""
viaguild.engine.legacy — Legacy Scalar ↔ Visual Config Bridge
===============================================================

Templates and instances predating visual configs describe their look with
scalar columns (``border_color``, ``background_type``/``background_value``,
``foreground_type``/``foreground_value``/``foreground_color``).  The config
object is the source of truth; the scalars are mirrors kept only so older
readers keep working.

This module is the only place the two representations are converted:

* :func:`legacy_to_config` — upgrade scalars into a config for one slot.
* :func:`config_to_legacy` — derive the scalar mirror of a config.
* :func:`sync_visual_fields` — apply both directions to a write payload.
* :func:`legacy_fallback_config` — read-side upgrade for rows with no config.

Column names share a prefix (``default_`` on templates, ``override_`` on
instances) followed by the slot-relative names in ``LEGACY_KEYS``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from viaguild.database.models import BackgroundContentType, ForegroundContentType
from viaguild.engine.visual_config import (
    ConfigLike,
    CustomizableSvgConfig,
    HostedAssetConfig,
    SimpleColorConfig,
    SystemIconConfig,
    config_to_dict,
    convert_legacy_background,
    create_customizable_svg_config,
    create_simple_color_config,
    create_system_icon_config,
    extract_color,
    merge_legacy_color,
    parse_config,
    validate_color_config,
)
from viaguild.errors import ValidationError

SLOTS: tuple[str, ...] = ("border", "background", "foreground")

LEGACY_KEYS: dict[str, tuple[str, ...]] = {
    "border": ("border_color",),
    "background": ("background_type", "background_value"),
    "foreground": ("foreground_type", "foreground_value", "foreground_color"),
}


# ---------------------------------------------------------------------------
# Per-slot conversion
# ---------------------------------------------------------------------------
def legacy_to_config(slot: str, legacy: Mapping[str, Any]) -> dict[str, Any] | None:
    """Build a config for *slot* from slot-relative legacy values, or ``None``."""
    if slot == "border":
        return merge_legacy_color(legacy.get("border_color"), None)

    if slot == "background":
        return convert_legacy_background(
            legacy.get("background_type"), legacy.get("background_value"),
        )

    fg_type = legacy.get("foreground_type")
    fg_value = legacy.get("foreground_value")
    fg_color = legacy.get("foreground_color") or None
    if fg_type == ForegroundContentType.SYSTEM_ICON and fg_value:
        return create_system_icon_config(fg_value, fg_color)
    if fg_type == ForegroundContentType.UPLOADED_ICON and fg_value:
        return create_customizable_svg_config(url=fg_value)
    if fg_color:
        return create_simple_color_config(fg_color)
    return None


def config_to_legacy(
    slot: str, config: ConfigLike, existing: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """Derive the slot-relative legacy scalars mirroring *config*.

    ``existing`` supplies values the config can't express (the text of a
    ``TEXT`` foreground).
    """
    existing = existing or {}
    parsed = parse_config(config)
    if parsed is None:
        return {}

    if slot == "border":
        color = extract_color(parsed, "")
        return {"border_color": color} if color else {}

    if slot == "background":
        if isinstance(parsed, SimpleColorConfig):
            return {"background_type": BackgroundContentType.SOLID_COLOR.value,
                    "background_value": parsed.color}
        if isinstance(parsed, HostedAssetConfig):
            return {"background_type": BackgroundContentType.HOSTED_IMAGE.value,
                    "background_value": parsed.url}
        return {}

    if isinstance(parsed, SystemIconConfig):
        return {"foreground_type": ForegroundContentType.SYSTEM_ICON.value,
                "foreground_value": parsed.value,
                "foreground_color": parsed.color}
    if isinstance(parsed, CustomizableSvgConfig):
        color = extract_color(parsed, "") or None
        mirror: dict[str, Any] = {"foreground_type": ForegroundContentType.UPLOADED_ICON.value,
                                  "foreground_color": color}
        if parsed.url:
            mirror["foreground_value"] = parsed.url
        return mirror
    if isinstance(parsed, SimpleColorConfig):
        return {"foreground_type": existing.get("foreground_type")
                or ForegroundContentType.TEXT.value,
                "foreground_color": parsed.color}
    return {}


# ---------------------------------------------------------------------------
# Write path
# ---------------------------------------------------------------------------
def sync_visual_fields(
    values: Mapping[str, Any],
    prefix: str,
    current: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Return a copy of *values* with configs and legacy mirrors in sync.

    For each slot touched by *values*:

    * a supplied config is validated, canonicalised (a missing ``version``
      is stamped) and mirrored into any legacy key the payload didn't set
      explicitly;
    * otherwise, supplied legacy keys (merged over *current*, the row's
      present values) are upgraded into a config.

    Slots the payload doesn't mention are left alone.

    Raises
    ------
    ValidationError
        If a supplied config doesn't parse, or is a ``simple-color`` config
        whose colour lacks the ``#`` prefix.
    """
    result = dict(values)
    current = current or {}

    for slot in SLOTS:
        config_key = f"{prefix}{slot}_config"
        legacy_keys = [f"{prefix}{key}" for key in LEGACY_KEYS[slot]]

        if result.get(config_key) is not None:
            parsed = parse_config(result[config_key])
            if parsed is None or not validate_color_config(parsed):
                raise ValidationError(f"Invalid {slot} config")
            canonical = config_to_dict(parsed)
            result[config_key] = canonical

            existing = {
                key: result.get(f"{prefix}{key}", current.get(f"{prefix}{key}"))
                for key in LEGACY_KEYS[slot]
            }
            for key, value in config_to_legacy(slot, canonical, existing).items():
                if f"{prefix}{key}" not in values or values[f"{prefix}{key}"] is None:
                    result[f"{prefix}{key}"] = value
            continue

        if config_key in result:
            # Explicitly cleared; leave scalars as supplied.
            continue

        if any(key in values for key in legacy_keys):
            merged = {
                key: values.get(f"{prefix}{key}", current.get(f"{prefix}{key}"))
                for key in LEGACY_KEYS[slot]
            }
            upgraded = legacy_to_config(slot, merged)
            if upgraded is not None:
                result[config_key] = upgraded

    return result


# ---------------------------------------------------------------------------
# Read path
# ---------------------------------------------------------------------------
def legacy_fallback_config(slot: str, row: Any, prefix: str) -> dict[str, Any] | None:
    """Synthesise a config for *slot* from a row's legacy columns."""
    legacy = {key: getattr(row, f"{prefix}{key}", None) for key in LEGACY_KEYS[slot]}
    return legacy_to_config(slot, legacy)
