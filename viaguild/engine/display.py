"""
viaguild.engine.display — Badge Display Resolution
====================================================

Computes the authoritative look of a badge instance by merging instance
overrides over template defaults:

1. Content fields: override if set, else template default.
2. Visual configs: override config → template config → legacy scalars
   (instance, then template) → fixed default.
3. Colour and style extraction from the resolved configs.
4. Measure fields: value verbatim, bounds/labels override-else-default.
5. Metadata: template field definitions matched to instance values by key;
   fields with no value are dropped.
6. Tier rule (:func:`apply_tier_rule`): a tiered template's border is
   replaced with the fixed tier colour whatever the configs say.

The result never contains a ``None`` colour, config or style.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any

from viaguild.constants import (
    DEFAULT_BACKGROUND_COLOR,
    DEFAULT_BORDER_COLOR,
    DEFAULT_BORDER_WIDTH,
    DEFAULT_FOREGROUND_COLOR,
    TIER_COLORS,
)
from viaguild.database.models import BadgeInstance, BadgeTemplate
from viaguild.engine.legacy import config_to_legacy, legacy_fallback_config
from viaguild.engine.visual_config import (
    config_to_dict,
    create_simple_color_config,
    extract_background_style,
    extract_border_style,
    extract_color,
    parse_config,
)

_SLOT_DEFAULT_COLORS: dict[str, str] = {
    "border": DEFAULT_BORDER_COLOR,
    "background": DEFAULT_BACKGROUND_COLOR,
    "foreground": DEFAULT_FOREGROUND_COLOR,
}


@dataclass(frozen=True, slots=True)
class DisplayProps:
    """Fully resolved, render-ready properties of one badge instance."""

    name: str
    subtitle: str | None
    description: str | None
    shape: str
    text_font: str | None
    text_size: int | None
    tier: str | None

    border_color: str
    border_config: dict[str, Any]
    border_style: dict[str, str]

    background_type: str | None
    background_value: str | None
    background_color: str
    background_config: dict[str, Any]
    background_style: dict[str, str]

    foreground_type: str | None
    foreground_value: str | None
    foreground_color: str
    foreground_config: dict[str, Any]

    defines_measure: bool = False
    measure_value: float | None = None
    measure_label: str | None = None
    measure_best: float | None = None
    measure_worst: float | None = None
    measure_is_normalizable: bool | None = None
    higher_is_better: bool | None = None
    measure_best_label: str | None = None
    measure_worst_label: str | None = None

    metadata: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _pick(override: Any, default: Any) -> Any:
    return override if override is not None else default


def _resolve_config(slot: str, instance: BadgeInstance, template: BadgeTemplate) -> dict[str, Any]:
    candidates = (
        getattr(instance, f"override_{slot}_config"),
        getattr(template, f"default_{slot}_config"),
    )
    for candidate in candidates:
        parsed = parse_config(candidate)
        if parsed is not None:
            return config_to_dict(parsed)

    fallback = (
        legacy_fallback_config(slot, instance, "override_")
        or legacy_fallback_config(slot, template, "default_")
    )
    if fallback is not None:
        return fallback
    return create_simple_color_config(_SLOT_DEFAULT_COLORS[slot])


def _resolve_metadata(instance: BadgeInstance, template: BadgeTemplate) -> list[dict[str, Any]]:
    values = {mv.data_key: mv.data_value for mv in instance.metadata_values}
    fields = sorted(template.metadata_fields, key=lambda f: f.display_order)
    return [
        {
            "key": f.field_key,
            "label": f.label,
            "value": values[f.field_key],
            "prefix": f.prefix,
            "suffix": f.suffix,
            "style": f.style,
            "display_order": f.display_order,
        }
        for f in fields
        if values.get(f.field_key) is not None
    ]


def apply_tier_rule(props: DisplayProps, border_width: int = DEFAULT_BORDER_WIDTH) -> DisplayProps:
    """Force the fixed tier colour onto a tiered badge's border."""
    tier_color = TIER_COLORS.get(props.tier or "")
    if tier_color is None:
        return props
    border_config = create_simple_color_config(tier_color)
    return replace(
        props,
        border_color=tier_color,
        border_config=border_config,
        border_style=extract_border_style(border_config, border_width),
    )


def resolve_display_props(
    instance: BadgeInstance,
    template: BadgeTemplate | None = None,
    border_width: int = DEFAULT_BORDER_WIDTH,
) -> DisplayProps:
    """Resolve *instance* against *template* (defaults to ``instance.template``)."""
    template = template if template is not None else instance.template

    border_config = _resolve_config("border", instance, template)
    background_config = _resolve_config("background", instance, template)
    foreground_config = _resolve_config("foreground", instance, template)

    scalar_background = {
        "background_type": _pick(instance.override_background_type,
                                 template.default_background_type),
        "background_value": _pick(instance.override_background_value,
                                  template.default_background_value),
    }
    scalar_foreground = {
        "foreground_type": _pick(instance.override_foreground_type,
                                 template.default_foreground_type),
        "foreground_value": _pick(instance.override_foreground_value,
                                  template.default_foreground_value),
    }
    background_mirror = {**scalar_background,
                         **config_to_legacy("background", background_config, scalar_background)}
    foreground_mirror = {**scalar_foreground,
                         **config_to_legacy("foreground", foreground_config, scalar_foreground)}

    props = DisplayProps(
        name=_pick(instance.override_badge_name, template.default_badge_name),
        subtitle=_pick(instance.override_subtitle, template.default_subtitle_text),
        description=_pick(instance.override_display_description,
                          template.default_display_description),
        shape=_pick(instance.override_outer_shape, template.default_outer_shape),
        text_font=_pick(instance.override_text_font, template.default_text_font),
        text_size=_pick(instance.override_text_size, template.default_text_size),
        tier=template.inherent_tier,
        border_color=extract_color(border_config, DEFAULT_BORDER_COLOR),
        border_config=border_config,
        border_style=extract_border_style(border_config, border_width),
        background_type=background_mirror.get("background_type"),
        background_value=background_mirror.get("background_value"),
        background_color=extract_color(background_config, DEFAULT_BACKGROUND_COLOR),
        background_config=background_config,
        background_style=extract_background_style(background_config),
        foreground_type=foreground_mirror.get("foreground_type"),
        foreground_value=foreground_mirror.get("foreground_value"),
        foreground_color=extract_color(foreground_config, DEFAULT_FOREGROUND_COLOR),
        foreground_config=foreground_config,
        defines_measure=bool(template.defines_measure),
        measure_value=instance.measure_value,
        measure_label=template.measure_label,
        measure_best=_pick(instance.override_measure_best, template.measure_best),
        measure_worst=_pick(instance.override_measure_worst, template.measure_worst),
        measure_is_normalizable=_pick(instance.override_measure_is_normalizable,
                                      template.measure_is_normalizable),
        higher_is_better=template.higher_is_better,
        measure_best_label=_pick(instance.override_measure_best_label,
                                 template.measure_best_label),
        measure_worst_label=_pick(instance.override_measure_worst_label,
                                  template.measure_worst_label),
        metadata=_resolve_metadata(instance, template),
    )
    return apply_tier_rule(props, border_width)
