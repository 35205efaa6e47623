"""
viaguild.engine.visual_config — Polymorphic Visual Configs
============================================================

Badge borders, backgrounds and foregrounds are described by a small
tagged union discriminated by ``type``:

* ``simple-color``     — ``{color}``
* ``hosted-asset``     — ``{url}``
* ``customizable-svg`` — ``{url?, colorMappings, scale?}`` (``element-path``
  with ``mappings`` is accepted on read as an alias)
* ``system-icon``      — ``{value, color?}``

Every config carries ``version`` (currently 1).  Rows store the JSON form;
the engine works with frozen dataclass variants produced by
:func:`parse_config`.  Each ``type`` maps to a parser in
``CONFIG_PARSERS``, so adding a variant means adding one dataclass, one
parser and one serialiser.

All extraction functions are pure and total: they accept a raw dict, a
parsed variant or ``None`` and always return a usable value.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Union

from viaguild.constants import (
    CONFIG_VERSION,
    DEFAULT_BACKGROUND_COLOR,
    DEFAULT_BORDER_COLOR,
    DEFAULT_BORDER_WIDTH,
)



class ConfigType(enum.StrEnum):
    SIMPLE_COLOR = "simple-color"
    HOSTED_ASSET = "hosted-asset"
    CUSTOMIZABLE_SVG = "customizable-svg"
    ELEMENT_PATH = "element-path"
    SYSTEM_ICON = "system-icon"


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class SimpleColorConfig:
    color: str
    version: int = CONFIG_VERSION


@dataclass(frozen=True, slots=True)
class HostedAssetConfig:
    url: str
    version: int = CONFIG_VERSION


@dataclass(frozen=True, slots=True)
class CustomizableSvgConfig:
    """Per-element colour remapping of an SVG asset.

    ``color_mappings`` maps an element selector to
    ``{"fill": {"current": "#hex"}, "stroke": {"current": "#hex"}}``; either
    channel may be absent.  Selector order is preserved.
    """

    color_mappings: dict[str, dict[str, dict[str, str]]] = field(default_factory=dict)
    url: str | None = None
    scale: float | None = None
    version: int = CONFIG_VERSION


@dataclass(frozen=True, slots=True)
class SystemIconConfig:
    value: str
    color: str | None = None
    version: int = CONFIG_VERSION


VisualConfig = Union[
    SimpleColorConfig, HostedAssetConfig, CustomizableSvgConfig, SystemIconConfig
]

ConfigLike = Union[VisualConfig, Mapping[str, Any], None]

_VARIANTS = (SimpleColorConfig, HostedAssetConfig, CustomizableSvgConfig, SystemIconConfig)


# ---------------------------------------------------------------------------
# Parsers — raw dict → variant (or None)
# ---------------------------------------------------------------------------
def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def _parse_simple_color(raw: Mapping[str, Any], version: int) -> VisualConfig | None:
    color = raw.get("color")
    if not _non_empty_str(color):
        return None
    return SimpleColorConfig(color=color, version=version)


def _parse_hosted_asset(raw: Mapping[str, Any], version: int) -> VisualConfig | None:
    url = raw.get("url")
    if not _non_empty_str(url):
        return None
    return HostedAssetConfig(url=url, version=version)


def _parse_mappings(raw_mappings: Any) -> dict[str, dict[str, dict[str, str]]] | None:
    if raw_mappings is None:
        return {}
    if not isinstance(raw_mappings, Mapping):
        return None
    mappings: dict[str, dict[str, dict[str, str]]] = {}
    for selector, entry in raw_mappings.items():
        if not isinstance(entry, Mapping):
            return None
        channels: dict[str, dict[str, str]] = {}
        for channel in ("fill", "stroke"):
            slot = entry.get(channel)
            if not isinstance(slot, Mapping):
                continue
            # Only string colour values survive
            values = {k: v for k, v in slot.items() if isinstance(v, str)}
            if values:
                channels[channel] = values
        mappings[str(selector)] = channels
    return mappings


def _parse_customizable_svg(raw: Mapping[str, Any], version: int) -> VisualConfig | None:
    raw_mappings = raw.get("colorMappings")
    if raw_mappings is None:
        raw_mappings = raw.get("mappings")
    mappings = _parse_mappings(raw_mappings)
    if mappings is None:
        return None

    url = raw.get("url")
    if url is not None and not isinstance(url, str):
        return None
    scale = raw.get("scale")
    if scale is not None and (isinstance(scale, bool) or not isinstance(scale, int | float)):
        return None
    return CustomizableSvgConfig(
        color_mappings=mappings, url=url or None, scale=scale, version=version,
    )


def _parse_system_icon(raw: Mapping[str, Any], version: int) -> VisualConfig | None:
    value = raw.get("value")
    if not _non_empty_str(value):
        return None
    color = raw.get("color")
    if color is not None and not isinstance(color, str):
        return None
    return SystemIconConfig(value=value, color=color or None, version=version)


CONFIG_PARSERS: dict[str, Callable[[Mapping[str, Any], int], VisualConfig | None]] = {
    ConfigType.SIMPLE_COLOR: _parse_simple_color,
    ConfigType.HOSTED_ASSET: _parse_hosted_asset,
    ConfigType.CUSTOMIZABLE_SVG: _parse_customizable_svg,
    ConfigType.ELEMENT_PATH: _parse_customizable_svg,
    ConfigType.SYSTEM_ICON: _parse_system_icon,
}


def parse_config(raw: ConfigLike) -> VisualConfig | None:
    """Turn stored JSON (or an already-parsed variant) into a variant.

    Returns ``None`` for ``None``, non-mappings, unknown ``type`` values and
    shape violations.  Never raises.  A missing ``version`` is read as the
    current version.
    """
    if raw is None:
        return None
    if isinstance(raw, _VARIANTS):
        return raw
    if not isinstance(raw, Mapping):
        return None

    parser = CONFIG_PARSERS.get(raw.get("type"))
    if parser is None:
        return None

    version = raw.get("version", CONFIG_VERSION)
    if isinstance(version, bool) or not isinstance(version, int):
        return None
    return parser(raw, version)


def config_to_dict(config: ConfigLike) -> dict[str, Any] | None:
    """Serialise a variant to its stored JSON form (``element-path`` is
    written back as ``customizable-svg``)."""
    parsed = parse_config(config)
    if parsed is None:
        return None

    if isinstance(parsed, SimpleColorConfig):
        return {"type": ConfigType.SIMPLE_COLOR.value, "version": parsed.version,
                "color": parsed.color}
    if isinstance(parsed, HostedAssetConfig):
        return {"type": ConfigType.HOSTED_ASSET.value, "version": parsed.version,
                "url": parsed.url}
    if isinstance(parsed, SystemIconConfig):
        data: dict[str, Any] = {"type": ConfigType.SYSTEM_ICON.value,
                                "version": parsed.version, "value": parsed.value}
        if parsed.color is not None:
            data["color"] = parsed.color
        return data

    data = {
        "type": ConfigType.CUSTOMIZABLE_SVG.value,
        "version": parsed.version,
        "colorMappings": {
            selector: {channel: dict(slot) for channel, slot in channels.items()}
            for selector, channels in parsed.color_mappings.items()
        },
    }
    if parsed.url is not None:
        data["url"] = parsed.url
    if parsed.scale is not None:
        data["scale"] = parsed.scale
    return data


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------
def create_simple_color_config(color: str) -> dict[str, Any]:
    return {"type": ConfigType.SIMPLE_COLOR.value, "version": CONFIG_VERSION, "color": color}


def create_hosted_asset_config(url: str) -> dict[str, Any]:
    return {"type": ConfigType.HOSTED_ASSET.value, "version": CONFIG_VERSION, "url": url}


def create_customizable_svg_config(
    color_mappings: Mapping[str, Any] | None = None,
    url: str | None = None,
    scale: float | None = None,
) -> dict[str, Any]:
    config: dict[str, Any] = {
        "type": ConfigType.CUSTOMIZABLE_SVG.value,
        "version": CONFIG_VERSION,
        "colorMappings": dict(color_mappings or {}),
    }
    if url is not None:
        config["url"] = url
    if scale is not None:
        config["scale"] = scale
    return config


def create_system_icon_config(value: str, color: str | None = None) -> dict[str, Any]:
    config: dict[str, Any] = {
        "type": ConfigType.SYSTEM_ICON.value, "version": CONFIG_VERSION, "value": value,
    }
    if color is not None:
        config["color"] = color
    return config


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def validate_color_config(config: ConfigLike) -> bool:
    """Strict shape check for client-supplied configs.

    Stricter than :func:`parse_config`: ``version`` must be present and a
    ``simple-color`` colour must be ``#``-prefixed.
    """
    if isinstance(config, _VARIANTS):
        config = config_to_dict(config)
    if not isinstance(config, Mapping):
        return False
    if not config.get("type") or not config.get("version"):
        return False

    parsed = parse_config(config)
    if parsed is None:
        return False
    if isinstance(parsed, SimpleColorConfig):
        return parsed.color.startswith("#")
    return True


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------
def extract_color(config: ConfigLike, fallback: str = DEFAULT_BORDER_COLOR) -> str:
    """Reduce *config* to a single representative colour.

    ``customizable-svg`` yields the first ``fill.current`` or
    ``stroke.current`` found scanning selectors in insertion order.
    """
    parsed = parse_config(config)
    if isinstance(parsed, SimpleColorConfig | SystemIconConfig):
        return parsed.color or fallback
    if isinstance(parsed, CustomizableSvgConfig):
        for channels in parsed.color_mappings.values():
            for channel in ("fill", "stroke"):
                current = channels.get(channel, {}).get("current")
                if _non_empty_str(current):
                    return current
    return fallback


def extract_background_style(config: ConfigLike) -> dict[str, str]:
    parsed = parse_config(config)
    if isinstance(parsed, SimpleColorConfig):
        return {"backgroundColor": parsed.color or DEFAULT_BACKGROUND_COLOR}
    if isinstance(parsed, HostedAssetConfig):
        return {
            "backgroundImage": f"url({parsed.url})",
            "backgroundSize": "cover",
            "backgroundPosition": "center",
            "backgroundRepeat": "no-repeat",
        }
    return {}


def extract_border_style(config: ConfigLike, width: int = DEFAULT_BORDER_WIDTH) -> dict[str, str]:
    """Border is never omitted; anything but ``simple-color`` draws black."""
    parsed = parse_config(config)
    color = DEFAULT_BORDER_COLOR
    if isinstance(parsed, SimpleColorConfig):
        color = parsed.color or DEFAULT_BORDER_COLOR
    return {"border": f"{width}px solid {color}"}


# ---------------------------------------------------------------------------
# Legacy helpers
# ---------------------------------------------------------------------------
def merge_legacy_color(legacy_color: str | None, config: ConfigLike) -> dict[str, Any] | None:
    """Prefer a valid explicit *config*; otherwise wrap *legacy_color*."""
    if config is not None and validate_color_config(config):
        return config_to_dict(config)
    if isinstance(legacy_color, str) and legacy_color:
        return create_simple_color_config(legacy_color)
    return None


def convert_legacy_background(
    background_type: str | None, background_value: str | None
) -> dict[str, Any] | None:
    if not background_type or not background_value:
        return None
    if background_type == "SOLID_COLOR":
        return create_simple_color_config(background_value)
    if background_type == "HOSTED_IMAGE":
        return create_hosted_asset_config(background_value)
    return None
