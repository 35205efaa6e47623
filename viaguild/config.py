"""
viaguild.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for site-level settings (display name, frontend
origin, default award allocations, temp-asset expiry).  Secrets and
infrastructure (``DATABASE_URL``, ``JWT_SECRET``, upload directory) come
from the environment instead.

Usage::

    from viaguild.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.default_allocations)       # {"GOLD": 5, "SILVER": 10, "BRONZE": 20}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from viaguild.constants import DEFAULT_ALLOCATIONS, DEFAULT_BORDER_WIDTH


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ViaGuildConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    site_name: str
    frontend_url: str

    # Badge economy — allocations granted the first time a user's ledger is read
    default_allocations: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_ALLOCATIONS)
    )

    # Uploads older than this stay TEMP and are eligible for cleanup
    temp_asset_ttl_hours: int = 24

    # Rendering hint passed to border style extraction
    border_width: int = DEFAULT_BORDER_WIDTH


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ViaGuildConfig:
    """Read *path* and return a :class:`ViaGuildConfig` instance.

    Missing optional keys fall back to the defaults above.  Unknown tier
    names under ``default_allocations`` are rejected.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``default_allocations`` names a tier that doesn't exist.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    allocations = dict(DEFAULT_ALLOCATIONS)
    for tier, remaining in (raw.get("default_allocations") or {}).items():
        tier_name = str(tier).upper()
        if tier_name not in DEFAULT_ALLOCATIONS:
            raise ValueError(
                f"Unknown tier in default_allocations: {tier!r}. "
                f"Expected one of: {', '.join(DEFAULT_ALLOCATIONS)}"
            )
        allocations[tier_name] = int(remaining)

    return ViaGuildConfig(
        site_name=raw["site_name"],
        frontend_url=str(raw["frontend_url"]).rstrip("/"),
        default_allocations=allocations,
        temp_asset_ttl_hours=int(raw.get("temp_asset_ttl_hours", 24)),
        border_width=int(raw.get("border_width", DEFAULT_BORDER_WIDTH)),
    )
