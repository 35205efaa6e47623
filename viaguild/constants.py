"""
viaguild.constants — Shared Constants
=======================================

Single source of truth for tier colours, default allocations and the
fallback colours used when a badge resolves to no visual config at all.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Tier presentation — enforced on every tiered badge's border
# ---------------------------------------------------------------------------
TIER_COLORS: dict[str, str] = {
    "GOLD": "#FFD700",
    "SILVER": "#C0C0C0",
    "BRONZE": "#CD7F32",
}

# Allocations created the first time a user's ledger is read
DEFAULT_ALLOCATIONS: dict[str, int] = {
    "GOLD": 5,
    "SILVER": 10,
    "BRONZE": 20,
}

# ---------------------------------------------------------------------------
# Visual fallbacks
# ---------------------------------------------------------------------------
CONFIG_VERSION = 1
DEFAULT_BORDER_WIDTH = 6
DEFAULT_BORDER_COLOR = "#000000"
DEFAULT_BACKGROUND_COLOR = "#DDDDDD"
DEFAULT_FOREGROUND_COLOR = "#000000"

# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------
MAX_SLUG_SUFFIX = 999
UPLOAD_REFERENCE_PREFIX = "upload://"

# ---------------------------------------------------------------------------
# Badge cases
# ---------------------------------------------------------------------------
BADGE_CASE_TITLE = "{username}'s Badge Case"

# Fixed circular glyph served when a system icon name is unknown
DEFAULT_ICON_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">'
    '<circle cx="12" cy="12" r="10" fill="currentColor"/>'
    "</svg>"
)
