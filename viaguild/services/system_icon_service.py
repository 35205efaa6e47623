"""
viaguild.services.system_icon_service — System icon lookup
============================================================

Resolves an icon name to SVG markup for ``system-icon`` foregrounds.
Unknown names get the default circular glyph rather than an error.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from viaguild.constants import DEFAULT_ICON_SVG
from viaguild.database.models import SystemIcon


def get_icon_svg(session: Session, name: str | None) -> str:
    if not name:
        return DEFAULT_ICON_SVG
    svg = session.scalar(select(SystemIcon.svg_content).where(SystemIcon.name == name))
    return svg if svg is not None else DEFAULT_ICON_SVG


def list_icons(session: Session) -> list[dict[str, Any]]:
    icons = session.scalars(select(SystemIcon).order_by(SystemIcon.name)).all()
    return [
        {"name": icon.name, "description": icon.description, "svg_content": icon.svg_content}
        for icon in icons
    ]
