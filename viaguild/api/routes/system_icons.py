"""
viaguild.api.routes.system_icons — System icon catalogue
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.orm import Session

from viaguild.api.deps import get_session
from viaguild.services import system_icon_service

router = APIRouter(prefix="/system-icons", tags=["system-icons"])


@router.get("")
def list_system_icons(session: Session = Depends(get_session)):
    return {"icons": system_icon_service.list_icons(session)}


@router.get("/{name}")
def get_system_icon(name: str, session: Session = Depends(get_session)):
    """SVG markup for *name*; unknown names get the default glyph."""
    return Response(
        content=system_icon_service.get_icon_svg(session, name),
        media_type="image/svg+xml",
    )
