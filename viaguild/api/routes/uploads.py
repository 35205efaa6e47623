"""
viaguild.api.routes.uploads — Temporary asset uploads
=======================================================

Clients upload badge art here first and put the returned
``upload://{id}`` reference into a template payload.  The template store
moves the file to permanent storage when it adopts the reference.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, UploadFile

from viaguild.api.deps import get_config, get_current_user, get_engine
from viaguild.config import ViaGuildConfig
from viaguild.services import storage_service

router = APIRouter(prefix="/uploads", tags=["uploads"])
logger = logging.getLogger(__name__)


@router.post("/temp", status_code=201)
async def upload_temp_asset(
    file: UploadFile,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: ViaGuildConfig = Depends(get_config),
):
    content = await file.read()
    asset = await storage_service.save_temp_upload(
        engine,
        file.filename or "upload.png",
        content,
        file.content_type,
        uploader_id=user["sub"],
        ttl_hours=cfg.temp_asset_ttl_hours,
    )
    return {
        "id": asset.id,
        "reference": storage_service.upload_reference(asset.id),
        "url": asset.hosted_url,
        "original_name": asset.original_name,
        "content_type": asset.content_type,
        "size_bytes": asset.size_bytes,
        "expires_at": asset.expires_at.isoformat() if asset.expires_at else None,
    }
