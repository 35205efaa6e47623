"""
viaguild.services.storage_service — Badge asset storage
=========================================================

Files live in a configurable ``uploads/`` directory (Docker volume) and
are served via the ``/api/uploads`` static mount.

Uploads arrive as **temporary** assets under ``temp/`` with an expiry and
an ``upload://{assetId}`` reference the client can put into a template
payload.  When a template adopts the reference, :func:`move_from_temp`
copies the file to a template-scoped permanent key inside a
:func:`staged_writes` block, which drops the temporary original only once
the template write commits.  Anything still temporary past its expiry is
removed by :func:`cleanup_expired_temp_assets`.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from pathlib import Path

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from viaguild.constants import UPLOAD_REFERENCE_PREFIX
from viaguild.database.engine import run_db
from viaguild.database.models import AssetStatus, UploadedAsset
from viaguild.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

UPLOAD_DIR = Path(os.getenv("VIAGUILD_UPLOAD_DIR", "uploads"))
UPLOAD_URL_PREFIX = "/api/uploads/"
TEMP_DIR_NAME = "temp"
MAX_FILE_SIZE = 25 * 1024 * 1024  # 25 MB
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp", ".svg"}
ALLOWED_MIME_TYPES = {
    "image/png",
    "image/jpeg",
    "image/gif",
    "image/webp",
    "image/svg+xml",
}


def ensure_upload_dir() -> None:
    """Create the upload directory (and its temp area) if missing."""
    (UPLOAD_DIR / TEMP_DIR_NAME).mkdir(parents=True, exist_ok=True)


def url_for_key(key: str) -> str:
    return f"{UPLOAD_URL_PREFIX}{key}"


# ---------------------------------------------------------------------------
# upload:// references
# ---------------------------------------------------------------------------
def upload_reference(asset_id: str) -> str:
    return f"{UPLOAD_REFERENCE_PREFIX}{asset_id}"


def parse_upload_reference(value: object) -> str | None:
    """Return the asset id of an ``upload://`` reference, else ``None``."""
    if isinstance(value, str) and value.startswith(UPLOAD_REFERENCE_PREFIX):
        asset_id = value[len(UPLOAD_REFERENCE_PREFIX):]
        return asset_id or None
    return None


# ---------------------------------------------------------------------------
# Temporary uploads
# ---------------------------------------------------------------------------
def validate_upload(filename: str, content: bytes, content_type: str | None = None) -> str:
    """Check size, extension and MIME type; return the lowercased extension.

    Raises
    ------
    ValidationError
        If the file is too large or of a disallowed type.
    """
    if len(content) > MAX_FILE_SIZE:
        raise ValidationError(
            f"File too large: {len(content)} bytes (max {MAX_FILE_SIZE // 1024 // 1024}MB)"
        )

    ext = Path(filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type not allowed: {ext!r}. "
            f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    if content_type and content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(
            f"MIME type not allowed: {content_type!r}. "
            f"Allowed: {', '.join(sorted(ALLOWED_MIME_TYPES))}"
        )
    return ext


def register_temp_asset(
    engine: Engine,
    *,
    storage_key: str,
    original_name: str,
    content_type: str | None,
    size_bytes: int,
    uploader_id: str | None,
    ttl_hours: int,
) -> UploadedAsset:
    with Session(engine, expire_on_commit=False) as session:
        asset = UploadedAsset(
            uploader_id=uploader_id,
            original_name=original_name,
            content_type=content_type,
            size_bytes=size_bytes,
            storage_key=storage_key,
            hosted_url=url_for_key(storage_key),
            status=AssetStatus.TEMP.value,
            expires_at=datetime.now(UTC) + timedelta(hours=ttl_hours),
        )
        session.add(asset)
        session.commit()
        session.refresh(asset)
        session.expunge(asset)
        return asset


async def save_temp_upload(
    engine: Engine,
    filename: str,
    content: bytes,
    content_type: str | None = None,
    *,
    uploader_id: str | None = None,
    ttl_hours: int = 24,
) -> UploadedAsset:
    """Validate and persist a temporary upload, returning its asset row."""
    ext = validate_upload(filename, content, content_type)

    storage_key = f"{TEMP_DIR_NAME}/{uuid.uuid4().hex}{ext}"
    dest = UPLOAD_DIR / storage_key
    dest.parent.mkdir(parents=True, exist_ok=True)
    await asyncio.to_thread(dest.write_bytes, content)

    asset = await run_db(
        register_temp_asset,
        engine,
        storage_key=storage_key,
        original_name=filename,
        content_type=content_type,
        size_bytes=len(content),
        uploader_id=uploader_id,
        ttl_hours=ttl_hours,
    )
    logger.info("Temporary upload %s stored (%d bytes)", asset.id, len(content))
    return asset


# ---------------------------------------------------------------------------
# Permanent storage
# ---------------------------------------------------------------------------
STAGED_FILES_KEY = "viaguild.staged_files"


def _staged(session: Session) -> list[tuple[Path, Path | None]]:
    return session.info.setdefault(STAGED_FILES_KEY, [])


@contextmanager
def staged_writes(session: Session) -> Iterator[None]:
    """Keep files written for *session* only if the block completes.

    :func:`move_from_temp` copies, and :func:`upload_content` writes, while
    the transaction is still open.  The caller commits inside the block.
    On success the temporary originals are unlinked; on any exception the
    new permanent files are removed and the temporary uploads stay usable.
    """
    staged = _staged(session)
    try:
        yield
    except Exception:
        for written, _ in staged:
            written.unlink(missing_ok=True)
        if staged:
            logger.info("Discarded %d staged upload file(s)", len(staged))
        raise
    else:
        for _, temp in staged:
            if temp is not None:
                temp.unlink(missing_ok=True)
    finally:
        staged.clear()


def _permanent_key(key: str, ext: str) -> str:
    return f"{key}-{uuid.uuid4().hex[:8]}{ext}"


def move_from_temp(session: Session, asset_id: str, key: str) -> str:
    """Adopt a temporary asset under permanent *key* and return its URL.

    Runs inside the caller's transaction; the row becomes ``PERMANENT``
    and loses its expiry.  The file is copied, and the temporary original
    is removed only when the enclosing :func:`staged_writes` block
    succeeds.  Already-permanent assets return their URL.

    Raises
    ------
    NotFoundError
        If the asset row or its temporary file is gone.
    """
    asset = session.get(UploadedAsset, asset_id)
    if asset is None:
        raise NotFoundError("Temporary upload not found")
    if asset.status == AssetStatus.PERMANENT:
        return asset.hosted_url

    source = UPLOAD_DIR / asset.storage_key
    if not source.is_file():
        raise NotFoundError("Temporary upload not found")

    permanent_key = _permanent_key(key, Path(asset.storage_key).suffix)
    dest = UPLOAD_DIR / permanent_key
    dest.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, dest)
    _staged(session).append((dest, source))

    asset.storage_key = permanent_key
    asset.hosted_url = url_for_key(permanent_key)
    asset.status = AssetStatus.PERMANENT.value
    asset.expires_at = None
    session.flush()
    logger.info("Upload %s staged → %s", asset_id, permanent_key)
    return asset.hosted_url


def upload_content(
    key: str,
    content: bytes,
    content_type: str | None = None,
    *,
    session: Session | None = None,
) -> str:
    """Write *content* at permanent *key* and return its URL.

    With *session*, the file is staged and removed again if the enclosing
    :func:`staged_writes` block fails.
    """
    dest = UPLOAD_DIR / key
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_bytes(content)
    if session is not None:
        _staged(session).append((dest, None))
    logger.debug("Stored %d bytes (%s) at %s", len(content), content_type, key)
    return url_for_key(key)


def delete_object(key: str) -> bool:
    """Remove a stored file by key.  Returns True if it existed."""
    path = UPLOAD_DIR / key
    if path.is_file():
        path.unlink()
        return True
    return False


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------
def cleanup_expired_temp_assets(engine: Engine, now: datetime | None = None) -> int:
    """Delete temporary assets past their expiry.  Returns the count removed."""
    now = now or datetime.now(UTC)
    with Session(engine) as session:
        expired = session.scalars(
            select(UploadedAsset).where(
                UploadedAsset.status == AssetStatus.TEMP.value,
                UploadedAsset.expires_at < now,
            )
        ).all()
        for asset in expired:
            delete_object(asset.storage_key)
            session.delete(asset)
        session.commit()

    if expired:
        logger.info("Removed %d expired temporary uploads", len(expired))
    return len(expired)
