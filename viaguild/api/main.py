"""
viaguild.api.main — FastAPI application entry point
=====================================================

Run with::

    uvicorn viaguild.api.main:app --reload --port 8000

or ``python -m viaguild``.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.staticfiles import StaticFiles

load_dotenv()

from viaguild.api.deps import get_engine  # noqa: E402
from viaguild.api.routes.badge_case import router as badge_case_router  # noqa: E402
from viaguild.api.routes.badges import router as badges_router  # noqa: E402
from viaguild.api.routes.system_icons import router as system_icons_router  # noqa: E402
from viaguild.api.routes.templates import router as templates_router  # noqa: E402
from viaguild.api.routes.uploads import router as uploads_router  # noqa: E402
from viaguild.errors import BadgeError, ErrorKind  # noqa: E402
from viaguild.services.storage_service import UPLOAD_DIR, ensure_upload_dir  # noqa: E402

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INSUFFICIENT_ALLOCATION: 403,
    ErrorKind.VALIDATION: 400,
}

# User-supplied SVG can carry script; render it inert on our origin
UPLOAD_SECURITY_HEADERS: dict[str, str] = {
    "Content-Security-Policy": "default-src 'none'; style-src 'unsafe-inline'; sandbox",
    "X-Content-Type-Options": "nosniff",
}


class UploadFiles(StaticFiles):
    """Static files with :data:`UPLOAD_SECURITY_HEADERS` on every response."""

    def file_response(self, *args, **kwargs) -> Response:
        response = super().file_response(*args, **kwargs)
        response.headers.update(UPLOAD_SECURITY_HEADERS)
        return response


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine."""
    ensure_upload_dir()
    engine = get_engine()
    logger.info("ViaGuild API started — engine ready (%s)", engine.url.database)
    yield
    logger.info("ViaGuild API shutting down")


app = FastAPI(
    title="ViaGuild Badge API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BadgeError)
async def badge_error_handler(request: Request, exc: BadgeError) -> JSONResponse:
    """Map a domain error's kind to its HTTP status."""
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("Unmapped badge error on %s: %s", request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": exc.kind.value},
    )


# Mount routers
app.include_router(templates_router, prefix="/api")
app.include_router(badges_router, prefix="/api")
app.include_router(badge_case_router, prefix="/api")
app.include_router(uploads_router, prefix="/api")
app.include_router(system_icons_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}


# Serve stored badge assets
if UPLOAD_DIR.exists():
    app.mount(
        "/api/uploads",
        UploadFiles(directory=str(UPLOAD_DIR)),
        name="uploads",
    )
