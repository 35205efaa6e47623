"""
viaguild.database.seed — Default System Icon Seeder
=====================================================

Baseline system icons seeded on first startup so templates can use a
``SYSTEM_ICON`` foreground without an upload.

Idempotent — only inserts icons whose name doesn't already exist.  Icons
edited later are never overwritten.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from viaguild.database.models import SystemIcon

logger = logging.getLogger(__name__)


def _svg(body: str) -> str:
    return (
        '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 24 24">'
        f"{body}</svg>"
    )


# ---------------------------------------------------------------------------
# Default icon catalogue
# ---------------------------------------------------------------------------
DEFAULT_ICONS: dict[str, tuple[str, str]] = {
    "star": (
        "Five-pointed star",
        _svg('<path fill="currentColor" d="M12 2l3.09 6.26L22 9.27l-5 4.87 '
             '1.18 6.88L12 17.77l-6.18 3.25L7 14.14 2 9.27l6.91-1.01L12 2z"/>'),
    ),
    "heart": (
        "Heart",
        _svg('<path fill="currentColor" d="M12 21.35l-1.45-1.32C5.4 15.36 2 '
             '12.28 2 8.5 2 5.42 4.42 3 7.5 3c1.74 0 3.41.81 4.5 2.09C13.09 '
             '3.81 14.76 3 16.5 3 19.58 3 22 5.42 22 8.5c0 3.78-3.4 6.86-8.55 '
             '11.54L12 21.35z"/>'),
    ),
    "trophy": (
        "Trophy cup",
        _svg('<path fill="currentColor" d="M19 5h-2V3H7v2H5c-1.1 0-2 .9-2 2v1c0 '
             '2.55 1.92 4.63 4.39 4.94A5.01 5.01 0 0 0 11 15.9V19H7v2h10v-2h-4v-3.1'
             'a5.01 5.01 0 0 0 3.61-2.96C19.08 12.63 21 10.55 21 8V7c0-1.1-.9-2-2-2z"/>'),
    ),
    "shield": (
        "Shield",
        _svg('<path fill="currentColor" d="M12 1L3 5v6c0 5.55 3.84 10.74 9 12 '
             '5.16-1.26 9-6.45 9-12V5l-9-4z"/>'),
    ),
    "check": (
        "Check mark",
        _svg('<path fill="currentColor" d="M9 16.17L4.83 12l-1.42 1.41L9 19 '
             '21 7l-1.41-1.41z"/>'),
    ),
}
"""Each entry maps ``name`` → ``(description, svg_content)``."""


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_system_icons(engine: Engine) -> None:
    """Insert default system icons that don't yet exist."""
    session = Session(engine)
    inserted = 0
    try:
        existing = set(session.scalars(select(SystemIcon.name)).all())
        for name, (description, svg_content) in DEFAULT_ICONS.items():
            if name not in existing:
                session.add(SystemIcon(
                    name=name,
                    description=description,
                    svg_content=svg_content,
                ))
                inserted += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted:
        logger.info("Seeded %d default system icons.", inserted)
