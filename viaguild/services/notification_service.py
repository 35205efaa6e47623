"""
viaguild.services.notification_service — Recipient notifications
==================================================================

Notifications are written inside the caller's transaction so a badge
award and its notification commit (or roll back) together.  The badge
core never reads them back; :func:`list_notifications` serves the
notification feed and tests.
"""

from __future__ import annotations

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from viaguild.database.models import Notification, NotificationType


def create_notification(
    session: Session,
    *,
    user_id: str,
    type: NotificationType | str,
    title: str,
    content: str | None = None,
    link_url: str | None = None,
    source_id: str | None = None,
    source_type: str | None = None,
    actor_id: str | None = None,
) -> Notification:
    """Add a notification to *session* (flushed, not committed)."""
    notification = Notification(
        user_id=user_id,
        type=str(type),
        title=title,
        content=content,
        link_url=link_url,
        source_id=source_id,
        source_type=source_type,
        actor_id=actor_id,
    )
    session.add(notification)
    session.flush()
    return notification


def list_notifications(engine: Engine, user_id: str) -> list[Notification]:
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
        ).all()
        session.expunge_all()
        return list(rows)
