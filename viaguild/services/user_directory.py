"""
viaguild.services.user_directory — User lookup
================================================

Resolves usernames case-insensitively and supplies the receiver display
info shown next to given badges.  Account creation and authentication
live elsewhere; :func:`create_user` exists for seeding and tests.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from viaguild.database.models import User


def find_user_by_username(session: Session, username: str) -> User | None:
    """Case-insensitive username lookup."""
    return session.scalar(select(User).where(User.username_ci == username.lower()))


def get_users_by_ids(session: Session, user_ids: set[str]) -> dict[str, User]:
    if not user_ids:
        return {}
    users = session.scalars(select(User).where(User.id.in_(user_ids))).all()
    return {u.id: u for u in users}


def user_summary(user: User | None) -> dict[str, Any] | None:
    """Display info for listings: ``{id, username, display_name, avatar_url}``."""
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "avatar_url": user.avatar_url,
    }


def create_user(
    engine: Engine,
    username: str,
    display_name: str | None = None,
    avatar_url: str | None = None,
) -> User:
    with Session(engine, expire_on_commit=False) as session:
        user = User(
            username=username,
            username_ci=username.lower(),
            display_name=display_name,
            avatar_url=avatar_url,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        session.expunge(user)
        return user
