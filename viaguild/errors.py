"""
viaguild.errors — Typed Domain Errors
=======================================

Every service failure raises a :class:`BadgeError` subclass carrying a
stable :class:`ErrorKind`.  The HTTP layer maps the kind to a status code
(see :data:`viaguild.api.main.STATUS_BY_KIND`); messages are for humans
only and never inspected.
"""

from __future__ import annotations

import enum


class ErrorKind(enum.StrEnum):
    """Stable discriminant for domain failures."""
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    INSUFFICIENT_ALLOCATION = "insufficient_allocation"
    VALIDATION = "validation"


class BadgeError(Exception):
    """Base class for all badge system errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(BadgeError):
    """A user, template, instance or case item doesn't exist (or is filtered out)."""
    kind = ErrorKind.NOT_FOUND


class AlreadyRevokedError(NotFoundError):
    """The instance was revoked earlier; it no longer counts as received."""


class ForbiddenError(BadgeError):
    """The actor doesn't own the target resource."""
    kind = ErrorKind.FORBIDDEN


class InsufficientAllocationError(ForbiddenError):
    """The giver has no allocation left for the template's tier."""
    kind = ErrorKind.INSUFFICIENT_ALLOCATION


class ConflictError(BadgeError):
    """Uniqueness or state violation."""
    kind = ErrorKind.CONFLICT


class ValidationError(BadgeError):
    """Malformed input."""
    kind = ErrorKind.VALIDATION
