"""Caller identity handed over by the authentication layer."""
from __future__ import annotations

import enum
from dataclasses import dataclass

from flask import request

from .errors import AuthenticationRequiredError, ForbiddenError


USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"


class Role(enum.Enum):
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


@dataclass(frozen=True)
class Identity:
    user_id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


SYSTEM_ADMIN = Identity(user_id="system", role=Role.ADMIN)


def require_identity(identity: Identity | None) -> Identity:
    if identity is None:
        raise AuthenticationRequiredError()
    return identity


def require_admin(identity: Identity | None) -> Identity:
    identity = require_identity(identity)
    if not identity.is_admin:
        raise ForbiddenError()
    return identity


def identity_from_request() -> Identity | None:
    """Read the identity forwarded by the upstream gateway, if any."""

    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    raw_role = (request.headers.get(USER_ROLE_HEADER) or "").strip().upper()
    if not user_id or not raw_role:
        return None
    try:
        role = Role(raw_role)
    except ValueError:
        raise ForbiddenError(f"Unknown role {raw_role!r}") from None
    return Identity(user_id=user_id, role=role)
