"""
Session resolution and the admin capability check.

The identity gateway in front of this service authenticates the user and
forwards who they are in request headers. Every admin operation goes through
``can_manage`` so role/tenant rules live in exactly one place.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from fastapi import Depends, Header

from prompt_rater.errors import ForbiddenError, UnauthorizedError, ValidationError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    USER = "USER"
    TENANT_ADMIN = "TENANT_ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


ADMIN_ROLES = (Role.TENANT_ADMIN, Role.SUPER_ADMIN)


@dataclass(frozen=True)
class SessionUser:
    """Authenticated caller as reported by the identity gateway."""
    user_id: str
    role: Role
    tenant_id: Optional[str] = None


@dataclass(frozen=True)
class AdminSession:
    """A session already checked by ``can_manage`` for its own tenant."""
    user: SessionUser

    @property
    def tenant_id(self) -> str:
        return self.user.tenant_id  # type: ignore[return-value]

    @property
    def user_id(self) -> str:
        return self.user.user_id


def can_manage(session: Optional[SessionUser], tenant_id: Optional[str]) -> bool:
    """True when the session may administer ``tenant_id``.

    Tenant admins manage their own tenant. Super admins manage the tenant
    they are currently attached to.
    """
    if session is None or not tenant_id:
        return False
    if session.role not in ADMIN_ROLES:
        return False
    return session.tenant_id == tenant_id


async def get_current_session(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
) -> SessionUser:
    """FastAPI dependency resolving the caller's session.

    Raises:
        UnauthorizedError: no user id, or an unknown role
    """
    if not x_user_id:
        raise UnauthorizedError()

    try:
        role = Role((x_user_role or Role.USER.value).upper())
    except ValueError:
        logger.warning(f"[AUTH] Unknown role {x_user_role!r} for user {x_user_id}")
        raise UnauthorizedError()

    return SessionUser(user_id=x_user_id, role=role, tenant_id=x_tenant_id or None)


async def require_admin(session: SessionUser = Depends(get_current_session)) -> AdminSession:
    """FastAPI dependency: caller must be able to manage their own tenant."""
    if not can_manage(session, session.tenant_id):
        logger.info(f"[AUTH] Forbidden: user={session.user_id} role={session.role.value} tenant={session.tenant_id}")
        raise ForbiddenError()
    return AdminSession(user=session)


async def require_rater(session: SessionUser = Depends(get_current_session)) -> SessionUser:
    """FastAPI dependency: any signed-in user of a tenant may rate its matches."""
    if not session.tenant_id:
        raise ValidationError("No tenant associated")
    return session
