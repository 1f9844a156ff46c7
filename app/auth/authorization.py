# app/auth/authorization.py
"""
Report authorization.

Authentication happens upstream; this service trusts the identity headers the
gateway forwards and only decides whether that identity may use the global
report.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

from fastapi import Header

from app.reporting.exceptions import ReportAuthorizationError

logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE = "super_admin"


@dataclass(frozen=True)
class CurrentUser:
    """Identity of the caller as forwarded by the gateway."""

    user_id: Optional[str] = None
    role: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return (self.role or "").strip().lower() == SUPER_ADMIN_ROLE


class ReportAuthorizer(Protocol):
    """Decides whether a caller may use the global report."""

    def is_authorized(self, user: CurrentUser) -> bool:
        ...


class SuperAdminAuthorizer:
    """Default policy: super admins only."""

    def is_authorized(self, user: CurrentUser) -> bool:
        return user.is_super_admin


def ensure_authorized(authorizer: ReportAuthorizer, user: CurrentUser, action: str) -> None:
    """Raise ``ReportAuthorizationError`` unless ``user`` may perform ``action``."""
    if not authorizer.is_authorized(user):
        logger.warning("Denied %s for user %s (role %s)", action, user.user_id, user.role)
        raise ReportAuthorizationError(f"Only super admins can {action}")


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> CurrentUser:
    """FastAPI dependency building the caller from the ``X-User-Id`` and ``X-User-Role`` headers."""
    return CurrentUser(user_id=x_user_id, role=x_user_role)
