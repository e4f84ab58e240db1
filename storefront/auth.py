import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

from fastapi import Header

from storefront.config import get_settings

logger = logging.getLogger(__name__)


class UnauthorizedError(Exception):
    """Raised when the caller is anonymous or not on the admin allow-list."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


@dataclass(frozen=True)
class CurrentUser:
    """Identity resolved by the upstream authentication gateway."""
    user_id: str
    email: Optional[str] = None


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
) -> Optional[CurrentUser]:
    """
    Dependency returning the authenticated caller, or None for guest traffic.

    The gateway in front of this service validates the session and forwards
    the account id and primary email as `X-User-Id` / `X-User-Email`.
    """
    if not x_user_id or not x_user_id.strip():
        return None
    email = x_user_email.strip().lower() if x_user_email else None
    return CurrentUser(user_id=x_user_id.strip(), email=email or None)


class AdminAuthorizer:
    """Checks callers against a configured allow-list of admin emails."""

    def __init__(self, admin_emails: Iterable[str]):
        self.admin_emails = frozenset(
            email.strip().lower() for email in admin_emails if email and email.strip()
        )

    def is_admin(self, user: Optional[CurrentUser]) -> bool:
        return bool(user and user.email and user.email.lower() in self.admin_emails)

    def require_admin(self, user: Optional[CurrentUser]) -> CurrentUser:
        """Return the caller if it is an admin, otherwise raise UnauthorizedError."""
        if user is None:
            raise UnauthorizedError()
        if not self.is_admin(user):
            logger.warning(f"Rejected admin access for user {user.user_id}")
            raise UnauthorizedError()
        return user


@lru_cache()
def get_admin_authorizer() -> AdminAuthorizer:
    return AdminAuthorizer(get_settings().admin_email_set)
