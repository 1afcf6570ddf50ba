"""
Admin authorization guard shared by the admin-only handlers.

The guard resolves the bearer credential to a caller through the auth
provider, loads the caller's profile and checks the role.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from retailiq.core.auth_provider import SupabaseAuthClient
from retailiq.db import Database
from retailiq.errors import AuthorizationError
from retailiq.logger import get_logger
from retailiq.messages import msg

logger = get_logger(__name__)

ADMIN_ROLES = ("admin",)


@dataclass
class AuthorizedUser:
    """Caller that passed the guard."""
    id: str
    email: Optional[str]
    role: str
    profile: dict = field(default_factory=dict)

    @property
    def account_id(self) -> Optional[str]:
        return self.profile.get("account_id")


def extract_bearer(authorization: Optional[str]) -> str:
    """Return the credential of an Authorization header.

    Raises:
        ValueError: If the header is missing
    """
    if not authorization:
        raise ValueError(msg("error.no_auth_header"))
    return authorization.replace("Bearer ", "", 1).strip()


def require_admin(
    authorization: Optional[str],
    database: Database,
    auth: SupabaseAuthClient,
    roles: Iterable[str] = ADMIN_ROLES,
) -> AuthorizedUser:
    """
    Authorize the caller of an admin-only action.

    Args:
        authorization: Raw Authorization header value
        database: Database holding the profiles table
        auth: Auth provider client used to resolve the credential
        roles: Roles allowed through

    Returns:
        The authorized caller

    Raises:
        ValueError: Missing header or unresolvable credential
        AuthorizationError: Caller's role is not allowed
    """
    token = extract_bearer(authorization)
    user = auth.get_user(token)
    if not user or not user.get("id"):
        raise ValueError(msg("error.invalid_token"))

    profile = database.fetch_one("SELECT * FROM profiles WHERE id = :id", {"id": user["id"]})
    role = (profile or {}).get("role")
    if role not in tuple(roles):
        logger.warning("Rejected caller %s with role %s", user["id"], role)
        raise AuthorizationError()

    return AuthorizedUser(id=user["id"], email=user.get("email"), role=role, profile=profile or {})
