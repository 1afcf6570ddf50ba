"""
Account lifecycle services: activation, admin user actions, store access and
user creation.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from retailiq.core.auth_provider import SupabaseAuthClient
from retailiq.db import Database, parse_timestamp, utcnow_iso
from retailiq.logger import get_logger
from retailiq.messages import msg
from retailiq.services.email_client import EmailClient
from retailiq.services.email_templates import INVITATION_SUBJECT, invitation_email
from retailiq.services.guard import AuthorizedUser

logger = get_logger(__name__)

DEFAULT_PASSWORD = "123456"
DEFAULT_ROLE = "employee"


def action_link(link: Dict[str, Any]) -> Optional[str]:
    """Pull the action URL out of a generate_link response."""
    return link.get("action_link") or (link.get("properties") or {}).get("action_link")


class AccountService:
    """User account operations backed by the profiles tables and the auth provider."""

    ACTIVATION_EXPIRY_DAYS = 7

    def __init__(self, database: Database, auth: SupabaseAuthClient, email: Optional[EmailClient] = None) -> None:
        self.db = database
        self.auth = auth
        self.email = email or EmailClient()
        self._admin_actions: Dict[str, Callable[[dict, str], dict]] = {
            "suspend": self._suspend,
            "reactivate": self._reactivate,
            "resetPassword": self._reset_password,
        }
        self._access_actions: Dict[str, Callable[[dict, Optional[str]], dict]] = {
            "grantAccess": self._grant_access,
            "revokeAccess": self._revoke_access,
            "revokeAllAccess": self._revoke_all_access,
        }

    def _get_profile(self, user_id: str) -> Optional[dict]:
        return self.db.fetch_one("SELECT * FROM profiles WHERE id = :id", {"id": user_id})

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    @staticmethod
    def _consume_token(db: Database, user_id: str, token: str) -> bool:
        """Delete a token row; False when another caller already removed it."""
        deleted = db.execute(
            "DELETE FROM user_activation_tokens WHERE user_id = :user_id AND token = :token",
            {"user_id": user_id, "token": token},
        )
        return deleted > 0

    def activate(self, *, token: Optional[str], user_id: Optional[str]) -> dict:
        if not token or not user_id:
            raise ValueError("Token and userId are required")

        row = self.db.fetch_one(
            "SELECT * FROM user_activation_tokens WHERE user_id = :user_id AND token = :token",
            {"user_id": user_id, "token": token},
        )
        if not row:
            raise ValueError(msg("activation.invalid"))

        expires_at = parse_timestamp(row.get("expires_at"))
        if expires_at is not None and expires_at < datetime.now(timezone.utc):
            self._consume_token(self.db, user_id, token)
            raise ValueError(msg("activation.expired"))

        # Profile first: a failed update must leave the token usable
        with self.db.transaction() as tx:
            tx.execute(
                "UPDATE profiles SET status = 'active', updated_at = :now WHERE id = :id",
                {"id": user_id, "now": utcnow_iso()},
            )
            if not self._consume_token(tx, user_id, token):
                raise ValueError(msg("activation.invalid"))
        logger.info("Activated user %s", user_id)
        return {"success": True, "message": msg("activation.success")}

    # ------------------------------------------------------------------
    # Admin user management
    # ------------------------------------------------------------------

    def _resolve_target(self, user_id: Optional[str], email: Optional[str]) -> dict:
        if user_id:
            user = self.auth.get_user_by_id(user_id)
        else:
            user = self.auth.find_user_by_email(email)
            if not user:
                raise ValueError(f"User with email {email} not found")
        if not user:
            raise ValueError("User not found")
        return user

    def _suspend(self, target: dict, origin: str) -> dict:
        self.db.execute(
            "UPDATE profiles SET is_banned = :banned, updated_at = :now WHERE id = :id",
            {"banned": True, "now": utcnow_iso(), "id": target["id"]},
        )
        return {"success": True, "message": f"User {target.get('email')} has been suspended", "userId": target["id"]}

    def _reactivate(self, target: dict, origin: str) -> dict:
        self.db.execute(
            "UPDATE profiles SET is_banned = :banned, status = 'active', updated_at = :now WHERE id = :id",
            {"banned": False, "now": utcnow_iso(), "id": target["id"]},
        )
        return {"success": True, "message": f"User {target.get('email')} has been reactivated", "userId": target["id"]}

    def _reset_password(self, target: dict, origin: str) -> dict:
        self.auth.generate_link("recovery", target["email"], redirect_to=f"{origin}/reset-password")
        return {"success": True, "message": f"Password reset email sent to {target.get('email')}", "userId": target["id"]}

    def manage_user(self, *, action: Optional[str], user_id: Optional[str], email: Optional[str], origin: str = "") -> dict:
        """Run an admin action against a user resolved by id or email."""
        if not action or (not user_id and not email):
            raise ValueError("Action and either userId or email are required")

        target = self._resolve_target(user_id, email)
        handler = self._admin_actions.get(action)
        if handler is None:
            raise ValueError(f"Unsupported action: {action}")
        result = handler(target, origin)
        logger.info("Admin action %s applied to %s", action, target["id"])
        return result

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    @staticmethod
    def _display_name(profile: dict) -> str:
        return f"{profile.get('first_name')} {profile.get('last_name')}"

    def _grant_access(self, profile: dict, account_id: Optional[str]) -> dict:
        if not account_id:
            raise ValueError("accountId is required for grantAccess action")
        existing = self.db.fetch_one(
            "SELECT user_id FROM user_store_assignments WHERE user_id = :user_id AND store_id = :store_id",
            {"user_id": profile["id"], "store_id": account_id},
        )
        if not existing:
            self.db.execute(
                """
                INSERT INTO user_store_assignments (user_id, store_id, created_at)
                VALUES (:user_id, :store_id, :created_at)
                """,
                {"user_id": profile["id"], "store_id": account_id, "created_at": utcnow_iso()},
            )
        return {
            "success": True,
            "message": f"Access granted to user {self._display_name(profile)}",
            "userId": profile["id"],
            "accountId": account_id,
        }

    def _revoke_access(self, profile: dict, account_id: Optional[str]) -> dict:
        if not account_id:
            raise ValueError("accountId is required for revokeAccess action")
        self.db.execute(
            "DELETE FROM user_store_assignments WHERE user_id = :user_id AND store_id = :store_id",
            {"user_id": profile["id"], "store_id": account_id},
        )
        return {
            "success": True,
            "message": f"Access revoked for user {self._display_name(profile)}",
            "userId": profile["id"],
            "accountId": account_id,
        }

    def _revoke_all_access(self, profile: dict, account_id: Optional[str]) -> dict:
        self.db.execute("DELETE FROM user_store_assignments WHERE user_id = :user_id", {"user_id": profile["id"]})
        return {
            "success": True,
            "message": f"All access revoked for user {self._display_name(profile)}",
            "userId": profile["id"],
        }

    def manage_access(self, *, action: Optional[str], user_id: Optional[str], account_id: Optional[str] = None) -> dict:
        if not action or not user_id:
            raise ValueError("Action and userId are required")
        profile = self._get_profile(user_id)
        if not profile:
            raise ValueError("User not found")
        handler = self._access_actions.get(action)
        if handler is None:
            raise ValueError(f"Unsupported action: {action}")
        return handler(profile, account_id)

    # ------------------------------------------------------------------
    # User creation
    # ------------------------------------------------------------------

    def create_user(
        self,
        admin: AuthorizedUser,
        *,
        email: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        role: Optional[str] = None,
        store_ids: Optional[List[str]] = None,
        username: Optional[str] = None,
        avatar_url: Optional[str] = None,
        account_id: Optional[str] = None,
        origin: str = "",
    ) -> dict:
        """
        Create an inactive user with an activation token and send the invitation.

        Super-admins may place the user in any account; admins use their own.
        """
        if not email or not first_name or not last_name:
            raise ValueError("Email, first name, and last name are required")

        user_account_id = account_id if admin.role == "super-admin" and account_id else admin.account_id

        user = self.auth.create_user(
            email,
            DEFAULT_PASSWORD,
            user_metadata={"first_name": first_name, "last_name": last_name, "account_id": user_account_id},
        )
        user_id = user.get("id")
        if not user_id:
            raise ValueError("Failed to create user")

        now = utcnow_iso()
        self.db.execute(
            """
            INSERT INTO profiles (id, email, first_name, last_name, username, avatar_url, role, status,
                                  is_banned, account_id, created_at, updated_at)
            VALUES (:id, :email, :first_name, :last_name, :username, :avatar_url, :role, 'inactive',
                    :is_banned, :account_id, :now, :now)
            """,
            {
                "id": user_id,
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
                "username": username,
                "avatar_url": avatar_url,
                "role": role or DEFAULT_ROLE,
                "is_banned": False,
                "account_id": user_account_id,
                "now": now,
            },
        )

        if store_ids:
            self.db.execute_many(
                "INSERT INTO user_store_assignments (user_id, store_id, created_at) VALUES (:user_id, :store_id, :created_at)",
                [{"user_id": user_id, "store_id": store_id, "created_at": now} for store_id in store_ids],
            )

        token = str(uuid.uuid4())
        expires_at = datetime.now(timezone.utc) + timedelta(days=self.ACTIVATION_EXPIRY_DAYS)
        try:
            self.db.execute(
                """
                INSERT INTO user_activation_tokens (user_id, token, created_at, expires_at)
                VALUES (:user_id, :token, :created_at, :expires_at)
                """,
                {"user_id": user_id, "token": token, "created_at": now, "expires_at": expires_at.isoformat()},
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Error storing activation token: %s", exc)

        activation_url = f"{origin}/activate?token={token}&userId={user_id}"
        try:
            self.email.send(
                email,
                INVITATION_SUBJECT,
                invitation_email(first_name, email, DEFAULT_PASSWORD, activation_url),
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.error("Error sending email: %s", exc)

        logger.info("Created user %s in account %s", user_id, user_account_id)
        return {"success": True, "message": msg("user.created"), "userId": user_id, "email": email}
