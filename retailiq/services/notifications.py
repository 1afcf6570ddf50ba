"""
Outbound notification emails: account invitations and role-play session
scheduling.
"""

from __future__ import annotations

from typing import Optional

from retailiq.core.auth_provider import SupabaseAuthClient
from retailiq.db import Database, parse_timestamp
from retailiq.logger import get_logger
from retailiq.messages import msg
from retailiq.services.accounts import DEFAULT_PASSWORD, action_link
from retailiq.services.email_client import EmailClient
from retailiq.services.email_templates import (
    INVITATION_SUBJECT,
    invitation_email,
    schedule_email,
    schedule_subject,
)

logger = get_logger(__name__)


class NotificationService:
    """Renders and sends the transactional emails."""

    def __init__(self, database: Database, auth: SupabaseAuthClient, email: EmailClient) -> None:
        self.db = database
        self.auth = auth
        self.email = email

    def send_invitation(self, *, user_id: Optional[str], base_url: str = "") -> dict:
        """Email an existing user a recovery link so they can set a password."""
        if not user_id:
            raise ValueError("User ID is required")

        profile = self.db.fetch_one("SELECT first_name, last_name FROM profiles WHERE id = :id", {"id": user_id})
        if not profile:
            raise ValueError("User not found")
        user = self.auth.get_user_by_id(user_id)
        if not user or not user.get("email"):
            raise ValueError("User not found")

        link = self.auth.generate_link("recovery", user["email"], redirect_to=f"{base_url}/reset-password")
        html = invitation_email(
            profile.get("first_name"),
            user["email"],
            DEFAULT_PASSWORD,
            action_link(link) or f"{base_url}/reset-password",
            button_label="Set Password & Activate Account",
        )
        self.email.send(user["email"], INVITATION_SUBJECT, html)
        return {"success": True, "message": msg("email.invitation_sent")}

    def send_schedule(self, *, session_id: Optional[str], base_url: str = "") -> dict:
        """Invite the session's trainee, then mark the session pending if it has no status."""
        if not session_id:
            raise ValueError("Session ID is required")

        session = self.db.fetch_one("SELECT * FROM roleplay_sessions WHERE id = :id", {"id": session_id})
        if not session:
            raise ValueError("Session not found")
        scenario = self.db.fetch_one(
            "SELECT title, description, difficulty FROM scenarios WHERE id = :id",
            {"id": session.get("scenario_id")},
        ) or {}
        user = self.db.fetch_one(
            "SELECT first_name, last_name, email FROM profiles WHERE id = :id",
            {"id": session.get("user_id")},
        ) or {}
        if not user.get("email"):
            raise ValueError("No email found")

        title = scenario.get("title") or ""
        html = schedule_email(
            user.get("first_name"),
            title,
            scenario.get("description"),
            scenario.get("difficulty"),
            parse_timestamp(session.get("start_time")),
            accept_url=f"{base_url}/schedule?id={session_id}&response=accept",
            decline_url=f"{base_url}/schedule?id={session_id}&response=decline",
        )
        self.email.send(user["email"], schedule_subject(title), html)

        if not session.get("status") or session.get("status") == "pending":
            self.db.execute("UPDATE roleplay_sessions SET status = 'pending' WHERE id = :id", {"id": session_id})

        return {"success": True, "message": msg("email.schedule_sent")}
