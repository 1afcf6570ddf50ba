"""
Supabase Auth admin client.

Resolves bearer credentials to users and performs the admin operations the
handlers need (lookup, listing, user creation, recovery links).
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional

import requests

from retailiq.config import SupabaseConfig, settings
from retailiq.errors import raise_for_upstream
from retailiq.logger import get_logger

logger = get_logger(__name__)


class SupabaseAuthClient:
    """REST client for the Supabase auth (GoTrue) API using the service-role key."""

    PAGE_SIZE = 200

    def __init__(
        self,
        url: Optional[str] = None,
        service_role_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.config = SupabaseConfig(
            url=url or settings.supabase.url,
            service_role_key=service_role_key or settings.supabase.service_role_key,
        )
        self.timeout = timeout or settings.http_timeout

    @property
    def auth_url(self) -> str:
        return self.config.auth_url

    def _headers(self, bearer: Optional[str] = None) -> Dict[str, str]:
        self.config.validate()
        return {
            "apikey": self.config.service_role_key,
            "Authorization": f"Bearer {bearer or self.config.service_role_key}",
            "Content-Type": "application/json",
        }

    def get_user(self, access_token: str) -> Optional[Dict[str, Any]]:
        """Resolve an access token (JWT) to its user, or None if it is not valid."""
        response = requests.get(
            f"{self.auth_url}/user",
            headers=self._headers(bearer=access_token),
            timeout=self.timeout,
        )
        if response.status_code in (401, 403, 404):
            return None
        raise_for_upstream(response, "Invalid user token")
        return response.json()

    def get_user_by_id(self, user_id: str) -> Dict[str, Any]:
        response = requests.get(
            f"{self.auth_url}/admin/users/{user_id}",
            headers=self._headers(),
            timeout=self.timeout,
        )
        raise_for_upstream(response, "User not found")
        return response.json()

    def iter_users(self) -> Iterator[Dict[str, Any]]:
        """Yield every user, walking the admin listing page by page."""
        page = 1
        while True:
            response = requests.get(
                f"{self.auth_url}/admin/users",
                headers=self._headers(),
                params={"page": page, "per_page": self.PAGE_SIZE},
                timeout=self.timeout,
            )
            raise_for_upstream(response, "Failed to list users")
            users: List[Dict[str, Any]] = response.json().get("users") or []
            yield from users
            if len(users) < self.PAGE_SIZE:
                return
            page += 1

    def find_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return next((u for u in self.iter_users() if u.get("email") == email), None)

    def create_user(
        self,
        email: str,
        password: str,
        user_metadata: Optional[Dict[str, Any]] = None,
        email_confirm: bool = True,
    ) -> Dict[str, Any]:
        response = requests.post(
            f"{self.auth_url}/admin/users",
            headers=self._headers(),
            json={
                "email": email,
                "password": password,
                "email_confirm": email_confirm,
                "user_metadata": user_metadata or {},
            },
            timeout=self.timeout,
        )
        raise_for_upstream(response, "Failed to create user")
        user = response.json()
        logger.info("Created auth user %s", user.get("id"))
        return user

    def generate_link(self, link_type: str, email: str, redirect_to: Optional[str] = None) -> Dict[str, Any]:
        """Generate an email action link (e.g. "recovery")."""
        body: Dict[str, Any] = {"type": link_type, "email": email}
        if redirect_to:
            body["redirect_to"] = redirect_to
        response = requests.post(
            f"{self.auth_url}/admin/generate_link",
            headers=self._headers(),
            json=body,
            timeout=self.timeout,
        )
        raise_for_upstream(response, "Failed to generate link")
        return response.json()
