"""
Administrator authentication against Supabase Auth.

Sign-in uses its own Supabase client: a successful password sign-in switches
that client's requests to the user's token, which must never happen to the
service-role client the dashboard uses for data access.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from supabase import AsyncClient, AuthError

from discord_copilot.config.logging import get_logger

logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Sign-in was refused; the message is safe to show on the login page."""


@dataclass(frozen=True)
class AdminUser:
    id: str
    email: str

    def to_session(self) -> dict[str, str]:
        return {"id": self.id, "email": self.email}

    @classmethod
    def from_session(cls, data: dict[str, str]) -> AdminUser:
        return cls(id=data["id"], email=data.get("email", ""))


class AdminAuth(Protocol):
    async def sign_in(self, email: str, password: str) -> AdminUser: ...


class SupabaseAdminAuth:
    """Email/password sign-in through Supabase Auth."""

    def __init__(self, client: AsyncClient):
        self._client = client

    async def sign_in(self, email: str, password: str) -> AdminUser:
        """
        Raises:
            AuthenticationError: If the credentials are rejected
        """
        try:
            response = await self._client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except AuthError as e:
            logger.warning(f"Admin sign-in rejected for {email}: {e}")
            raise AuthenticationError(str(e) or "Invalid login credentials") from e

        if response.user is None:
            raise AuthenticationError("Invalid login credentials")

        logger.info(f"Admin signed in: {email}")
        return AdminUser(id=str(response.user.id), email=response.user.email or email)
