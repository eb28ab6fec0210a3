"""Bearer token → organization membership.

Generation treats "no membership" as anonymous usage (placeholder mode), so
resolvers return None instead of raising on a bad or missing token.
"""

from __future__ import annotations

import uuid
from typing import Protocol

import httpx
import structlog
from sqlalchemy import select

from studio.models.contracts import Membership
from studio.models.db import TeamMember
from studio.services.database import DATABASE_ERRORS, SessionFactory

logger = structlog.get_logger()

AUTH_TIMEOUT_SECONDS = 10.0


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class MembershipResolver(Protocol):
    async def resolve(self, token: str | None) -> Membership | None: ...


class AuthServiceMembershipResolver:
    """Validate the token with the auth service, then take the user's oldest membership."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        session_factory: SessionFactory,
        *,
        auth_service_url: str,
        auth_service_api_key: str,
    ) -> None:
        self._http = http_client
        self._sessions = session_factory
        self._auth_url = auth_service_url.rstrip("/")
        self._api_key = auth_service_api_key

    async def _user_id(self, token: str) -> uuid.UUID | None:
        try:
            response = await self._http.get(
                f"{self._auth_url}/auth/v1/user",
                headers={"Authorization": f"Bearer {token}", "apikey": self._api_key},
                timeout=AUTH_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as exc:
            logger.warning("membership_auth_unreachable", error=type(exc).__name__)
            return None
        if response.status_code != 200:
            logger.info("membership_token_rejected", status=response.status_code)
            return None
        try:
            return uuid.UUID(str(response.json().get("id")))
        except (ValueError, AttributeError):
            logger.warning("membership_auth_unexpected_payload")
            return None

    async def resolve(self, token: str | None) -> Membership | None:
        if not token or not self._auth_url:
            return None

        user_id = await self._user_id(token)
        if user_id is None:
            return None

        try:
            async with self._sessions() as session:
                row = await session.scalar(
                    select(TeamMember)
                    .where(TeamMember.user_id == user_id)
                    .order_by(TeamMember.created_at.asc())
                    .limit(1)
                )
        except DATABASE_ERRORS as exc:
            logger.warning("membership_lookup_failed", error=str(exc))
            return None

        if row is None:
            return None
        return Membership(
            organization_id=str(row.organization_id),
            user_id=str(row.user_id),
            role=row.role,
        )


class StaticMembershipResolver:
    """Every caller belongs to one fixed organization. Development only."""

    def __init__(self, organization_id: str, role: str = "admin") -> None:
        self._organization_id = organization_id
        self._role = role

    async def resolve(self, token: str | None) -> Membership | None:
        if not self._organization_id:
            return None
        return Membership(organization_id=self._organization_id, role=self._role)
