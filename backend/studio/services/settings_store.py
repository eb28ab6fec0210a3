"""Per-organization provider settings lookup.

Read-only from this service's point of view: the web application owns writes.
Settings are loaded on every request and never cached, so a key rotated in
the admin screen takes effect on the next generation.
"""

from __future__ import annotations

import uuid
from typing import Protocol

import structlog
from sqlalchemy import select

from studio.models.contracts import ProviderConfig
from studio.models.db import ApiSetting
from studio.providers.base import is_plain_object, normalize_provider_name
from studio.services.database import DATABASE_ERRORS, SessionFactory

logger = structlog.get_logger()


class ProviderSettingsStore(Protocol):
    async def get(self, organization_id: str) -> ProviderConfig | None: ...


def to_provider_config(row: ApiSetting) -> ProviderConfig:
    return ProviderConfig(
        provider=normalize_provider_name(row.provider),
        model=(row.model or "").strip(),
        encrypted_api_key=row.encrypted_api_key or "",
        default_params=row.default_params if is_plain_object(row.default_params) else {},
    )


class SqlProviderSettingsStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._sessions = session_factory

    async def get(self, organization_id: str) -> ProviderConfig | None:
        try:
            org_uuid = uuid.UUID(organization_id)
        except ValueError:
            logger.warning("settings_lookup_invalid_org", organization_id=organization_id)
            return None

        try:
            async with self._sessions() as session:
                row = await session.scalar(
                    select(ApiSetting).where(ApiSetting.organization_id == org_uuid)
                )
        except DATABASE_ERRORS as exc:
            # Unreadable settings degrade to placeholder mode
            logger.warning(
                "settings_lookup_failed", organization_id=organization_id, error=str(exc)
            )
            return None
        return to_provider_config(row) if row is not None else None


class InMemoryProviderSettingsStore:
    """Dict-backed store for development and tests."""

    def __init__(self, configs: dict[str, ProviderConfig] | None = None) -> None:
        self._configs: dict[str, ProviderConfig] = dict(configs or {})

    def put(self, organization_id: str, config: ProviderConfig) -> None:
        self._configs[organization_id] = config

    async def get(self, organization_id: str) -> ProviderConfig | None:
        return self._configs.get(organization_id)
