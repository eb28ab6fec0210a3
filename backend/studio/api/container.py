"""Per-process collaborators, built once in the app lifespan.

Routes reach them through `request.app.state.container`; tests swap the
container for one wired with in-memory stores.
"""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncEngine

from studio.config import Settings
from studio.generation.router import Decryptor, GenerationRouter
from studio.providers.registry import ProviderRegistry
from studio.services.database import create_engine, create_session_factory
from studio.services.membership import (
    AuthServiceMembershipResolver,
    MembershipResolver,
    StaticMembershipResolver,
)
from studio.services.secrets import SecretBox
from studio.services.settings_store import (
    InMemoryProviderSettingsStore,
    ProviderSettingsStore,
    SqlProviderSettingsStore,
)
from studio.services.usage import InMemoryUsageMeter, SqlUsageMeter, UsageMeter


@dataclass
class Container:
    http_client: httpx.AsyncClient
    router: GenerationRouter
    membership: MembershipResolver
    settings_store: ProviderSettingsStore
    secrets: Decryptor
    engine: AsyncEngine | None = None


def build_container(
    config: Settings,
    http_client: httpx.AsyncClient,
    *,
    settings_store: ProviderSettingsStore | None = None,
    usage_meter: UsageMeter | None = None,
    membership: MembershipResolver | None = None,
) -> Container:
    """Wire SQL-backed collaborators when use_database is on, in-memory ones otherwise.

    Explicit keyword arguments win over both.
    """
    engine: AsyncEngine | None = None
    if config.use_database:
        engine = create_engine(config.database_url)
        sessions = create_session_factory(engine)
        settings_store = settings_store or SqlProviderSettingsStore(sessions)
        usage_meter = usage_meter or SqlUsageMeter(sessions)
        membership = membership or AuthServiceMembershipResolver(
            http_client,
            sessions,
            auth_service_url=config.auth_service_url,
            auth_service_api_key=config.auth_service_api_key,
        )
    else:
        settings_store = settings_store or InMemoryProviderSettingsStore()
        usage_meter = usage_meter or InMemoryUsageMeter()
        membership = membership or StaticMembershipResolver(config.dev_organization_id)

    secrets = SecretBox(config.settings_encryption_key)
    router = GenerationRouter(
        http_client=http_client,
        settings_store=settings_store,
        usage_meter=usage_meter,
        registry=ProviderRegistry(http_client),
        secrets=secrets,
        placeholder_salt=config.placeholder_seed_salt,
        remote_classification_enabled=config.remote_classification_enabled,
    )
    return Container(
        http_client=http_client,
        router=router,
        membership=membership,
        settings_store=settings_store,
        secrets=secrets,
        engine=engine,
    )


def get_container(request: Request) -> Container:
    return request.app.state.container
