"""Shared fixtures: in-memory collaborators and an ASGI test client."""

from __future__ import annotations

import base64
import io

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from studio.api.container import Container, build_container
from studio.config import Settings
from studio.models.contracts import ProviderConfig
from studio.services.secrets import SecretBox
from studio.services.settings_store import InMemoryProviderSettingsStore
from studio.services.usage import InMemoryUsageMeter

ORG_ID = "11111111-2222-3333-4444-555555555555"
ENCRYPTION_KEY = "test-settings-encryption-key"


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def org_id() -> str:
    return ORG_ID


@pytest.fixture
def no_sleep():
    """Drop-in for asyncio.sleep that returns immediately."""
    return _no_sleep


@pytest.fixture
def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color="red").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_data_url(png_bytes: bytes) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def secret_box() -> SecretBox:
    return SecretBox(ENCRYPTION_KEY)


@pytest.fixture
def settings_store() -> InMemoryProviderSettingsStore:
    return InMemoryProviderSettingsStore()


@pytest.fixture
def usage_meter() -> InMemoryUsageMeter:
    return InMemoryUsageMeter()


@pytest.fixture
def configure_org(settings_store, secret_box):
    """Store an encrypted provider config for ORG_ID (or another org)."""

    def _configure(
        provider: str,
        model: str = "",
        api_key: str = "sk-test-key",
        default_params: dict | None = None,
        organization_id: str = ORG_ID,
    ) -> ProviderConfig:
        config = ProviderConfig(
            provider=provider,
            model=model,
            encrypted_api_key=secret_box.encrypt(api_key),
            default_params=default_params or {},
        )
        settings_store.put(organization_id, config)
        return config

    return _configure


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        use_database=False,
        dev_organization_id=ORG_ID,
        settings_encryption_key=ENCRYPTION_KEY,
        environment="development",
    )


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient() as c:
        yield c


@pytest.fixture
def container(test_settings, http_client, settings_store, usage_meter) -> Container:
    return build_container(
        test_settings,
        http_client,
        settings_store=settings_store,
        usage_meter=usage_meter,
    )


@pytest.fixture
async def client(container):
    """ASGI client with the app's container swapped for in-memory collaborators."""
    from studio.main import app

    app.state.container = container
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.state.container = None
