"""Integration tests for the HTTP surface.

Exercises /api/v1/generate-image and /api/v1/providers/test through the ASGI
app with in-memory collaborators; provider HTTP is mocked with respx.
"""

import json
import re

import httpx
import pytest
import respx

from studio.api.routes.providers import NOT_CONFIGURED_MESSAGE
from studio.providers.discovery import OPENAI_MODELS_URL, REPLICATE_MODELS_URL
from studio.providers.openai_image import EDITS_URL, GENERATIONS_URL
from studio.providers.openai_text import OPENAI_RESPONSES_URL
from studio.services.membership import StaticMembershipResolver
from studio.services.usage import current_month

GENERATE = "/api/v1/generate-image"
PROVIDERS_TEST = "/api/v1/providers/test"
AUTH = {"Authorization": "Bearer dev-token"}


class TestGenerateImage:
    @pytest.mark.asyncio
    async def test_placeholder_when_unconfigured(self, client, usage_meter, org_id):
        resp = await client.post(
            GENERATE, json={"prompt": "generate a red sneaker concept", "size": "1024x1024"}
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["outputType"] == "image"
        assert body["configured"] is False
        assert body["providerUsed"] == "Placeholder"
        assert body["modelUsed"] == "picsum"
        assert re.match(r"^https://picsum\.photos/seed/[0-9a-f]{16}/1024/1024$", body["imageUrl"])
        assert "responseText" not in body
        assert usage_meter.counts[(org_id, current_month())].images_generated == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_question_returns_text_answer(self, client, configure_org):
        configure_org("OpenAI")
        route = respx.post(OPENAI_RESPONSES_URL).mock(
            return_value=httpx.Response(200, json={"output_text": "Aluminum is lighter."})
        )
        resp = await client.post(
            GENERATE,
            json={
                "prompt": "what are the tradeoffs of titanium vs aluminum?",
                "context": [{"role": "user", "content": "We are designing a bike frame."}],
            },
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["outputType"] == "text"
        assert body["responseText"] == "Aluminum is lighter."
        assert body["configured"] is True
        assert body["providerUsed"] == "OpenAI"
        assert "imageUrl" not in body
        sent = json.loads(route.calls.last.request.content)
        assert "Conversation context:\nUser: We are designing a bike frame." in (
            sent["input"][1]["content"]
        )

    @pytest.mark.asyncio
    @respx.mock
    async def test_source_image_edit(self, client, configure_org, png_data_url):
        configure_org("OpenAI", model="gpt-image-1")
        edit = respx.post(EDITS_URL).mock(
            return_value=httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})
        )
        resp = await client.post(
            GENERATE,
            json={
                "prompt": "change the color to blue",
                "sourceImageUrl": png_data_url,
                "mode": "force_image",
            },
        )
        assert resp.status_code == 200
        assert resp.json()["imageUrl"] == "data:image/png;base64,QUJD"
        assert resp.json()["modelUsed"] == "gpt-image-1"
        assert edit.call_count == 1

    @pytest.mark.asyncio
    async def test_empty_prompt_rejected(self, client):
        resp = await client.post(GENERATE, json={"prompt": "   ", "size": "1024x1024"})
        assert resp.status_code == 400
        assert resp.json() == {
            "error": "validation_error",
            "message": "Prompt is required.",
            "retryable": False,
        }

    @pytest.mark.asyncio
    async def test_malformed_size_rejected(self, client):
        resp = await client.post(GENERATE, json={"prompt": "a lamp", "size": "large"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"
        assert "width" in resp.json()["message"]

    @pytest.mark.asyncio
    async def test_unknown_mode_and_bad_source_are_ignored(self, client):
        resp = await client.post(
            GENERATE,
            json={"prompt": "render a lamp", "mode": "surprise-me", "sourceImageUrl": "ftp://x"},
        )
        assert resp.status_code == 200
        assert resp.json()["outputType"] == "image"

    @pytest.mark.asyncio
    @respx.mock
    async def test_provider_failure_returns_502(self, client, configure_org, usage_meter, org_id):
        configure_org("OpenAI", model="gpt-image-1")
        images = respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(
                400,
                json={"error": {"message": "Your prompt was rejected."}},
                headers={"x-request-id": "req_abc"},
            )
        )
        resp = await client.post(GENERATE, json={"prompt": "a lamp", "mode": "force_image"})

        assert resp.status_code == 502
        assert resp.json() == {
            "error": "OpenAI request failed. Your prompt was rejected. Request ID: req_abc.",
            "configured": True,
            "providerUsed": "OpenAI",
            "modelUsed": "gpt-image-1",
        }
        assert images.call_count == 1
        assert (org_id, current_month()) not in usage_meter.counts

    @pytest.mark.asyncio
    async def test_response_carries_request_id(self, client):
        resp = await client.post(
            GENERATE, json={"prompt": "a lamp"}, headers={"X-Request-ID": "trace-9"}
        )
        assert resp.headers["X-Request-ID"] == "trace-9"


class TestProvidersTest:
    @pytest.mark.asyncio
    async def test_missing_token_is_401(self, client):
        resp = await client.post(PROVIDERS_TEST, json={"provider": "OpenAI"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Missing bearer token."

    @pytest.mark.asyncio
    async def test_unknown_membership_is_401(self, client, container):
        container.membership = StaticMembershipResolver("")
        resp = await client.post(PROVIDERS_TEST, json={}, headers=AUTH)
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid auth token."

    @pytest.mark.asyncio
    async def test_non_admin_is_403(self, client, container, org_id):
        container.membership = StaticMembershipResolver(org_id, role="viewer")
        resp = await client.post(PROVIDERS_TEST, json={"provider": "OpenAI"}, headers=AUTH)
        assert resp.status_code == 403
        assert resp.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_nothing_to_test(self, client):
        resp = await client.post(PROVIDERS_TEST, json={}, headers=AUTH)
        assert resp.status_code == 200
        assert resp.json() == {
            "ok": False,
            "status": "Not Configured",
            "message": NOT_CONFIGURED_MESSAGE,
            "provider": "",
            "model": "",
            "models": [],
        }

    @pytest.mark.asyncio
    @respx.mock
    async def test_body_key_discovers_models(self, client):
        route = respx.get(OPENAI_MODELS_URL).mock(
            return_value=httpx.Response(
                200, json={"data": [{"id": "gpt-image-1"}, {"id": "dall-e-3"}]}
            )
        )
        resp = await client.post(
            PROVIDERS_TEST, json={"provider": "openai", "apiKey": "sk-body"}, headers=AUTH
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["ok"] is True
        assert body["status"] == "Configured"
        assert body["provider"] == "OpenAI"
        assert body["models"] == ["dall-e-3", "gpt-image-1"]
        assert body["model"] == "dall-e-3"
        assert route.calls.last.request.headers["Authorization"] == "Bearer sk-body"

    @pytest.mark.asyncio
    @respx.mock
    async def test_stored_key_and_model_are_used(self, client, configure_org):
        configure_org("Replicate", model="black-forest-labs/flux-dev", api_key="r8-stored")
        route = respx.get(REPLICATE_MODELS_URL).mock(
            return_value=httpx.Response(
                200, json={"results": [{"owner": "stability-ai", "name": "sdxl"}]}
            )
        )
        resp = await client.post(PROVIDERS_TEST, json={}, headers=AUTH)
        body = resp.json()
        assert body["ok"] is True
        assert body["provider"] == "Replicate"
        assert body["model"] == "black-forest-labs/flux-dev"
        assert route.calls.last.request.headers["Authorization"] == "Token r8-stored"

    @pytest.mark.asyncio
    @respx.mock
    async def test_discovery_failure_is_not_an_http_error(self, client):
        respx.get(OPENAI_MODELS_URL).mock(
            return_value=httpx.Response(401, json={"error": {"message": "Incorrect API key"}})
        )
        resp = await client.post(
            PROVIDERS_TEST, json={"provider": "OpenAI", "apiKey": "sk-wrong"}, headers=AUTH
        )
        body = resp.json()
        assert resp.status_code == 200
        assert body["ok"] is False
        assert body["status"] == "Not Configured"
        assert "Incorrect API key" in body["message"]
        assert body["model"] == "gpt-image-1"
