"""Shared types for provider adapters.

Every adapter turns a ProviderCall into a ProviderImage (or ProviderText) and
reports failures as ProviderError. The retryable flag on ProviderError is the
only thing the retry envelope looks at.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    import httpx

COMPACT_ERROR_LIMIT = 320

_WHITESPACE_RE = re.compile(r"\s+")


class Provider(str, Enum):
    OPENAI = "OpenAI"
    ANTHROPIC = "Anthropic"
    GEMINI = "Google Gemini"
    REPLICATE = "Replicate"
    STABILITY = "Stability AI"
    CUSTOM_HTTP = "Custom HTTP"


PROVIDER_ALIASES: dict[str, Provider] = {
    "openai": Provider.OPENAI,
    "open ai": Provider.OPENAI,
    "anthropic": Provider.ANTHROPIC,
    "claude": Provider.ANTHROPIC,
    "anthropic (claude)": Provider.ANTHROPIC,
    "google gemini": Provider.GEMINI,
    "gemini": Provider.GEMINI,
    "google": Provider.GEMINI,
    "replicate": Provider.REPLICATE,
    "stability": Provider.STABILITY,
    "stability ai": Provider.STABILITY,
    "custom http": Provider.CUSTOM_HTTP,
    "custom": Provider.CUSTOM_HTTP,
}

DEFAULT_MODELS: dict[Provider, str] = {
    Provider.OPENAI: "gpt-image-1",
    Provider.ANTHROPIC: "claude-3-7-sonnet-latest",
    Provider.GEMINI: "gemini-2.0-flash",
    Provider.REPLICATE: "black-forest-labs/flux-schnell",
    Provider.STABILITY: "stable-image-core",
    Provider.CUSTOM_HTTP: "custom-model",
}


def normalize_provider_name(value: Any) -> str:
    """Map user-entered provider names onto canonical labels.

    Unknown names are returned trimmed but otherwise untouched so they can be
    reported back in error messages.
    """
    raw = str(value or "").strip()
    if not raw:
        return ""
    alias = PROVIDER_ALIASES.get(raw.lower())
    return alias.value if alias else raw


def parse_provider(value: Any) -> Provider | None:
    try:
        return Provider(normalize_provider_name(value))
    except ValueError:
        return None


def default_model_for(provider: str) -> str:
    parsed = parse_provider(provider)
    return DEFAULT_MODELS[parsed] if parsed else ""


class ProviderError(Exception):
    """A provider call failed.

    `message` is already compacted and safe to show to the user.
    """

    def __init__(self, message: str, *, retryable: bool = False, request_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.retryable = retryable
        self.request_id = request_id


@dataclass(frozen=True)
class ProviderCall:
    api_key: str
    model: str
    prompt: str
    size: str
    default_params: dict[str, Any] = field(default_factory=dict)
    source_image_url: str | None = None


@dataclass(frozen=True)
class ProviderImage:
    image_url: str
    model_used: str


@dataclass(frozen=True)
class ProviderText:
    response_text: str
    model_used: str


class ImageProvider(Protocol):
    async def generate(self, call: ProviderCall) -> ProviderImage: ...


class TextProvider(Protocol):
    async def respond(self, call: ProviderCall) -> ProviderText: ...


@dataclass(frozen=True)
class ImageSize:
    width: int
    height: int

    @property
    def aspect_ratio(self) -> str:
        divisor = math.gcd(self.width, self.height) or 1
        return f"{max(1, self.width // divisor)}:{max(1, self.height // divisor)}"


def parse_size(size: str) -> ImageSize:
    """Split "WxH" into pixels; unparseable or zero sides become 1024."""
    width_raw, _, height_raw = str(size).partition("x")
    try:
        width = int(width_raw)
    except ValueError:
        width = 0
    try:
        height = int(height_raw)
    except ValueError:
        height = 0
    return ImageSize(width=width or 1024, height=height or 1024)


def is_plain_object(value: Any) -> bool:
    return isinstance(value, dict)


def param_object(default_params: dict[str, Any], key: str) -> dict[str, Any]:
    """Return default_params[key] when it is a JSON object, else {}."""
    value = default_params.get(key)
    return dict(value) if is_plain_object(value) else {}


def compact_error_text(raw: Any) -> str:
    """Collapse whitespace and cap length so raw payloads stay out of messages."""
    if raw is None:
        return ""
    return _WHITESPACE_RE.sub(" ", str(raw)).strip()[:COMPACT_ERROR_LIMIT]


def parse_json_safe(raw: str) -> Any:
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return None


def is_retryable_status(status_code: int) -> bool:
    return status_code >= 500 or status_code == 429


def error_from_response(response: httpx.Response, fallback_message: str) -> ProviderError:
    """Generic non-2xx mapping: compacted body text, status-based retryability."""
    message = compact_error_text(response.text) or fallback_message
    return ProviderError(message, retryable=is_retryable_status(response.status_code))
