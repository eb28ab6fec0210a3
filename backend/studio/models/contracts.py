"""Request/response contracts for the generation API.

JSON on the wire is camelCase (the web client's convention); Python code uses
snake_case attributes. Everything here is frozen: a request is built once per
HTTP call and a result is returned exactly as constructed.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_SIZE = "1024x1024"
MAX_CONTEXT_MESSAGES = 16
MAX_CONTEXT_CHARS = 2000

SIZE_RE = re.compile(r"^\d+x\d+$")

_SOURCE_IMAGE_PREFIXES = ("https://", "http://", "data:image/")


class OutputType(str, Enum):
    IMAGE = "image"
    TEXT = "text"


class RequestedMode(str, Enum):
    AUTO = "auto"
    IMAGE = "image"
    TEXT = "text"
    FORCE_IMAGE = "force_image"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InvalidGenerationRequest(ValueError):
    """Raised when an inbound request cannot be turned into a GenerationRequest."""


# === Shared Types ===


class ContextMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class ProviderConfig(BaseModel):
    """An organization's provider selection, as stored (key still encrypted)."""

    model_config = ConfigDict(frozen=True)

    provider: str
    model: str = ""
    encrypted_api_key: str = ""
    default_params: dict[str, Any] = {}

    @property
    def is_complete(self) -> bool:
        return bool(self.provider.strip() and self.encrypted_api_key)


class Membership(BaseModel):
    model_config = ConfigDict(frozen=True)

    organization_id: str
    user_id: str | None = None
    role: str = "viewer"


# === Generation ===


def normalize_size(value: Any) -> str:
    """Absent size means the default; anything else must look like WxH."""
    if value is None or value == "":
        return DEFAULT_SIZE
    if not isinstance(value, str) or not SIZE_RE.match(value.strip()):
        raise InvalidGenerationRequest("Size must look like <width>x<height>.")
    return value.strip()


def normalize_source_image_url(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if trimmed.startswith(_SOURCE_IMAGE_PREFIXES):
        return trimmed
    return None


def normalize_mode(value: Any) -> RequestedMode:
    try:
        return RequestedMode(value)
    except ValueError:
        return RequestedMode.AUTO


def normalize_context(value: Any) -> tuple[ContextMessage, ...]:
    """Keep well-formed user/assistant turns, truncated, most recent last."""
    if not isinstance(value, list):
        return ()
    messages: list[ContextMessage] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        role = entry.get("role")
        if role not in ("user", "assistant"):
            continue
        content = entry.get("content")
        content = content.strip() if isinstance(content, str) else ""
        if not content:
            continue
        messages.append(ContextMessage(role=role, content=content[:MAX_CONTEXT_CHARS]))
    return tuple(messages[-MAX_CONTEXT_MESSAGES:])


class GenerateImageBody(_CamelModel):
    """Raw inbound JSON. Deliberately loose; GenerationRequest does the checking."""

    prompt: Any = None
    size: Any = None
    source_image_url: Any = None
    mode: Any = None
    context: Any = None


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    prompt: str = Field(min_length=1)
    size: str = DEFAULT_SIZE
    source_image_url: str | None = None
    mode: RequestedMode = RequestedMode.AUTO
    context_messages: tuple[ContextMessage, ...] = ()

    @classmethod
    def from_body(cls, body: GenerateImageBody) -> GenerationRequest:
        prompt = body.prompt.strip() if isinstance(body.prompt, str) else ""
        if not prompt:
            raise InvalidGenerationRequest("Prompt is required.")
        return cls(
            prompt=prompt,
            size=normalize_size(body.size),
            source_image_url=normalize_source_image_url(body.source_image_url),
            mode=normalize_mode(body.mode),
            context_messages=normalize_context(body.context),
        )


class GenerationResult(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    output_type: OutputType
    image_url: str | None = None
    response_text: str | None = None
    provider_used: str
    model_used: str
    configured: bool

    @model_validator(mode="after")
    def _exactly_one_payload(self) -> GenerationResult:
        if self.output_type is OutputType.IMAGE:
            if not self.image_url or self.response_text is not None:
                raise ValueError("image results carry image_url and no response_text")
        elif not self.response_text or self.image_url is not None:
            raise ValueError("text results carry response_text and no image_url")
        return self

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GenerationFailureResponse(_CamelModel):
    error: str
    configured: bool
    provider_used: str
    model_used: str


# === Provider connection test ===


class ProviderTestRequest(_CamelModel):
    provider: str = ""
    model: str = ""
    api_key: str = ""


class ProviderTestResponse(_CamelModel):
    ok: bool
    status: Literal["Configured", "Not Configured"]
    message: str
    provider: str
    model: str
    models: list[str] = []


# === Errors ===


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
    detail: str | None = None
