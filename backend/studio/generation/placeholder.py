"""Deterministic stand-in images for organizations without a provider."""

from __future__ import annotations

import hashlib

from studio.providers.base import parse_size

PLACEHOLDER_PROVIDER = "Placeholder"
PLACEHOLDER_MODEL = "picsum"
PLACEHOLDER_BASE_URL = "https://picsum.photos/seed"

UNCONFIGURED_TEXT_REPLY = (
    "Text mode requested, but no model API is configured for this studio. "
    "Add your provider key in Admin > Model API Configuration."
)


def placeholder_seed(prompt: str, size: str, provider: str, model: str, salt: str) -> str:
    digest = hashlib.sha256(f"{prompt}:{size}:{provider}:{model}:{salt}".encode()).hexdigest()
    return digest[:16]


def build_placeholder_url(
    prompt: str,
    size: str,
    provider: str = PLACEHOLDER_PROVIDER,
    model: str = PLACEHOLDER_MODEL,
    *,
    salt: str,
) -> str:
    """Same inputs always give the same URL; any changed input changes the seed."""
    dims = parse_size(size)
    seed = placeholder_seed(prompt, size, provider, model, salt)
    return f"{PLACEHOLDER_BASE_URL}/{seed}/{dims.width}/{dims.height}"
