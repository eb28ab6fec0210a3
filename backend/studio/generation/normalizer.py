"""Pull a single image (or text) payload out of arbitrary provider JSON.

Providers nest their output differently (OpenAI `data[0].b64_json`, Gemini
`candidates[].content.parts[].inlineData`, Replicate `output[]`, Stability
`artifacts[].base64`, operator-defined Custom HTTP shapes). The search is a
depth-first walk that prefers well-known keys before scanning everything else.
"""

from __future__ import annotations

from typing import Any

DEFAULT_IMAGE_MIME = "image/png"

_URL_PREFIXES = ("http://", "https://", "data:image/")

# Checked in order before the generic scan of remaining values
_DIRECT_KEYS = ("imageUrl", "image_url", "url", "output_url", "output")
_BASE64_KEYS = ("b64_json", "base64", "bytesBase64Encoded")


def to_data_url(base64_payload: str, mime_type: str | None = None) -> str:
    return f"data:{mime_type or DEFAULT_IMAGE_MIME};base64,{base64_payload}"


def extract_image(value: Any) -> str | None:
    """Return the first image URL or data URL found in `value`, else None."""
    if not value:
        return None

    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed if trimmed.startswith(_URL_PREFIXES) else None

    if isinstance(value, list):
        for entry in value:
            found = extract_image(entry)
            if found:
                return found
        return None

    if not isinstance(value, dict):
        return None

    for key in _DIRECT_KEYS:
        found = extract_image(value.get(key))
        if found:
            return found

    for key in _BASE64_KEYS:
        payload = value.get(key)
        if isinstance(payload, str) and payload.strip():
            mime = value.get("mime_type") or value.get("mimeType")
            return to_data_url(payload.strip(), mime if isinstance(mime, str) else None)

    for key, mime_key in (("inlineData", "mimeType"), ("inline_data", "mime_type")):
        inline = value.get(key)
        if isinstance(inline, dict) and isinstance(inline.get("data"), str):
            mime = inline.get(mime_key)
            return to_data_url(inline["data"], mime if isinstance(mime, str) else None)

    for entry in value.values():
        found = extract_image(entry)
        if found:
            return found

    return None


def extract_response_text(payload: Any) -> str | None:
    """First non-empty text in an OpenAI Responses API payload."""
    if not isinstance(payload, dict):
        return None

    output_text = payload.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    output = payload.get("output")
    if not isinstance(output, list):
        return None

    for item in output:
        content = item.get("content") if isinstance(item, dict) else None
        if not isinstance(content, list):
            continue
        for entry in content:
            text = entry.get("text") if isinstance(entry, dict) else None
            if isinstance(text, str) and text.strip():
                return text.strip()
    return None


def extract_inline_text(payload: Any) -> str:
    """Concatenate every text part of a Gemini generateContent payload."""
    texts: list[str] = []
    candidates = payload.get("candidates") if isinstance(payload, dict) else None
    for candidate in candidates if isinstance(candidates, list) else []:
        content = candidate.get("content") if isinstance(candidate, dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        for part in parts if isinstance(parts, list) else []:
            text = part.get("text") if isinstance(part, dict) else None
            if isinstance(text, str) and text.strip():
                texts.append(text.strip())
    return "\n".join(texts)
