"""Load reference images supplied with a generation request.

Accepts inline `data:image/...;base64,` URLs or plain http(s) URLs. Bytes are
checked with Pillow before they are forwarded to a provider edit endpoint so a
truncated or non-image payload fails here with a clear message.
"""

from __future__ import annotations

import base64
import binascii
import io
import re
from dataclasses import dataclass

import httpx
from PIL import Image

from studio.providers.base import ProviderError, is_retryable_status

SOURCE_IMAGE_TIMEOUT_SECONDS = 45.0
DEFAULT_SOURCE_MIME = "image/png"

_DATA_URL_RE = re.compile(r"^data:(image/[a-zA-Z0-9.+-]+);base64,(.+)$", re.DOTALL)

_EXTENSIONS = {
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
}


@dataclass(frozen=True)
class SourceImage:
    data: bytes
    mime_type: str

    @property
    def filename(self) -> str:
        return f"source.{extension_for_mime(self.mime_type)}"


def extension_for_mime(mime_type: str) -> str:
    return _EXTENSIONS.get(mime_type.lower(), "png")


def parse_data_url(data_url: str) -> SourceImage:
    match = _DATA_URL_RE.match(data_url)
    if not match:
        raise ProviderError("Source image data URL is invalid.")
    try:
        data = base64.b64decode(match.group(2), validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ProviderError("Source image data URL is invalid.") from exc
    if not data:
        raise ProviderError("Source image data URL is empty.")
    return SourceImage(data=data, mime_type=match.group(1).lower())


def _verified(image: SourceImage) -> SourceImage:
    """Decode with Pillow; trust the decoded format over the declared MIME."""
    try:
        with Image.open(io.BytesIO(image.data)) as img:
            img.load()  # Force full decode to catch truncation
            detected = Image.MIME.get(img.format or "")
    except Exception as exc:
        raise ProviderError("Source image is corrupt or not a supported image.") from exc
    return SourceImage(data=image.data, mime_type=detected or image.mime_type)


async def fetch_source_image(client: httpx.AsyncClient, url: str) -> SourceImage:
    """Resolve a source image URL to verified bytes.

    Network-level failures propagate as httpx exceptions so the retry envelope
    can treat them as transient.
    """
    if url.startswith("data:image/"):
        return _verified(parse_data_url(url))

    response = await client.get(url, timeout=SOURCE_IMAGE_TIMEOUT_SECONDS)
    if response.status_code >= 400:
        raise ProviderError(
            f"Unable to load source image ({response.status_code}).",
            retryable=is_retryable_status(response.status_code),
        )

    content_type = response.headers.get("content-type", DEFAULT_SOURCE_MIME)
    mime_type = content_type.split(";")[0].strip().lower() or DEFAULT_SOURCE_MIME
    if not response.content:
        raise ProviderError("Loaded source image is empty.")

    return _verified(
        SourceImage(
            data=response.content,
            mime_type=mime_type if mime_type.startswith("image/") else DEFAULT_SOURCE_MIME,
        )
    )
