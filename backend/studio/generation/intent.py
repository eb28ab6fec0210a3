"""Decide whether a request wants an image or a text answer.

Two stages:
1. A deterministic phrase heuristic (always runs).
2. An optional single-token classification call to OpenAI, only for `auto`
   requests the heuristic calls visual. It is best-effort: any failure returns
   None and the caller keeps the heuristic answer.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ConfigDict

from studio.generation.normalizer import extract_response_text
from studio.models.contracts import ContextMessage, OutputType, RequestedMode
from studio.providers.openai_text import OPENAI_RESPONSES_URL, resolve_text_model_from_params

logger = structlog.get_logger()

CLASSIFY_TIMEOUT_SECONDS = 20.0

CLASSIFY_INSTRUCTION = (
    "Classify the user request for a collaborative design tool. "
    "Respond with exactly one token: IMAGE or TEXT. "
    "TEXT for analysis, recommendations, explanation, planning, Q&A. "
    "IMAGE for visual generation/edit/variant requests. "
    "When uncertain, respond TEXT."
)


class IntentSignals(BaseModel):
    """Phrase lists driving the heuristic. Hand-tuned; replace freely."""

    model_config = ConfigDict(frozen=True)

    visual: tuple[str, ...] = (
        "generate",
        "regenerate",
        "create variant",
        "new variant",
        "render",
        "mockup",
        "illustration",
        "concept image",
        "concept render",
        "product photo",
        "photo-real",
        "make the",
        "change the",
        "update the design",
        "use attached image",
        "use the attached image",
        "based on this image",
        "show me",
    )
    question_starts: tuple[str, ...] = (
        "what ",
        "why ",
        "how ",
        "which ",
        "should ",
        "can ",
        "could ",
        "would ",
        "is ",
        "are ",
        "do ",
        "does ",
        "compare ",
        "recommend ",
        "suggest ",
        "list ",
        "tell me ",
        "give me ",
        "help me ",
    )
    advisory: tuple[str, ...] = (
        "best 2-3",
        "best option",
        "best options",
        "pros and cons",
        "tradeoff",
        "recommendation",
        "strategy",
        "packaging and shipping",
        "package and ship",
    )


DEFAULT_SIGNALS = IntentSignals()


def heuristic_intent(prompt: str, signals: IntentSignals = DEFAULT_SIGNALS) -> OutputType:
    normalized = prompt.strip().lower()
    if not normalized:
        return OutputType.IMAGE

    if any(signal in normalized for signal in signals.visual):
        return OutputType.IMAGE

    looks_textual = (
        "?" in normalized
        or normalized.startswith(signals.question_starts)
        or any(signal in normalized for signal in signals.advisory)
    )
    return OutputType.TEXT if looks_textual else OutputType.IMAGE


def classify_intent(
    prompt: str,
    mode: RequestedMode,
    signals: IntentSignals = DEFAULT_SIGNALS,
) -> OutputType:
    """Explicit modes win; `auto` and `image` go through the heuristic."""
    if mode is RequestedMode.FORCE_IMAGE:
        return OutputType.IMAGE
    if mode is RequestedMode.TEXT:
        return OutputType.TEXT
    return heuristic_intent(prompt, signals)


def parse_classification(reply: str | None) -> OutputType | None:
    content = (reply or "").strip().lower()
    if "image" in content:
        return OutputType.IMAGE
    if "text" in content:
        return OutputType.TEXT
    return None


async def classify_remotely(
    http_client: httpx.AsyncClient,
    *,
    api_key: str,
    model: str,
    prompt: str,
    default_params: dict[str, Any],
    context_messages: Sequence[ContextMessage] = (),
) -> OutputType | None:
    """Ask an OpenAI text model for IMAGE/TEXT. Returns None when skipped.

    Never raises: transport errors, HTTP errors and unparseable replies all
    come back as None.
    """
    payload = {
        "model": resolve_text_model_from_params(model, default_params),
        "input": [
            {"role": "system", "content": CLASSIFY_INSTRUCTION},
            *({"role": m.role, "content": m.content} for m in context_messages),
            {"role": "user", "content": prompt},
        ],
        "max_output_tokens": 4,
    }
    try:
        response = await http_client.post(
            OPENAI_RESPONSES_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            json=payload,
            timeout=CLASSIFY_TIMEOUT_SECONDS,
        )
        if response.status_code >= 400:
            logger.info("intent_remote_skipped", reason="http_error", status=response.status_code)
            return None
        result = parse_classification(extract_response_text(response.json()))
    except (httpx.HTTPError, ValueError) as exc:
        logger.info("intent_remote_skipped", reason=type(exc).__name__)
        return None

    if result is None:
        logger.info("intent_remote_skipped", reason="unparseable_reply")
    return result
