"""JSON completions for the structuring step.

OpenAI chat (JSON mode) is the primary model; Anthropic is used when OpenAI is
not configured or keeps failing. Each backend gets a few attempts with linear
backoff; markdown fences are stripped before parsing.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Callable

import anthropic
import openai

from .config import (
    PROVIDER_TIMEOUT_SEC,
    STRUCTURING_FALLBACK_MODEL,
    STRUCTURING_MAX_RETRIES,
    STRUCTURING_MODEL,
)
from .utils import StructuringError, strip_code_fences

logger = logging.getLogger(__name__)

STRUCTURING_MAX_TOKENS = 4096


def _openai_configured() -> bool:
    return bool(os.environ.get("OPENAI_API_KEY"))


def _anthropic_configured() -> bool:
    return bool(os.environ.get("ANTHROPIC_API_KEY"))


def is_configured() -> bool:
    return _openai_configured() or _anthropic_configured()


def _parse_json_object(content: str) -> dict[str, Any]:
    data = json.loads(strip_code_fences(content))
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def _call_openai(system_prompt: str, user_prompt: str, model: str) -> str:
    client = openai.OpenAI()
    resp = client.chat.completions.create(
        model=model,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        temperature=0,
        response_format={"type": "json_object"},
        timeout=PROVIDER_TIMEOUT_SEC,
    )
    if not resp.choices:
        return ""
    return resp.choices[0].message.content or ""


def _call_anthropic(system_prompt: str, user_prompt: str, model: str) -> str:
    client = anthropic.Anthropic(
        api_key=os.environ["ANTHROPIC_API_KEY"], timeout=PROVIDER_TIMEOUT_SEC,
    )
    response = client.messages.create(
        model=model,
        max_tokens=STRUCTURING_MAX_TOKENS,
        temperature=0,
        system=system_prompt,
        messages=[{"role": "user", "content": user_prompt}],
    )
    return "".join(
        block.text for block in response.content if getattr(block, "type", "") == "text"
    )


def _with_retries(
    name: str,
    call: Callable[[], str],
    max_retries: int,
) -> tuple[dict[str, Any] | None, Exception | None]:
    last_err: Exception | None = None
    for attempt in range(max_retries + 1):
        try:
            return _parse_json_object(call()), None
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("%s returned invalid JSON (attempt %d): %s", name, attempt + 1, e)
            last_err = e
        except (openai.OpenAIError, anthropic.AnthropicError) as e:
            logger.warning("%s structuring call failed (attempt %d): %s", name, attempt + 1, e)
            last_err = e
        if attempt < max_retries:
            time.sleep(1.0 * (attempt + 1))
    logger.error("%s structuring failed after %d attempts: %s", name, max_retries + 1, last_err)
    return None, last_err


def complete_json(
    system_prompt: str,
    user_prompt: str,
    model: str | None = None,
    fallback_model: str | None = None,
    max_retries: int = STRUCTURING_MAX_RETRIES,
) -> dict[str, Any]:
    """Return the model's reply parsed as a JSON object.

    Raises StructuringError when no model is configured or every backend
    failed to produce a JSON object.
    """
    backends: list[tuple[str, Callable[[], str]]] = []
    if _openai_configured():
        use_model = model or STRUCTURING_MODEL
        backends.append(
            (f"openai:{use_model}", lambda: _call_openai(system_prompt, user_prompt, use_model))
        )
    if _anthropic_configured():
        use_fallback = fallback_model or STRUCTURING_FALLBACK_MODEL
        backends.append(
            (f"anthropic:{use_fallback}", lambda: _call_anthropic(system_prompt, user_prompt, use_fallback))
        )
    if not backends:
        raise StructuringError("No language model configured (set OPENAI_API_KEY or ANTHROPIC_API_KEY)")

    errors: list[str] = []
    for name, call in backends:
        data, err = _with_retries(name, call, max_retries)
        if data is not None:
            logger.info("Structured reply from %s", name)
            return data
        errors.append(f"{name}: {type(err).__name__}: {err}")
    raise StructuringError("Language model did not return valid JSON (" + "; ".join(errors) + ")")
