"""LLM call capabilities and JSON response parsing.

A call capability performs exactly one round trip:

    capability(messages, {"temperature": float, "schema_hint": str})
        -> {"data": raw payload, "meta": {"model": str | None, "usage": dict | None}}

Capabilities never retry. Clients are built with max_retries=0 so the
retry policy stays in StructuredCallPolicy.
"""

import json
import re
from collections.abc import Callable
from typing import Any

from anthropic import Anthropic
from openai import OpenAI

from context_engine.core.config import get_settings
from context_engine.core.logging import get_logger

logger = get_logger(__name__)

CallCapability = Callable[[list[dict[str, str]], dict[str, Any]], dict[str, Any]]

JSON_GUARDRAIL = (
    "You are a JSON API. Respond with ONE valid JSON object and nothing else. "
    "Do not include code fences, markdown, or commentary before or after the JSON."
)


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> dict:
    """
    Parse LLM output as a JSON object.

    Args:
        raw_output: Raw string from LLM response

    Returns:
        Parsed dict

    Raises:
        json.JSONDecodeError: If the cleaned output is not a JSON object
    """
    cleaned = _strip_llm_fences(raw_output)
    parsed = json.loads(cleaned)
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError("Expected a JSON object", cleaned, 0)
    return parsed


def inject_json_guardrail(
    messages: list[dict[str, str]], schema_hint: str | None = None
) -> list[dict[str, str]]:
    """
    Return a copy of messages whose system message demands a bare JSON object.

    The guardrail (and the schema hint, when given) is prepended to the
    first system message, or inserted as a new system message.
    """
    instruction = JSON_GUARDRAIL
    if schema_hint:
        instruction += f"\nThe JSON must match this shape: {schema_hint}"

    out = [dict(m) for m in messages]
    for message in out:
        if message.get("role") == "system":
            message["content"] = f"{instruction}\n\n{message.get('content', '')}".rstrip()
            return out
    return [{"role": "system", "content": instruction}, *out]


def make_openai_call_capability(
    model: str | None = None,
    client: OpenAI | None = None,
) -> CallCapability:
    """
    Build a call capability backed by OpenAI chat completions in JSON mode.

    Args:
        model: Model name override (defaults to GENERATION_MODEL)
        client: Optional preconfigured client

    Returns:
        Call capability returning the raw message content as data
    """
    settings = get_settings()
    model_name = model or settings.GENERATION_MODEL
    openai_client = client or OpenAI(
        api_key=settings.OPENAI_API_KEY,
        timeout=settings.GENERATION_TIMEOUT_SECONDS,
        max_retries=0,
    )

    def call(messages: list[dict[str, str]], options: dict[str, Any]) -> dict[str, Any]:
        response = openai_client.chat.completions.create(
            model=model_name,
            temperature=float(options.get("temperature", 0.0)),
            messages=inject_json_guardrail(messages, options.get("schema_hint")),
            response_format={"type": "json_object"},
        )
        content = (response.choices[0].message.content or "") if response.choices else ""
        usage = response.usage.model_dump() if getattr(response, "usage", None) else None

        logger.debug(
            f"OpenAI JSON call returned {len(content)} chars",
            extra={"model": model_name},
        )
        meta = {"model": getattr(response, "model", None), "usage": usage}
        return {"data": content, "meta": meta}

    return call


def make_anthropic_call_capability(
    model: str | None = None,
    client: Anthropic | None = None,
) -> CallCapability:
    """
    Build a call capability backed by the Anthropic messages API.

    System messages are folded into the `system` parameter.

    Args:
        model: Model name override (defaults to ANTHROPIC_GENERATION_MODEL)
        client: Optional preconfigured client

    Returns:
        Call capability returning the concatenated text blocks as data
    """
    settings = get_settings()
    model_name = model or settings.ANTHROPIC_GENERATION_MODEL
    anthropic_client = client or Anthropic(
        api_key=settings.ANTHROPIC_API_KEY,
        timeout=settings.GENERATION_TIMEOUT_SECONDS,
        max_retries=0,
    )

    def call(messages: list[dict[str, str]], options: dict[str, Any]) -> dict[str, Any]:
        guarded = inject_json_guardrail(messages, options.get("schema_hint"))
        system = "\n\n".join(m["content"] for m in guarded if m.get("role") == "system")
        turns = [
            {"role": m["role"], "content": m["content"]}
            for m in guarded
            if m.get("role") in ("user", "assistant")
        ]

        response = anthropic_client.messages.create(
            model=model_name,
            max_tokens=settings.ANTHROPIC_MAX_TOKENS,
            temperature=float(options.get("temperature", 0.0)),
            system=system,
            messages=turns,
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        usage = None
        if getattr(response, "usage", None) is not None:
            usage = {
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            }

        logger.debug(
            f"Anthropic JSON call returned {len(text)} chars",
            extra={"model": model_name},
        )
        meta = {"model": getattr(response, "model", None), "usage": usage}
        return {"data": text, "meta": meta}

    return call
