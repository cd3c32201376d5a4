"""Resilient structured generation.

Every structured LLM request runs through the same three-state machine:

    PRIMARY  -- valid -->  SUCCESS(primary)
       | invalid / unparsable / capability error
    RETRY    -- valid -->  SUCCESS(retried)
       | invalid / unparsable / capability error
    FALLBACK ---------->  SUCCESS(fallback)

PRIMARY runs at a low non-zero temperature. RETRY appends a corrective
instruction to the system message and runs at temperature 0. FALLBACK
returns the schema's fixed payload without calling out. At most two
external calls are made and a GenerationOutcome is always returned.
"""

import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any

from context_engine.core.config import get_settings
from context_engine.core.llm import CallCapability
from context_engine.core.logging import get_logger, log_event
from context_engine.core.schemas_generation import (
    GenerationOutcome,
    GenerationSchema,
    ModelMeta,
    normalize_payload,
    payload_errors,
)
from context_engine.core.schemas_pipeline import Provenance

logger = get_logger(__name__)

CORRECTIVE_INSTRUCTION = (
    "IMPORTANT: Your previous response was invalid. "
    "Return ONLY JSON with the required shape."
)


class CallState(str, Enum):
    """States of the structured call machine."""

    PRIMARY = "primary"
    RETRY = "retry"
    FALLBACK = "fallback"


class StructuredCallPolicy:
    """Primary attempt, one stricter retry, then a deterministic fallback."""

    def __init__(
        self,
        primary_temperature: float = 0.2,
        retry_temperature: float = 0.0,
        corrective_instruction: str = CORRECTIVE_INSTRUCTION,
    ):
        if primary_temperature <= 0:
            raise ValueError("primary_temperature must be greater than 0")
        if retry_temperature < 0:
            raise ValueError("retry_temperature must not be negative")
        self.primary_temperature = primary_temperature
        self.retry_temperature = retry_temperature
        self.corrective_instruction = corrective_instruction

    @classmethod
    def from_settings(cls) -> "StructuredCallPolicy":
        settings = get_settings()
        return cls(
            primary_temperature=settings.GENERATION_PRIMARY_TEMPERATURE,
            retry_temperature=settings.GENERATION_RETRY_TEMPERATURE,
        )

    def generate(
        self,
        messages: Sequence[Mapping[str, str]],
        schema: GenerationSchema,
        call_capability: CallCapability,
    ) -> GenerationOutcome:
        """
        Run the state machine to a terminal outcome.

        Args:
            messages: Ordered chat messages ({role, content}); not mutated
            schema: Required payload shape and fallback
            call_capability: Performs one LLM round trip

        Returns:
            GenerationOutcome with provenance primary, retried or fallback
        """
        base = [dict(m) for m in messages]

        payload, meta = self._attempt(CallState.PRIMARY, base, schema, call_capability)
        if payload is not None:
            return GenerationOutcome(
                payload=payload, provenance=Provenance.PRIMARY, model_meta=meta, attempts=1
            )

        strict = with_corrective_instruction(base, self.corrective_instruction)
        payload, meta = self._attempt(CallState.RETRY, strict, schema, call_capability)
        if payload is not None:
            return GenerationOutcome(
                payload=payload, provenance=Provenance.RETRIED, model_meta=meta, attempts=2
            )

        log_event(
            logger,
            logging.WARNING,
            "generation.fallback",
            f"Both attempts failed for {schema.name}; using fallback payload",
            schema=schema.name,
            request_type=schema.request_type.value,
        )
        return GenerationOutcome(
            payload=normalize_payload(schema, schema.fallback_payload) or {},
            provenance=Provenance.FALLBACK,
            model_meta=ModelMeta(),
            attempts=2,
        )

    def _attempt(
        self,
        state: CallState,
        messages: list[dict[str, str]],
        schema: GenerationSchema,
        call_capability: CallCapability,
    ) -> tuple[dict[str, Any] | None, ModelMeta]:
        """One external call plus validation. Returns (payload or None, meta)."""
        temperature = (
            self.primary_temperature if state is CallState.PRIMARY else self.retry_temperature
        )
        options = {"temperature": temperature, "schema_hint": schema.hint()}

        try:
            response = call_capability(messages, options)
        except Exception as e:
            # Transport errors and caller timeouts count as a failed attempt
            log_event(
                logger,
                logging.WARNING,
                f"generation.{state.value}_error",
                f"Call capability raised during {state.value} attempt: {e}",
                schema=schema.name,
                error_type=type(e).__name__,
            )
            return None, ModelMeta()

        data = response.get("data") if isinstance(response, Mapping) else None
        meta = _read_meta(response.get("meta") if isinstance(response, Mapping) else None)

        payload = normalize_payload(schema, data)
        errors = payload_errors(schema, payload)
        if errors:
            log_event(
                logger,
                logging.WARNING,
                f"generation.{state.value}_invalid",
                f"{state.value} attempt failed validation: {'; '.join(errors)}",
                schema=schema.name,
                model=meta.model,
            )
            return None, meta

        log_event(
            logger,
            logging.DEBUG,
            f"generation.{state.value}_ok",
            schema=schema.name,
            model=meta.model,
        )
        return payload, meta


def with_corrective_instruction(
    messages: list[dict[str, str]], instruction: str = CORRECTIVE_INSTRUCTION
) -> list[dict[str, str]]:
    """Copy of messages with the instruction appended to the system message (added if absent)."""
    out = [dict(m) for m in messages]
    for message in out:
        if message.get("role") == "system":
            message["content"] = f"{message.get('content', '')}\n\n{instruction}".lstrip()
            return out
    return [{"role": "system", "content": instruction}, *out]


def generate(
    messages: Sequence[Mapping[str, str]],
    schema: GenerationSchema,
    call_capability: CallCapability,
) -> GenerationOutcome:
    """Run a structured call with the policy configured in settings."""
    return StructuredCallPolicy.from_settings().generate(messages, schema, call_capability)


def _read_meta(raw: Any) -> ModelMeta:
    if not isinstance(raw, Mapping):
        return ModelMeta()
    model = raw.get("model")
    usage = raw.get("usage")
    return ModelMeta(
        model=model if isinstance(model, str) else None,
        usage=dict(usage) if isinstance(usage, Mapping) else None,
    )
