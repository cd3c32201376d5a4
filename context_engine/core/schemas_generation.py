"""Pydantic schemas and payload checks for structured LLM generation."""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from context_engine.core.llm import parse_llm_json_dict
from context_engine.core.schemas_pipeline import LlmRequestType, Provenance


class StringFieldSpec(BaseModel):
    """A string field, trimmed and clipped to max_chars during normalization."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    max_chars: int = Field(..., ge=1, description="Clip length (clipping never rejects)")
    required: bool = Field(default=True, description="Must be non-blank after trimming")


class ArrayFieldSpec(BaseModel):
    """An array of objects whose element count must fall inside [min_items, max_items]."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    min_items: int = Field(default=0, ge=0)
    max_items: int = Field(..., ge=0)
    item_fields: tuple[StringFieldSpec, ...] = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_bounds(self) -> "ArrayFieldSpec":
        if self.min_items > self.max_items:
            raise ValueError(
                f"{self.name}: min_items ({self.min_items}) exceeds max_items ({self.max_items})"
            )
        return self


class GenerationSchema(BaseModel):
    """
    Required object shape for one kind of structured request.

    The fallback payload is checked against the schema at declaration time,
    so the fallback state can never produce a non-conforming object.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1)
    request_type: LlmRequestType
    string_fields: tuple[StringFieldSpec, ...] = ()
    array_fields: tuple[ArrayFieldSpec, ...] = ()
    fallback_payload: dict[str, Any]
    schema_hint: str = Field(default="", description="JSON example shown to the model")

    @model_validator(mode="after")
    def _check_fallback(self) -> "GenerationSchema":
        if not self.string_fields and not self.array_fields:
            raise ValueError(f"{self.name}: schema declares no fields")
        normalized = normalize_payload(self, self.fallback_payload)
        errors = payload_errors(self, normalized)
        if errors:
            raise ValueError(f"{self.name}: fallback payload violates schema: {'; '.join(errors)}")
        return self

    def hint(self) -> str:
        """Schema hint for the model, derived from the field specs when not given."""
        if self.schema_hint:
            return self.schema_hint
        example: dict[str, Any] = {f.name: "..." for f in self.string_fields}
        for array in self.array_fields:
            example[array.name] = [{f.name: "..." for f in array.item_fields}]
        return json.dumps(example)


class ModelMeta(BaseModel):
    """Model name and token usage reported by the call capability."""

    model_config = ConfigDict(frozen=True)

    model: str | None = None
    usage: dict[str, Any] | None = None


class GenerationOutcome(BaseModel):
    """Terminal result of a structured call. Always present, never an error."""

    model_config = ConfigDict(frozen=True)

    payload: dict[str, Any]
    provenance: Provenance
    model_meta: ModelMeta = Field(default_factory=ModelMeta)
    attempts: int = Field(default=0, ge=0, le=2, description="External calls made")


def normalize_payload(schema: GenerationSchema, raw: Any) -> dict[str, Any] | None:
    """
    Coerce a raw model payload into the schema's shape.

    JSON strings are parsed (code fences tolerated). Only declared fields
    are kept; strings are trimmed and clipped; array elements that are not
    objects or miss a required sub-field are dropped.

    Returns:
        Normalized payload, or None if raw is not an object
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = parse_llm_json_dict(raw.decode() if isinstance(raw, bytes) else raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None

    if not isinstance(raw, dict):
        return None

    out: dict[str, Any] = {}
    for field in schema.string_fields:
        out[field.name] = _clip(raw.get(field.name), field.max_chars)

    for array in schema.array_fields:
        items = raw.get(array.name)
        rows: list[dict[str, str]] = []
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            row = {f.name: _clip(item.get(f.name), f.max_chars) for f in array.item_fields}
            if any(f.required and not row[f.name] for f in array.item_fields):
                continue
            rows.append(row)
        out[array.name] = rows

    return out


def payload_errors(schema: GenerationSchema, payload: dict[str, Any] | None) -> list[str]:
    """List the ways a normalized payload violates the schema (empty when valid)."""
    if payload is None:
        return ["payload is not a JSON object"]

    errors: list[str] = []
    for field in schema.string_fields:
        if field.required and not payload.get(field.name):
            errors.append(f"{field.name} is blank")

    for array in schema.array_fields:
        count = len(payload.get(array.name) or [])
        if count < array.min_items or count > array.max_items:
            errors.append(
                f"{array.name} has {count} valid items, "
                f"expected {array.min_items}-{array.max_items}"
            )

    return errors


def _clip(value: Any, max_chars: int) -> str:
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return ""
    return value.strip()[:max_chars].rstrip()
