"""LLM chain for generating a minimal writing structure for a post."""

from context_engine.core.insight_selector import render_insights_block
from context_engine.core.llm import CallCapability
from context_engine.core.logging import get_logger
from context_engine.core.schemas_generation import (
    ArrayFieldSpec,
    GenerationOutcome,
    GenerationSchema,
    StringFieldSpec,
)
from context_engine.core.schemas_insights import InsightResult
from context_engine.core.schemas_pipeline import LlmRequestType
from context_engine.core.structured_call import StructuredCallPolicy

logger = get_logger(__name__)

# ruff: noqa: E501
SYSTEM_PROMPT = """You generate a minimal writing structure only. Return STRICT JSON only.
Hard constraints:
- Output 3-6 sections only.
- Each section MUST be an object with keys: section, purpose (both strings).
- No content wording, no examples, no platform labels.
- Return top-level JSON with keys: structure (array), confidence (0-100), origin ('ephemeral')."""

FALLBACK_STRUCTURE = [
    {"section": "Hook", "purpose": "Create tension or interest"},
    {"section": "Context", "purpose": "Clarify what this is about"},
    {"section": "Core Point", "purpose": "State the main idea clearly"},
    {"section": "Takeaways", "purpose": "Explain or list the key points"},
    {"section": "CTA", "purpose": "Invite the reader to take an optional next step"},
]

STRUCTURE_SCHEMA = GenerationSchema(
    name="ephemeral_structure_v1",
    request_type=LlmRequestType.GENERATE,
    array_fields=(
        ArrayFieldSpec(
            name="structure",
            min_items=3,
            max_items=6,
            item_fields=(
                StringFieldSpec(name="section", max_chars=60),
                StringFieldSpec(name="purpose", max_chars=200),
            ),
        ),
    ),
    fallback_payload={"structure": FALLBACK_STRUCTURE},
    schema_hint='{"structure":[{"section":"Hook","purpose":"..."}],"confidence":0,"origin":"ephemeral"}',
)


def build_structure_messages(
    prompt: str,
    intent: str | None = None,
    length_band: str | None = None,
    shape_hint: str | None = None,
    insights: InsightResult | None = None,
) -> list[dict[str, str]]:
    """
    Build the chat messages for structure generation.

    Args:
        prompt: What the post is about
        intent: Optional requested intent
        length_band: Optional requested length band
        shape_hint: Optional requested shape hint
        insights: Optional selected insights, shown as topical context

    Returns:
        System and user messages
    """
    lines: list[str] = []
    if intent:
        lines.append(f"Requested intent (optional): {intent}")
    if length_band:
        lines.append(f"Requested length band (optional): {length_band}")
    if shape_hint:
        lines.append(f"Requested shape hint (optional): {shape_hint}")
    lines.append(f"Prompt: {prompt.strip()}")

    if insights is not None:
        block = render_insights_block(insights, heading="Topic insights (context only)")
        if block:
            lines.append("")
            lines.append(block)

    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "\n".join(lines)},
    ]


def generate_structure(
    prompt: str,
    call_capability: CallCapability,
    *,
    intent: str | None = None,
    length_band: str | None = None,
    shape_hint: str | None = None,
    insights: InsightResult | None = None,
    policy: StructuredCallPolicy | None = None,
) -> GenerationOutcome:
    """
    Generate a 3-6 section writing structure.

    Never fails: after a primary attempt and one stricter retry the fixed
    five-section skeleton is returned with provenance "fallback".

    Args:
        prompt: What the post is about
        call_capability: Performs one LLM round trip
        intent: Optional requested intent
        length_band: Optional requested length band
        shape_hint: Optional requested shape hint
        insights: Optional selected insights
        policy: Structured call policy (defaults to StructuredCallPolicy.from_settings())

    Returns:
        GenerationOutcome whose payload has a "structure" list
    """
    messages = build_structure_messages(prompt, intent, length_band, shape_hint, insights)
    policy = policy or StructuredCallPolicy.from_settings()
    outcome = policy.generate(messages, STRUCTURE_SCHEMA, call_capability)

    logger.info(
        f"Generated structure with {len(outcome.payload['structure'])} sections",
        extra={"provenance": outcome.provenance.value, "attempts": outcome.attempts},
    )
    return outcome
