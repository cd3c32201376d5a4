"""Text representation of an entity for embedding."""

from collections.abc import Iterable, Mapping
from typing import Any

from context_engine.core.rebuild_scheduler import entity_field
from context_engine.core.text_normalizer import collapse_whitespace


def build_representation(
    entity: Any,
    sources: Iterable[Mapping[str, Any]] = (),
    *,
    metadata_field: str = "metadata",
    evidence_max_chars: int = 1000,
    evidence_item_max_chars: int = 160,
) -> str:
    """
    Render the text embedded for an entity.

    Lines: name, type, primary entity and summary (from metadata), then an
    "Evidence:" block sampled from related sources, capped at
    evidence_max_chars in total.

    Args:
        entity: Mapping or attribute-style entity snapshot
        sources: Related source records (title, platform, raw_text, metadata)
        metadata_field: Name of the structured metadata field
        evidence_max_chars: Cap for the whole evidence block
        evidence_item_max_chars: Cap for each evidence snippet

    Returns:
        Representation text ("" when the entity has nothing to embed)
    """
    meta = entity_field(entity, metadata_field)
    meta = meta if isinstance(meta, Mapping) else {}

    name = collapse_whitespace(
        str(entity_field(entity, "system_name") or entity_field(entity, "name") or "")
    )
    context_type = collapse_whitespace(str(meta.get("context_type") or ""))
    primary_entity = collapse_whitespace(str(meta.get("primary_entity") or ""))
    description = collapse_whitespace(str(meta.get("description") or ""))

    lines: list[str] = []
    if name:
        lines.append(f"Name: {name}")
    if context_type:
        lines.append(f"Type: {context_type}")
    if primary_entity:
        lines.append(f"Primary entity: {primary_entity}")
    if description:
        lines.append(f"Summary: {description}")

    evidence = build_evidence_summary(sources, evidence_max_chars, evidence_item_max_chars)
    if evidence:
        lines.append(evidence)

    return "\n".join(lines).strip()


def build_evidence_summary(
    sources: Iterable[Mapping[str, Any]],
    max_chars: int = 1000,
    item_max_chars: int = 160,
) -> str:
    """One "- [platform] label - snippet" line per source until max_chars is reached."""
    lines = ["Evidence:"]
    total = len(lines[0])

    for src in sources:
        if not isinstance(src, Mapping):
            continue
        title = collapse_whitespace(str(src.get("title") or ""))
        platform = collapse_whitespace(str(src.get("platform") or ""))
        meta = src.get("metadata") if isinstance(src.get("metadata"), Mapping) else {}
        meta_desc = collapse_whitespace(str(meta.get("description") or meta.get("summary") or ""))

        snippet = meta_desc or collapse_whitespace(str(src.get("raw_text") or ""))
        snippet = snippet[:item_max_chars]

        label = title or snippet[:60]
        if not label:
            continue

        line = "- "
        if platform:
            line += f"[{platform}] "
        line += label
        if snippet and snippet != label:
            line += f" - {snippet}"

        if total + len(line) + 1 > max_chars:
            break
        lines.append(line)
        total += len(line) + 1

    return "\n".join(lines) if len(lines) > 1 else ""
