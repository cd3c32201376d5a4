"""Prompt insight selection.

Filters an already-retrieved set of knowledge chunks down to a few short,
relevant, artifact-free bullets that are safe to inject into a generation
prompt. Selection is lexical: a chunk is kept when enough of its keywords
overlap the task keywords.

Pipeline per call:
1. Extract task keywords
2. For VIP chunks then normal chunks: reject on structural markers in the
   raw text, normalize and clip, reject on low keyword overlap
3. Rank (VIP first, then keyword hits, then input order) and cap
4. Format bullets
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from context_engine.core.config import Settings, get_settings
from context_engine.core.logging import get_logger, log_event
from context_engine.core.schemas_insights import (
    InsightCandidate,
    InsightDebug,
    InsightResult,
    InsightSelectorConfig,
    KnowledgeChunk,
)
from context_engine.core.schemas_pipeline import RejectReason
from context_engine.core.text_normalizer import (
    collapse_whitespace,
    extract_keywords,
    strip_markdown,
    truncate_sentence,
)

logger = get_logger(__name__)

# One non-hyphen character, then "- ", so bullets never read as markdown list items
BULLET_MARKER = "•- "

_TEXT_KEYS = ("text", "chunk_text", "content")


def insight_config_from_settings(settings: Settings) -> InsightSelectorConfig:
    """Build a fully specified selector config from PROMPT_ISA_* settings."""
    return InsightSelectorConfig(
        enabled=settings.PROMPT_ISA_ENABLED,
        max_insights=settings.PROMPT_ISA_MAX_INSIGHTS,
        max_chunk_chars=settings.PROMPT_ISA_MAX_CHUNK_CHARS,
        min_keyword_hits=settings.PROMPT_ISA_MIN_KEYWORD_HITS,
        task_keywords_max=settings.PROMPT_ISA_TASK_KEYWORDS_MAX,
        drop_if_contains=frozenset(settings.PROMPT_ISA_DROP_IF_CONTAINS),
        strip_markdown=settings.PROMPT_ISA_STRIP_MARKDOWN,
        stopwords=frozenset(settings.PROMPT_ISA_STOPWORDS),
    )


def build_insights(
    task: str,
    content_type: str,
    chunks: Sequence[Any],
    vip_chunks: Sequence[Any],
    config: InsightSelectorConfig,
) -> InsightResult:
    """
    Select and format prompt insights for a generation task.

    VIP chunks pass through the same gates as normal chunks; they only rank
    first. Malformed chunks never raise: unreadable or empty text is
    rejected as low_keyword_hits.

    Args:
        task: Task description the insights must be relevant to
        content_type: Kind of content being generated (used for logging)
        chunks: Candidate chunks (KnowledgeChunk, mapping or str)
        vip_chunks: Priority candidate chunks
        config: Selector configuration

    Returns:
        InsightResult with at most config.max_insights bullets
    """
    if not config.enabled:
        return InsightResult()

    task_keywords = extract_keywords(
        task if isinstance(task, str) else "",
        config.stopwords,
        config.task_keywords_max,
    )
    markers = [m for m in config.drop_if_contains if m]

    dropped = {reason.value: 0 for reason in RejectReason}
    kept: list[InsightCandidate] = []

    tagged = [(c, True) for c in vip_chunks or ()] + [(c, False) for c in chunks or ()]
    for position, (raw_chunk, from_vip) in enumerate(tagged):
        candidate = _score_chunk(raw_chunk, from_vip, position, task_keywords, markers, config)
        if candidate.rejected_reason is not None:
            dropped[candidate.rejected_reason.value] += 1
            continue
        kept.append(candidate)

    ranked = sorted(kept, key=lambda c: (not c.is_vip, -c.keyword_hit_count, c.position))
    selected = ranked[: config.max_insights]
    dropped[RejectReason.OVER_CAP.value] += len(ranked) - len(selected)

    bullets = tuple(format_bullet(c.normalized_text) for c in selected)

    log_event(
        logger,
        logging.DEBUG,
        "insights.selected",
        content_type=content_type,
        task_keywords=len(task_keywords),
        candidates=len(tagged),
        kept=len(bullets),
        **{f"dropped_{k}": v for k, v in dropped.items()},
    )

    return InsightResult(
        bullets=bullets,
        debug=InsightDebug(kept=len(bullets), dropped=dropped),
    )


def build_insights_from_settings(
    task: str,
    content_type: str,
    chunks: Sequence[Any],
    vip_chunks: Sequence[Any] = (),
) -> InsightResult:
    """build_insights using the PROMPT_ISA_* settings."""
    return build_insights(
        task, content_type, chunks, vip_chunks, insight_config_from_settings(get_settings())
    )


def format_bullet(text: str) -> str:
    """Prefix normalized text with the bullet marker."""
    return f"{BULLET_MARKER}{text}"


def render_insights_block(result: InsightResult, heading: str = "Relevant insights") -> str:
    """
    Render bullets as a prompt section.

    Returns:
        "<heading>:" followed by one bullet per line, or "" with no bullets
    """
    if not result.bullets:
        return ""
    return "\n".join([f"{heading}:", *result.bullets])


def _score_chunk(
    raw_chunk: Any,
    from_vip: bool,
    position: int,
    task_keywords: set[str],
    markers: list[str],
    config: InsightSelectorConfig,
) -> InsightCandidate:
    raw_text, flagged_vip = _read_chunk(raw_chunk)
    is_vip = from_vip or flagged_vip

    # Structural markers are checked on the raw text, before normalization
    if any(marker in raw_text for marker in markers):
        return InsightCandidate(
            rejected_reason=RejectReason.CONTAINS_HEADING, is_vip=is_vip, position=position
        )

    text = strip_markdown(raw_text) if config.strip_markdown else raw_text
    text = truncate_sentence(collapse_whitespace(text), config.max_chunk_chars)

    hits = len(extract_keywords(text, config.stopwords, len(text)) & task_keywords)
    if not text or hits < config.min_keyword_hits:
        return InsightCandidate(
            normalized_text=text,
            keyword_hit_count=hits,
            rejected_reason=RejectReason.LOW_KEYWORD_HITS,
            is_vip=is_vip,
            position=position,
        )

    return InsightCandidate(
        normalized_text=text, keyword_hit_count=hits, is_vip=is_vip, position=position
    )


def _read_chunk(raw_chunk: Any) -> tuple[str, bool]:
    """Return (text, is_vip) from any accepted chunk shape; unreadable → ("", False)."""
    if isinstance(raw_chunk, KnowledgeChunk):
        return raw_chunk.text, raw_chunk.is_vip
    if isinstance(raw_chunk, str):
        return raw_chunk, False
    if isinstance(raw_chunk, Mapping):
        for key in _TEXT_KEYS:
            value = raw_chunk.get(key)
            if isinstance(value, str):
                return value, bool(raw_chunk.get("is_vip", False))
        return "", bool(raw_chunk.get("is_vip", False))
    return "", False
