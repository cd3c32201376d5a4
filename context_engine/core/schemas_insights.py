"""Pydantic schemas for prompt insight selection."""

from pydantic import BaseModel, ConfigDict, Field

from context_engine.core.schemas_pipeline import RejectReason


class KnowledgeChunk(BaseModel):
    """A unit of candidate knowledge text eligible for prompt injection."""

    text: str = Field(default="", description="Raw chunk text (may be empty)")
    is_vip: bool = Field(default=False, description="Priority chunk, still quality gated")


class InsightCandidate(BaseModel):
    """Scoring state of one chunk during a single selection call."""

    normalized_text: str = Field(default="", description="Normalized, length-capped text")
    keyword_hit_count: int = Field(default=0, ge=0, description="Overlap with task keywords")
    rejected_reason: RejectReason | None = Field(default=None, description="Why it was dropped")
    is_vip: bool = Field(default=False, description="Came from the VIP set")
    position: int = Field(default=0, ge=0, description="Input order across VIP then normal chunks")


class InsightDebug(BaseModel):
    """Counters describing what a selection call kept and dropped."""

    model_config = ConfigDict(frozen=True)

    kept: int = Field(default=0, ge=0, description="Number of bullets returned")
    dropped: dict[str, int] = Field(default_factory=dict, description="Reason → count")


class InsightResult(BaseModel):
    """Bullets ready for prompt injection plus debug counters."""

    model_config = ConfigDict(frozen=True)

    bullets: tuple[str, ...] = Field(default=(), description="Formatted single-line bullets")
    debug: InsightDebug = Field(default_factory=InsightDebug)


class InsightSelectorConfig(BaseModel):
    """Selector configuration. Every option is required."""

    model_config = ConfigDict(frozen=True)

    enabled: bool
    max_insights: int = Field(..., ge=0)
    max_chunk_chars: int = Field(..., ge=1)
    min_keyword_hits: int = Field(..., ge=0)
    task_keywords_max: int = Field(..., ge=0)
    drop_if_contains: frozenset[str]
    strip_markdown: bool
    stopwords: frozenset[str]
