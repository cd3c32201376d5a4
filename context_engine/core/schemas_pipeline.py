"""Closed taxonomies shared across the insight → generation → cache pipeline."""

from enum import Enum


class LlmPipelineStage(str, Enum):
    """Pipeline stage an LLM call belongs to."""

    INGESTION = "ingestion"
    RETRIEVAL = "retrieval"
    GENERATION = "generation"
    REPAIR = "repair"
    EMBEDDING = "embedding"


class LlmRequestType(str, Enum):
    """Recognized kinds of LLM request."""

    INFER_CONTEXT = "infer_context"
    NORMALIZE = "normalize"
    CHUNK_EXTRACT = "chunk_extract"
    EMBED = "embed"
    GENERATE = "generate"
    REPAIR = "repair"
    CLASSIFY = "classify"
    REPLAY = "replay"
    SCORE_FOLDER_CANDIDATES = "score_folder_candidates"
    TEMPLATE_PARSE = "template_parse"
    FAITHFULNESS_AUDIT = "faithfulness_audit"
    SYNTHETIC_QA = "synthetic_qa_min"
    GENERATION_GRADER = "generation_grader"
    REFLEXION_CRITIQUE = "reflexion_critique"
    REFLEXION_REFINE = "reflexion_refine"


class Provenance(str, Enum):
    """Which state of the structured call produced a payload."""

    PRIMARY = "primary"
    RETRIED = "retried"
    FALLBACK = "fallback"


class RejectReason(str, Enum):
    """Why the insight selector dropped a chunk."""

    CONTAINS_HEADING = "contains_heading"
    LOW_KEYWORD_HITS = "low_keyword_hits"
    OVER_CAP = "over_cap"


class RebuildReason(str, Enum):
    """Why an embedding rebuild was requested."""

    CREATED = "created"
    NAME_CHANGED = "name_changed"
    METADATA_CHANGED = "metadata_changed"
    MANUAL = "manual"
    BACKFILL = "backfill"
