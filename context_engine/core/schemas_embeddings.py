"""Pydantic schemas for embedding caching and rebuild scheduling."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from context_engine.core.schemas_pipeline import RebuildReason


class CacheEntry(BaseModel):
    """A cached embedding vector, owned by EmbeddingCache."""

    key: str = Field(..., description="scope + model + content hash")
    vector: list[float] = Field(..., min_length=1)
    expires_at: datetime


class RebuildRequest(BaseModel):
    """Request to rebuild one entity's embedding artifact."""

    model_config = ConfigDict(frozen=True)

    entity_id: str = Field(..., min_length=1)
    reason: RebuildReason
    force: bool = False
    scope_id: str = ""
