"""Configuration management for the context engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    # Environment variables should be set directly
    pass


DEFAULT_STOPWORDS = [
    "the", "a", "an", "and", "or", "but", "if", "then", "than", "to", "of", "for",
    "in", "on", "at", "by", "with", "as", "is", "are", "was", "were", "be", "been",
    "it", "this", "that", "these", "those", "we", "you", "your", "our", "their",
    "from", "about", "how", "what", "when", "where", "why", "which", "who", "whom",
    "can", "could", "should", "would", "will", "may", "might", "do", "does", "did",
    "not", "no", "yes", "up", "down", "over", "under", "out", "into", "more", "most",
    "less", "least", "very", "just", "also", "too", "such",
]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # OpenAI configuration (required)
    OPENAI_API_KEY: str = Field(..., description="OpenAI API key")

    # Anthropic configuration (optional, only for the Anthropic call capability)
    ANTHROPIC_API_KEY: str = Field(default="", description="Anthropic API key")

    # Environment
    CONTEXT_ENGINE_ENV: str = Field(
        default="dev", description="Environment: dev, test, staging, prod"
    )

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")
    EMBEDDING_CACHE_TTL_SECONDS: int = Field(
        default=86_400, description="Time-to-live for cached embedding vectors"
    )
    EMBEDDING_CACHE_PREFIX: str = Field(
        default="embedding", description="Key prefix for cached embedding vectors"
    )

    # Structured generation configuration
    GENERATION_MODEL: str = Field(
        default="gpt-4o-mini", description="Model for structured generation"
    )
    GENERATION_PRIMARY_TEMPERATURE: float = Field(
        default=0.2, description="Sampling temperature for the first attempt"
    )
    GENERATION_RETRY_TEMPERATURE: float = Field(
        default=0.0, description="Sampling temperature for the corrective retry"
    )
    GENERATION_TIMEOUT_SECONDS: float = Field(
        default=60.0, description="Client timeout for one LLM round trip"
    )
    ANTHROPIC_GENERATION_MODEL: str = Field(
        default="claude-sonnet-4-6", description="Model for the Anthropic call capability"
    )
    ANTHROPIC_MAX_TOKENS: int = Field(
        default=2048, description="Max output tokens for Anthropic calls"
    )

    # Prompt insight selection configuration
    PROMPT_ISA_ENABLED: bool = Field(default=True, description="Enable prompt insight selection")
    PROMPT_ISA_MAX_INSIGHTS: int = Field(
        default=3, description="Max bullets injected into a prompt"
    )
    PROMPT_ISA_MAX_CHUNK_CHARS: int = Field(default=600, description="Max chars per bullet")
    PROMPT_ISA_MIN_KEYWORD_HITS: int = Field(
        default=1, description="Min task keyword overlap for a chunk to be kept"
    )
    PROMPT_ISA_TASK_KEYWORDS_MAX: int = Field(
        default=12, description="Max keywords extracted from the task text"
    )
    PROMPT_ISA_DROP_IF_CONTAINS: list[str] = Field(
        default_factory=lambda: ["###", "##", "```"],
        description="Literal substrings that disqualify a chunk",
    )
    PROMPT_ISA_STRIP_MARKDOWN: bool = Field(default=True, description="Strip markdown from chunks")
    PROMPT_ISA_STOPWORDS: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STOPWORDS),
        description="Stopwords ignored during keyword extraction",
    )

    # Embedding rebuild scheduling configuration
    REBUILD_DEBOUNCE_SECONDS: int = Field(
        default=180, description="Delay and dedup window for rebuild requests"
    )
    REBUILD_TRACKED_FIELDS: list[str] = Field(
        default_factory=lambda: ["system_name"],
        description="Entity fields whose change always triggers a rebuild",
    )
    REBUILD_METADATA_FIELD: str = Field(
        default="metadata", description="Structured metadata field on entities"
    )
    REBUILD_TRACKED_METADATA_KEYS: list[str] = Field(
        default_factory=lambda: ["context_type", "primary_entity", "description"],
        description="Metadata sub-keys whose change triggers a rebuild",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
