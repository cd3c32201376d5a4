"""OpenAI embedding capabilities with vector validation."""

import math
from collections.abc import Callable, Sequence

from openai import OpenAI

from context_engine.core.config import get_settings
from context_engine.core.logging import get_logger

logger = get_logger(__name__)

EmbeddingCapability = Callable[[str], list[float]]
BatchEmbeddingCapability = Callable[[list[str]], list[list[float]]]


class EmbeddingError(Exception):
    """Base error for embedding computation."""


class EmptyEmbeddingError(EmbeddingError):
    """The embedding provider returned an empty or malformed vector."""


def _get_client() -> OpenAI:
    """Get OpenAI client instance."""
    settings = get_settings()
    return OpenAI(api_key=settings.OPENAI_API_KEY)


def validate_vector(vector: object, expected_dim: int | None = None) -> list[float]:
    """
    Check that a provider result is a non-empty vector of finite floats.

    Args:
        vector: Raw provider result
        expected_dim: Required length, or None to accept any length

    Returns:
        The vector as a list of floats

    Raises:
        EmptyEmbeddingError: If the vector is empty, malformed or the wrong size
    """
    if not isinstance(vector, Sequence) or isinstance(vector, (str, bytes)) or not vector:
        raise EmptyEmbeddingError("Empty embedding returned")

    values: list[float] = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise EmptyEmbeddingError(f"Embedding contains a non-numeric value: {value!r}")
        if not math.isfinite(value):
            raise EmptyEmbeddingError("Embedding contains a non-finite value")
        values.append(float(value))

    if expected_dim is not None and len(values) != expected_dim:
        raise EmptyEmbeddingError(
            f"Embedding dimension mismatch: expected {expected_dim}, got {len(values)}"
        )
    return values


def embed_texts(texts: list[str], model: str | None = None) -> list[list[float]]:
    """
    Generate embeddings for a list of texts using OpenAI.

    Args:
        texts: List of text strings to embed
        model: Model override (defaults to EMBEDDING_MODEL)

    Returns:
        List of embedding vectors, in input order

    Raises:
        EmptyEmbeddingError: If any vector is empty or has the wrong dimension
        Exception: If OpenAI API call fails
    """
    if not texts:
        return []

    settings = get_settings()
    client = _get_client()
    model_name = model or settings.EMBEDDING_MODEL

    try:
        response = client.embeddings.create(model=model_name, input=texts)

        embeddings = [
            validate_vector(item.embedding, settings.EMBEDDING_DIM) for item in response.data
        ]
        if len(embeddings) != len(texts):
            raise EmptyEmbeddingError(
                f"Embedding count mismatch: expected {len(texts)}, got {len(embeddings)}"
            )

        logger.info(
            f"Generated {len(embeddings)} embeddings using {model_name}",
            extra={"model": model_name, "count": len(embeddings)},
        )
        return embeddings

    except Exception as e:
        logger.error(f"Failed to generate embeddings: {e}")
        raise


def make_openai_embedding_capability(model: str | None = None) -> EmbeddingCapability:
    """Single-text embedding capability over embed_texts."""

    def embed_one(text: str) -> list[float]:
        return embed_texts([text], model=model)[0]

    return embed_one


def make_openai_batch_embedding_capability(model: str | None = None) -> BatchEmbeddingCapability:
    """Batch embedding capability over embed_texts."""

    def embed_many(texts: list[str]) -> list[list[float]]:
        return embed_texts(list(texts), model=model)

    return embed_many
