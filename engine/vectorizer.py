"""
Context Vectorizer

Turns a ContextSnapshot into a fixed-length, L2-normalized embedding so that
cosine similarity between contexts reduces to a dot product.

The snapshot is rendered to a canonical token string (numeric values are
quantized) and handed to a pluggable TextEmbedder:
- HashingTextEmbedder: signed feature hashing, deterministic, no model needed
- SentenceTransformerEmbedder: sentence-transformers model (all-MiniLM-L6-v2, 384 dims)

Whatever the embedder returns is re-normalized and checked against the
configured dimension.
"""

import hashlib
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import numpy as np

from engine.models import ContextSnapshot

logger = logging.getLogger(__name__)

DEFAULT_DIMENSION = 384


def l2_normalize(vector: np.ndarray) -> np.ndarray:
    """Return a unit-norm copy; the zero vector maps to the first basis vector."""
    vector = np.asarray(vector, dtype=float)
    norm = np.linalg.norm(vector)
    if norm == 0 or not np.isfinite(norm):
        unit = np.zeros_like(vector)
        if unit.size:
            unit[0] = 1.0
        return unit
    return vector / norm


class TextEmbedder(ABC):
    """Capability: map text to a fixed-length vector"""

    dimension: int = DEFAULT_DIMENSION

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        ...


class HashingTextEmbedder(TextEmbedder):
    """
    Signed feature hashing over whitespace tokens.

    Each token is hashed with blake2b; the hash selects a slot and a sign.
    Stable across processes (unlike the builtin hash()).
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION):
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.dimension = dimension

    def embed(self, text: str) -> np.ndarray:
        vector = np.zeros(self.dimension, dtype=float)
        for token in text.lower().split():
            digest = hashlib.blake2b(token.encode('utf-8'), digest_size=8).digest()
            value = int.from_bytes(digest, 'little')
            index = value % self.dimension
            sign = -1.0 if (value >> 63) & 1 else 1.0
            vector[index] += sign
        return l2_normalize(vector)


class SentenceTransformerEmbedder(TextEmbedder):
    """Embeds text with a sentence-transformers model (install the 'embeddings' extra)."""

    def __init__(self, model_name: str = 'sentence-transformers/all-MiniLM-L6-v2'):
        from sentence_transformers import SentenceTransformer

        logger.info(f"Loading embedding model: {model_name}")
        self.model = SentenceTransformer(model_name)
        self.dimension = int(self.model.get_sentence_embedding_dimension())
        logger.info(f"Embedding model loaded. Dimension: {self.dimension}")

    def embed(self, text: str) -> np.ndarray:
        vector = self.model.encode([text], normalize_embeddings=True)[0]
        return np.asarray(vector, dtype=float)


def _news_bucket(count: int) -> str:
    if count <= 0:
        return 'none'
    if count <= 5:
        return 'low'
    if count <= 10:
        return 'medium'
    return 'high'


def _correlation_bucket(value: Optional[float]) -> str:
    if value is None:
        return 'unknown'
    if value >= 0.7:
        return 'high'
    if value >= 0.3:
        return 'medium'
    if value > -0.3:
        return 'low'
    return 'negative'


def _slug(value) -> str:
    return str(value).strip().lower().replace(' ', '_')


class ContextVectorizer:
    """Deterministic ContextSnapshot -> embedding mapping"""

    def __init__(self, embedder: Optional[TextEmbedder] = None,
                 dimension: int = DEFAULT_DIMENSION):
        self.embedder = embedder or HashingTextEmbedder(dimension)
        self.dimension = dimension
        if self.embedder.dimension != dimension:
            raise ValueError(
                f"Embedder dimension {self.embedder.dimension} does not match configured {dimension}"
            )

    def tokens(self, snapshot: ContextSnapshot) -> List[str]:
        """Canonical tokens for a snapshot. Price levels are left out so contexts compare across time."""
        market = snapshot.market
        return [
            f"ticker={_slug(snapshot.ticker)}",
            f"horizon={_slug(snapshot.time_horizon.value)}",
            f"technical_signal={_slug(snapshot.technical.signal)}",
            f"technical_confidence={snapshot.technical.confidence:.1f}",
            f"technical_trend={_slug(snapshot.technical.trend)}",
            f"sentiment_label={_slug(snapshot.sentiment.label)}",
            f"sentiment_score={snapshot.sentiment.score:.1f}",
            f"news_volume={_news_bucket(snapshot.sentiment.news_volume)}",
            f"market_condition={_slug(market.condition.value)}",
            f"market_trend={_slug(market.trend)}",
            f"volatility={_slug(market.volatility)}",
            f"volume={_slug(market.volume)}",
            f"sector={_slug(market.sector)}",
            f"market_cap={_slug(market.market_cap)}",
            f"corr_market={_correlation_bucket(market.correlation('market'))}",
            f"corr_sector={_correlation_bucket(market.correlation('sector'))}",
        ]

    def render(self, snapshot: ContextSnapshot) -> str:
        return ' '.join(self.tokens(snapshot))

    def vectorize(self, snapshot: ContextSnapshot) -> np.ndarray:
        """
        Embed a snapshot.

        Returns:
            Unit-norm vector of length ``self.dimension``
        """
        vector = np.asarray(self.embedder.embed(self.render(snapshot)), dtype=float)
        if vector.shape != (self.dimension,):
            raise ValueError(f"Embedder returned shape {vector.shape}, expected ({self.dimension},)")
        return l2_normalize(vector)


EMBEDDERS = ('hashing', 'sentence-transformers')


def build_vectorizer(embedder: str = 'hashing', dimension: int = DEFAULT_DIMENSION,
                     model_name: str = 'sentence-transformers/all-MiniLM-L6-v2') -> ContextVectorizer:
    """
    Build a vectorizer for a named embedder.

    Raises:
        ValueError: unknown embedder, or a model whose dimension differs from ``dimension``
    """
    if embedder == 'hashing':
        return ContextVectorizer(HashingTextEmbedder(dimension), dimension)
    if embedder == 'sentence-transformers':
        return ContextVectorizer(SentenceTransformerEmbedder(model_name), dimension)
    raise ValueError(f"Unknown embedder '{embedder}', expected one of {EMBEDDERS}")
