"""
Similarity Search

Ranks stored historical patterns against a query embedding:
- Cosine similarity as a dot product of unit vectors
- Relevance from recency (half-life decay blended with a neutral baseline),
  matching technical signal and closeness of sentiment
- Weight = similarity x relevance; only similarity above the threshold is kept

Pattern matching is optional enrichment: ``search`` never raises and
degrades to an empty result when the store is unavailable.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np

from engine.models import ContextSnapshot, HistoricalPattern, SimilarPattern
from engine.pattern_store import PatternStoreClient
from engine.vectorizer import l2_normalize

logger = logging.getLogger(__name__)


class SimilaritySearch:
    def __init__(self, similarity_threshold: float = 0.7, half_life_days: float = 365.0,
                 top_k: int = 5):
        self.similarity_threshold = similarity_threshold
        self.half_life_days = half_life_days
        self.top_k = top_k

    @staticmethod
    def cosine_similarity(query: np.ndarray, candidate: np.ndarray) -> Optional[float]:
        """Dot product of the normalized vectors, or None when the shapes differ."""
        if query.shape != candidate.shape:
            return None
        similarity = float(np.dot(l2_normalize(query), l2_normalize(candidate)))
        return float(np.clip(similarity, -1.0, 1.0))

    def time_decay(self, timestamp: datetime, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timestamp.tzinfo)
        age_days = max((now - timestamp).total_seconds() / 86400.0, 0.0)
        return 0.5 ** (age_days / self.half_life_days)

    def relevance(self, pattern: HistoricalPattern, query: ContextSnapshot,
                  now: Optional[datetime] = None) -> float:
        """
        Contextual relevance of a stored pattern to the current snapshot.

        Old patterns keep at least half of the 0.5 base so they never drop to zero.
        """
        relevance = 0.5 * (0.5 + 0.5 * self.time_decay(pattern.timestamp, now))

        if pattern.context.technical.signal.upper() == query.technical.signal.upper():
            relevance += 0.2

        sentiment_gap = abs(pattern.context.sentiment.score - query.sentiment.score)
        relevance += max(0.0, 1.0 - sentiment_gap / 2.0) * 0.3

        return float(min(1.0, relevance))

    def find_similar(self, query_embedding: np.ndarray, query: ContextSnapshot,
             patterns: List[HistoricalPattern], top_k: Optional[int] = None,
             now: Optional[datetime] = None) -> List[SimilarPattern]:
        """Score, filter and order patterns; returns at most ``top_k`` matches."""
        top_k = self.top_k if top_k is None else top_k
        matches = []

        for pattern in patterns:
            similarity = self.cosine_similarity(query_embedding, pattern.embedding)
            if similarity is None or similarity <= self.similarity_threshold:
                continue

            relevance = self.relevance(pattern, query, now)
            matches.append(SimilarPattern(
                pattern=pattern,
                similarity=similarity,
                relevance=relevance,
                weight=similarity * relevance,
            ))

        matches.sort(key=lambda m: m.weight, reverse=True)
        logger.debug(f"{len(matches)} of {len(patterns)} patterns above similarity {self.similarity_threshold}")
        return matches[:max(top_k, 0)]

    async def search(self, store: PatternStoreClient, query_embedding: np.ndarray,
                     query: ContextSnapshot, limit: int,
                     where: Optional[Dict[str, Any]] = None,
                     top_k: Optional[int] = None) -> List[SimilarPattern]:
        """Fetch candidates from the store and rank them; any failure yields []."""
        try:
            patterns = await store.fetch(limit=limit, where=where)
            return self.find_similar(query_embedding, query, patterns, top_k=top_k)
        except Exception as e:
            logger.warning(f"Pattern matching failed for {query.ticker}: {e}")
            return []
