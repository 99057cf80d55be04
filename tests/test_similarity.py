"""
Unit tests for similarity search over historical patterns.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import numpy as np
import pytest

from conftest import make_pattern, pattern_row, vector_with_cosine
from engine.pattern_store import PatternStoreClient
from engine.similarity import SimilaritySearch
from engine.vectorizer import ContextVectorizer
from storage.adapter import StorageError
from storage.memory import InMemoryStorage


@pytest.fixture
def search():
    return SimilaritySearch(similarity_threshold=0.7, half_life_days=365, top_k=5)


@pytest.fixture
def query_embedding(snapshot):
    return ContextVectorizer().vectorize(snapshot)


class TestFindSimilar:

    COSINES = [0.95, 0.9, 0.85, 0.8, 0.75, 0.71, 0.69, 0.65, 0.3, -0.2]

    @pytest.fixture
    def patterns(self, snapshot, query_embedding):
        return [
            make_pattern(snapshot, vector_with_cosine(query_embedding, c, seed=i),
                         pattern_id=f"pattern_{i:04d}", days_old=10 * i)
            for i, c in enumerate(self.COSINES)
        ]

    def test_never_returns_similarity_at_or_below_threshold(self, search, snapshot, query_embedding, patterns):
        matches = search.find_similar(query_embedding, snapshot, patterns, top_k=20)
        assert matches
        assert all(m.similarity > 0.7 for m in matches)
        assert len(matches) == 6

    def test_returns_at_most_k(self, search, snapshot, query_embedding, patterns):
        assert len(search.find_similar(query_embedding, snapshot, patterns)) == 5
        assert len(search.find_similar(query_embedding, snapshot, patterns, top_k=2)) == 2

    def test_sorted_by_weight_descending(self, search, snapshot, query_embedding, patterns):
        matches = search.find_similar(query_embedding, snapshot, patterns, top_k=20)
        weights = [m.weight for m in matches]
        assert weights == sorted(weights, reverse=True)
        for m in matches:
            assert m.weight == pytest.approx(m.similarity * m.relevance)

    def test_skips_wrong_dimension_embeddings(self, search, snapshot, query_embedding):
        short = make_pattern(snapshot, np.ones(10))
        assert search.find_similar(query_embedding, snapshot, [short]) == []


class TestRelevance:

    def test_half_life_halves_decay(self, search):
        now = datetime(2026, 1, 1)
        assert search.time_decay(now - timedelta(days=365), now) == pytest.approx(0.5)
        assert search.time_decay(now, now) == pytest.approx(1.0)

    def test_fresh_matching_pattern_is_fully_relevant(self, search, snapshot, query_embedding):
        pattern = make_pattern(snapshot, query_embedding, days_old=0)
        assert search.relevance(pattern, snapshot) == pytest.approx(1.0)

    def test_old_pattern_keeps_baseline(self, search, snapshot, query_embedding):
        pattern = make_pattern(snapshot, query_embedding, days_old=365 * 50)
        # 0.25 baseline + signal match + identical sentiment
        assert search.relevance(pattern, snapshot) == pytest.approx(0.75, abs=1e-3)


class TestSearch:

    @pytest.mark.asyncio
    async def test_storage_failure_degrades_to_empty(self, search, snapshot, query_embedding):
        storage = InMemoryStorage()
        storage.select = AsyncMock(side_effect=StorageError('connection refused'))
        store = PatternStoreClient(storage)

        assert await search.search(store, query_embedding, snapshot, limit=50) == []

    @pytest.mark.asyncio
    async def test_reads_patterns_from_storage(self, search, snapshot, query_embedding):
        storage = InMemoryStorage({'historical_patterns': [
            pattern_row(snapshot, query_embedding, 'pattern_a'),
            pattern_row(snapshot, vector_with_cosine(query_embedding, 0.2), 'pattern_b'),
            {'id': 'broken'},
        ]})
        store = PatternStoreClient(storage, embedding_dimension=384)

        matches = await search.search(store, query_embedding, snapshot, limit=50)
        assert [m.pattern.pattern_id for m in matches] == ['pattern_a']
        assert matches[0].similarity == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_rows_without_timestamp_are_skipped(self, search, snapshot, query_embedding):
        undated = pattern_row(snapshot, query_embedding, 'pattern_undated', days_old=3650)
        del undated['timestamp']
        garbled = pattern_row(snapshot, query_embedding, 'pattern_garbled')
        garbled['timestamp'] = 'last tuesday'
        storage = InMemoryStorage({'historical_patterns': [
            undated, garbled, pattern_row(snapshot, query_embedding, 'pattern_dated', days_old=3650),
        ]})

        matches = await search.search(PatternStoreClient(storage), query_embedding, snapshot, limit=50)
        assert [m.pattern.pattern_id for m in matches] == ['pattern_dated']
        assert matches[0].relevance < 0.9

    @pytest.mark.asyncio
    async def test_utc_z_timestamps_parse(self, search, snapshot, query_embedding):
        row = pattern_row(snapshot, query_embedding, 'pattern_utc')
        row['timestamp'] = '2024-03-01T14:30:00.000Z'
        store = PatternStoreClient(InMemoryStorage({'historical_patterns': [row]}))

        patterns = await store.fetch(limit=10)
        assert len(patterns) == 1
        assert patterns[0].timestamp.year == 2024
        assert patterns[0].timestamp.utcoffset() == timedelta(0)

        matches = search.find_similar(query_embedding, snapshot, patterns)
        assert [m.pattern.pattern_id for m in matches] == ['pattern_utc']
