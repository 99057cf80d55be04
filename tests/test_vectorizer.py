"""
Unit tests for the context vectorizer and text embedders.
"""

import sys
import types
from dataclasses import replace
from unittest.mock import MagicMock

import numpy as np
import pytest

from engine.vectorizer import (
    ContextVectorizer, HashingTextEmbedder, SentenceTransformerEmbedder, build_vectorizer, l2_normalize
)


class TestHashingTextEmbedder:

    def test_same_text_same_vector(self):
        embedder = HashingTextEmbedder()
        np.testing.assert_array_equal(embedder.embed('ticker=aapl trend=up'),
                                      embedder.embed('ticker=aapl trend=up'))

    def test_output_is_unit_norm(self):
        vector = HashingTextEmbedder(dimension=64).embed('a b c d e f')
        assert vector.shape == (64,)
        assert np.linalg.norm(vector) == pytest.approx(1.0, abs=1e-6)

    def test_rejects_non_positive_dimension(self):
        with pytest.raises(ValueError):
            HashingTextEmbedder(dimension=0)


class TestL2Normalize:

    def test_zero_vector_maps_to_first_basis_vector(self):
        unit = l2_normalize(np.zeros(4))
        np.testing.assert_array_equal(unit, [1.0, 0.0, 0.0, 0.0])

    def test_scales_to_unit_norm(self):
        unit = l2_normalize(np.array([3.0, 4.0]))
        np.testing.assert_allclose(unit, [0.6, 0.8])


class TestContextVectorizer:

    @pytest.fixture
    def vectorizer(self):
        return ContextVectorizer()

    def test_identical_snapshots_give_identical_embeddings(self, vectorizer, snapshot):
        twin = replace(snapshot)
        np.testing.assert_array_equal(vectorizer.vectorize(snapshot), vectorizer.vectorize(twin))

    def test_embedding_has_unit_norm_and_configured_dimension(self, vectorizer, snapshot):
        embedding = vectorizer.vectorize(snapshot)
        assert embedding.shape == (384,)
        assert np.linalg.norm(embedding) == pytest.approx(1.0, abs=1e-6)

    def test_different_contexts_differ(self, vectorizer, snapshot):
        bearish = replace(snapshot, technical=replace(snapshot.technical, signal='SELL'))
        assert not np.allclose(vectorizer.vectorize(snapshot), vectorizer.vectorize(bearish))

    def test_price_levels_do_not_change_embedding(self, vectorizer, snapshot):
        moved = replace(snapshot, technical=replace(snapshot.technical, support=(100.0,), resistance=(300.0,)))
        np.testing.assert_array_equal(vectorizer.vectorize(snapshot), vectorizer.vectorize(moved))

    def test_render_is_canonical_token_string(self, vectorizer, snapshot):
        text = vectorizer.render(snapshot)
        assert 'ticker=aapl' in text
        assert 'horizon=medium_term' in text
        assert 'market_condition=bullish' in text

    def test_embedder_dimension_mismatch_rejected(self):
        with pytest.raises(ValueError):
            ContextVectorizer(HashingTextEmbedder(dimension=128), dimension=384)


class TestSentenceTransformerEmbedder:

    @pytest.fixture
    def model(self, monkeypatch):
        model = MagicMock()
        model.get_sentence_embedding_dimension.return_value = 8
        model.encode.side_effect = lambda texts, normalize_embeddings: np.ones((len(texts), 8)) / np.sqrt(8)

        module = types.ModuleType('sentence_transformers')
        module.SentenceTransformer = MagicMock(return_value=model)
        monkeypatch.setitem(sys.modules, 'sentence_transformers', module)
        return model

    def test_dimension_comes_from_model(self, model):
        embedder = SentenceTransformerEmbedder('local/minilm')
        assert embedder.dimension == 8
        sys.modules['sentence_transformers'].SentenceTransformer.assert_called_once_with('local/minilm')

    def test_encodes_normalized(self, model, snapshot):
        vectorizer = ContextVectorizer(SentenceTransformerEmbedder(), dimension=8)
        embedding = vectorizer.vectorize(snapshot)

        assert embedding.shape == (8,)
        assert np.linalg.norm(embedding) == pytest.approx(1.0)
        (texts,), kwargs = model.encode.call_args
        assert texts == [vectorizer.render(snapshot)]
        assert kwargs == {'normalize_embeddings': True}

    def test_vectorizer_rejects_model_dimension_mismatch(self, model):
        with pytest.raises(ValueError):
            ContextVectorizer(SentenceTransformerEmbedder(), dimension=384)
        with pytest.raises(ValueError):
            build_vectorizer('sentence-transformers', dimension=384)

    def test_build_by_name(self, model):
        assert isinstance(build_vectorizer('sentence-transformers', dimension=8).embedder,
                          SentenceTransformerEmbedder)
        assert isinstance(build_vectorizer('hashing', dimension=64).embedder, HashingTextEmbedder)
        with pytest.raises(ValueError):
            build_vectorizer('word2vec')
