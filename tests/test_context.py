"""
Unit tests for market context derivation, configuration and the
file-backed analysis provider.
"""

import json
from dataclasses import replace

import numpy as np
import pytest

from analyzers.file_provider import AnalysisFileProvider, volatility_risk
from analyzers.risk import RiskLevel
from engine.config import SignalEngineConfig
from engine.context import build_market_context, classify_condition, correlation, volume_bucket
from engine.models import MarketCondition


class TestMarketContext:

    def test_bullish_condition(self, bullish_technical, bullish_sentiment):
        context = build_market_context(bullish_technical, bullish_sentiment)
        assert context.condition == MarketCondition.BULLISH
        assert context.trend == 'UP'
        assert context.volatility == 'MEDIUM'
        assert context.volume == 'MEDIUM'
        assert context.sector == 'Technology'

    def test_uncertain_and_volatile(self, bullish_technical, bullish_sentiment):
        weak = replace(bullish_sentiment, confidence=0.4)
        assert classify_condition(bullish_technical, weak) == MarketCondition.UNCERTAIN

        mild = replace(bullish_sentiment, sentiment_score=0.1)
        assert classify_condition(bullish_technical, mild) == MarketCondition.SIDEWAYS
        assert classify_condition(bullish_technical, mild, volatility='HIGH') == MarketCondition.VOLATILE

    def test_volume_bucket(self):
        assert volume_bucket(2.0) == 'HIGH'
        assert volume_bucket(0.5) == 'LOW'
        assert volume_bucket(None) == 'MEDIUM'

    def test_correlations_from_return_series(self, bullish_technical, bullish_sentiment):
        rng = np.random.default_rng(7)
        market = rng.normal(0, 0.01, 60)
        returns = 0.9 * market + rng.normal(0, 0.002, 60)
        technical = replace(bullish_technical, returns=list(returns), market_returns=list(market))

        context = build_market_context(technical, bullish_sentiment)
        assert context.correlation('market') > 0.9
        assert context.correlation('sector') is None

    def test_correlation_needs_variance_and_samples(self):
        assert correlation([0.01, 0.02], [0.01, 0.03]) is None
        assert correlation([0.01] * 10, list(np.linspace(0, 1, 10))) is None
        assert correlation([1.0, 2.0, 3.0], [2.0, 4.0, 6.0]) == pytest.approx(1.0)


class TestSignalEngineConfig:

    def test_defaults(self):
        config = SignalEngineConfig()
        assert sum(config.weights.as_dict().values()) == pytest.approx(1.0)
        assert config.thresholds.minimum_confidence == 0.6
        assert config.pattern_fetch_limits['QUICK'] == 10

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv('SIGNAL_BATCH_SIZE', '10')
        monkeypatch.setenv('SIGNAL_USE_BACKTESTING', 'false')
        monkeypatch.setenv('SIGNAL_MIN_CONFIDENCE', 'not-a-number')
        monkeypatch.setenv('SIGNAL_EMBEDDER', 'sentence-transformers')
        monkeypatch.setenv('SIGNAL_STRONG_THRESHOLD', '0.85')

        config = SignalEngineConfig.from_env()
        assert config.batch_size == 10
        assert config.features.use_backtesting is False
        assert config.thresholds.minimum_confidence == 0.6
        assert config.thresholds.strong_signal_threshold == 0.85
        assert config.embedder == 'sentence-transformers'
        assert config.embedding_dimension == 384


class TestAnalysisFileProvider:

    @pytest.fixture
    def provider(self, tmp_path):
        data = {
            'aapl': {
                'technical': {'currentPrice': 180.0, 'overallSignal': 'BUY', 'confidence': 0.8,
                              'volatility': 0.7},
                'sentiment': {'sentimentScore': 0.5, 'impact': 'Bullish', 'confidence': 0.7},
            }
        }
        path = tmp_path / 'analyses.json'
        path.write_text(json.dumps(data))
        return AnalysisFileProvider.from_json(str(path))

    @pytest.mark.asyncio
    async def test_serves_analyses(self, provider):
        technical = await provider.analyze_stock('AAPL')
        sentiment = await provider.analyze_sentiment('AAPL')
        assert technical.current_price == 180.0
        assert sentiment.impact == 'Bullish'

        risk = await provider.analyze_signal_risk('AAPL', {}, technical, sentiment)
        assert risk.overall_risk == RiskLevel.VERY_HIGH
        assert risk.stop_loss_level < 180.0

    @pytest.mark.asyncio
    async def test_unknown_ticker(self, provider):
        with pytest.raises(LookupError):
            await provider.analyze_stock('MSFT')

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            AnalysisFileProvider.from_json(str(tmp_path / 'none.json'))

    def test_volatility_risk_levels(self, bullish_technical):
        assert volatility_risk(replace(bullish_technical, volatility=0.1)).overall_risk == RiskLevel.LOW
        assert volatility_risk(bullish_technical).overall_risk == RiskLevel.MEDIUM
