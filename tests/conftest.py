"""
Shared fixtures: deterministic analysis providers, sample digests and a
signal generator wired to in-memory storage.
"""

from dataclasses import replace
from datetime import datetime, timedelta

import numpy as np
import pytest

from analyzers.risk import RiskAssessment, RiskLevel, RiskProvider
from analyzers.sentiment import SentimentAnalysis, SentimentProvider
from analyzers.technical import (
    MACDSummary, MovingAverageSummary, RSISummary, TechnicalAnalysis, TechnicalAnalysisProvider
)
from engine.config import SignalEngineConfig
from engine.context import build_market_context, build_snapshot
from engine.models import HistoricalPattern, PatternOutcome, SignalAction, TimeHorizon
from engine.signal_generator import SignalGenerator
from storage.memory import InMemoryStorage


class StaticAnalysisProvider(TechnicalAnalysisProvider, SentimentProvider, RiskProvider):
    """Returns the same analyses for every ticker unless told to fail."""

    def __init__(self, technical, sentiment, risk, fail_tickers=(), fail_horizons=()):
        self.technical = technical
        self.sentiment = sentiment
        self.risk = risk
        self.fail_tickers = set(fail_tickers)
        self.fail_horizons = set(fail_horizons)
        self.calls = []

    async def analyze_stock(self, ticker):
        self.calls.append(('technical', ticker))
        if ticker in self.fail_tickers:
            raise RuntimeError(f"technical feed unavailable for {ticker}")
        return replace(self.technical, ticker=ticker)

    async def analyze_sentiment(self, ticker):
        self.calls.append(('sentiment', ticker))
        return replace(self.sentiment, ticker=ticker)

    async def analyze_signal_risk(self, ticker, signal, technical, sentiment):
        self.calls.append(('risk', ticker))
        if signal.get('time_horizon') in self.fail_horizons:
            raise RuntimeError(f"risk model has no {signal['time_horizon']} calibration")
        return self.risk


@pytest.fixture
def bullish_technical():
    return TechnicalAnalysis(
        ticker='AAPL',
        current_price=180.0,
        overall_signal='BUY',
        confidence=0.8,
        moving_averages=MovingAverageSummary(trend='UPTREND', signal='BUY', confidence=0.75),
        support_levels=[172.0, 165.0],
        resistance_levels=[195.0, 205.0],
        rsi=RSISummary(value=62.0, signal='NEUTRAL'),
        macd=MACDSummary(signal='BUY', trend='BULLISH'),
        volatility=0.25,
        volume_ratio=1.2,
        sector='Technology',
        market_cap='LARGE',
    )


@pytest.fixture
def bullish_sentiment():
    return SentimentAnalysis(
        ticker='AAPL',
        sentiment_score=0.6,
        sentiment_label='Positive',
        impact='Bullish',
        confidence=0.75,
        news_count=12,
        trend_direction='Improving',
    )


@pytest.fixture
def medium_risk():
    return RiskAssessment(
        overall_risk=RiskLevel.MEDIUM,
        risk_score=45.0,
        warnings=[],
        recommendations=['Limit position to 5% of portfolio'],
        stop_loss_level=171.0,
        max_position_size=0.05,
    )


@pytest.fixture
def provider(bullish_technical, bullish_sentiment, medium_risk):
    return StaticAnalysisProvider(bullish_technical, bullish_sentiment, medium_risk)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def config():
    config = SignalEngineConfig()
    config.batch_delay_seconds = 0.0
    return config


@pytest.fixture
def generator(provider, storage, config):
    return SignalGenerator(provider, provider, provider, storage, config=config)


@pytest.fixture
def snapshot(bullish_technical, bullish_sentiment):
    market = build_market_context(bullish_technical, bullish_sentiment)
    return build_snapshot('AAPL', TimeHorizon.MEDIUM_TERM, bullish_technical, bullish_sentiment, market)


def vector_with_cosine(query, cosine, seed=0):
    """Unit vector whose cosine similarity with ``query`` is exactly ``cosine``."""
    rng = np.random.default_rng(seed)
    query = query / np.linalg.norm(query)
    noise = rng.normal(size=query.shape)
    orthogonal = noise - np.dot(noise, query) * query
    orthogonal /= np.linalg.norm(orthogonal)
    return cosine * query + np.sqrt(1 - cosine ** 2) * orthogonal


def make_pattern(snapshot, embedding, pattern_id='pattern_0001', days_old=30,
                 actual_return=0.08, success=True, action=SignalAction.BUY):
    return HistoricalPattern(
        pattern_id=pattern_id,
        ticker=snapshot.ticker,
        timestamp=datetime.now() - timedelta(days=days_old),
        context=snapshot,
        signal_action=action,
        outcome=PatternOutcome(actual_return=actual_return, time_to_target=14.0, success=success),
        embedding=np.asarray(embedding, dtype=float),
    )


def pattern_row(snapshot, embedding, pattern_id, days_old=30, actual_return=0.08, success=True):
    """Storage row in the historical_patterns table shape."""
    return {
        'id': pattern_id,
        'ticker': snapshot.ticker,
        'timestamp': (datetime.now() - timedelta(days=days_old)).isoformat(),
        'context': snapshot.to_dict(),
        'signal': {'action': 'BUY'},
        'outcome': {'actual_return': actual_return, 'time_to_target': 14.0, 'success': success},
        'embedding': [float(x) for x in embedding],
    }
