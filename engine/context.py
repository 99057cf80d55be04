"""
Market Context Builder

Derives the MarketContext and the ContextSnapshot for one ticker/horizon
from the technical and sentiment digests:
- Condition from technical/sentiment confidence and sentiment score
- Trend from the moving-average trend
- Volatility bucket from annualized volatility, volume bucket from volume ratio
- Pearson correlations against market, sector and peer return series when
  the technical provider supplies them
"""

import logging
from typing import Optional, Sequence

import numpy as np
from scipy import stats

from analyzers.sentiment import SentimentAnalysis
from analyzers.technical import TechnicalAnalysis
from engine.models import (
    ContextSnapshot, MarketCondition, MarketContext, SentimentSummary, TechnicalSummary,
    TimeHorizon
)

logger = logging.getLogger(__name__)

MIN_CORRELATION_SAMPLES = 3


def classify_condition(technical: TechnicalAnalysis, sentiment: SentimentAnalysis,
                       volatility: str = 'MEDIUM') -> MarketCondition:
    if technical.confidence > 0.7 and sentiment.confidence > 0.7:
        if sentiment.sentiment_score > 0.3:
            return MarketCondition.BULLISH
        if sentiment.sentiment_score < -0.3:
            return MarketCondition.BEARISH

    if technical.confidence < 0.5 or sentiment.confidence < 0.5:
        return MarketCondition.UNCERTAIN

    if volatility == 'HIGH':
        return MarketCondition.VOLATILE

    return MarketCondition.SIDEWAYS


def classify_trend(ma_trend: Optional[str]) -> str:
    trend = str(ma_trend or '').upper()
    if trend == 'UPTREND':
        return 'UP'
    if trend == 'DOWNTREND':
        return 'DOWN'
    return 'SIDEWAYS'


def volatility_bucket(volatility: Optional[float]) -> str:
    if volatility is None:
        return 'MEDIUM'
    if volatility < 0.2:
        return 'LOW'
    if volatility < 0.4:
        return 'MEDIUM'
    return 'HIGH'


def volume_bucket(volume_ratio: Optional[float]) -> str:
    if volume_ratio is None:
        return 'MEDIUM'
    if volume_ratio >= 1.5:
        return 'HIGH'
    if volume_ratio >= 0.7:
        return 'MEDIUM'
    return 'LOW'


def correlation(returns: Sequence[float], other: Sequence[float]) -> Optional[float]:
    """
    Pearson correlation over the trailing overlap of two return series.

    Returns None when the overlap is too short or either side is constant.
    """
    n = min(len(returns), len(other))
    if n < MIN_CORRELATION_SAMPLES:
        return None

    x = np.asarray(returns[-n:], dtype=float)
    y = np.asarray(other[-n:], dtype=float)
    if np.std(x) == 0 or np.std(y) == 0:
        return None

    r, _ = stats.pearsonr(x, y)
    return None if np.isnan(r) else float(r)


def build_market_context(technical: TechnicalAnalysis, sentiment: SentimentAnalysis) -> MarketContext:
    volatility = volatility_bucket(technical.volatility)
    correlations = (
        ('market', correlation(technical.returns, technical.market_returns)),
        ('peers', correlation(technical.returns, technical.peer_returns)),
        ('sector', correlation(technical.returns, technical.sector_returns)),
    )
    return MarketContext(
        condition=classify_condition(technical, sentiment, volatility),
        trend=classify_trend(technical.moving_averages.trend),
        volatility=volatility,
        volume=volume_bucket(technical.volume_ratio),
        sector=technical.sector,
        market_cap=technical.market_cap,
        correlations=correlations,
    )


def build_snapshot(ticker: str, time_horizon: TimeHorizon, technical: TechnicalAnalysis,
                   sentiment: SentimentAnalysis, market: MarketContext) -> ContextSnapshot:
    return ContextSnapshot(
        ticker=ticker,
        time_horizon=time_horizon,
        technical=TechnicalSummary(
            signal=technical.overall_signal,
            confidence=technical.confidence,
            trend=technical.moving_averages.trend,
            support=tuple(technical.support_levels),
            resistance=tuple(technical.resistance_levels),
        ),
        sentiment=SentimentSummary(
            score=sentiment.sentiment_score,
            label=sentiment.sentiment_label,
            news_volume=sentiment.news_count,
        ),
        market=market,
    )
