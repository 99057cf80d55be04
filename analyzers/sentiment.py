"""
Sentiment Provider Interface

News and social sentiment is computed by an external analyzer. The engine
only needs its digest: a score in [-1, 1], a label, a directional impact,
a confidence, the number of news items behind it and the recent trend.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class SentimentAnalysis:
    """Sentiment digest for one ticker"""
    ticker: str
    sentiment_score: float  # -1 to +1
    sentiment_label: str  # 'Very Negative' ... 'Very Positive'
    impact: str  # 'Bullish', 'Bearish', 'Neutral'
    confidence: float  # 0 to 1
    news_count: int = 0
    trend_direction: str = 'Stable'  # 'Improving', 'Declining', 'Stable'

    @classmethod
    def from_dict(cls, data: Dict[str, Any], ticker: str = '') -> 'SentimentAnalysis':
        return cls(
            ticker=data.get('ticker', ticker),
            sentiment_score=float(data.get('sentiment_score', data.get('sentimentScore', 0.0))),
            sentiment_label=data.get('sentiment_label', data.get('sentimentLabel', 'Neutral')),
            impact=data.get('impact', 'Neutral'),
            confidence=float(data.get('confidence', 0.5)),
            news_count=int(data.get('news_count', data.get('newsCount', 0))),
            trend_direction=data.get('trend_direction', data.get('trendDirection', 'Stable')),
        )

    @classmethod
    def coerce(cls, value: Any, ticker: str = '') -> 'SentimentAnalysis':
        if isinstance(value, cls):
            return value
        return cls.from_dict(value, ticker)


class SentimentProvider(ABC):
    """Capability: summarize market sentiment for a ticker"""

    @abstractmethod
    async def analyze_sentiment(self, ticker: str) -> SentimentAnalysis:
        ...
