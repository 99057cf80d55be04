"""
Technical Analysis Provider Interface

Indicator maths (moving averages, RSI, MACD) is done by an external
technical-analysis component. This module defines the pre-digested
per-indicator analysis the signal engine consumes and the capability the
provider must implement.

Optional return series (ticker, market, sector, peers) let the engine
compute real sample correlations for the market context.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class MovingAverageSummary:
    trend: str = 'SIDEWAYS'  # 'UPTREND', 'DOWNTREND', 'SIDEWAYS'
    signal: str = 'NEUTRAL'
    confidence: float = 0.5


@dataclass
class RSISummary:
    value: float = 50.0
    signal: str = 'NEUTRAL'
    divergence: str = 'NONE'  # 'BULLISH', 'BEARISH', 'NONE'


@dataclass
class MACDSummary:
    signal: str = 'NEUTRAL'
    trend: str = 'NEUTRAL'
    divergence: str = 'NONE'


@dataclass
class TechnicalAnalysis:
    """Technical digest for one ticker"""
    ticker: str
    current_price: float
    overall_signal: str  # 'STRONG_BUY', 'BUY', 'NEUTRAL', 'SELL', 'STRONG_SELL'
    confidence: float
    moving_averages: MovingAverageSummary = field(default_factory=MovingAverageSummary)
    support_levels: List[float] = field(default_factory=list)
    resistance_levels: List[float] = field(default_factory=list)
    rsi: Optional[RSISummary] = None
    macd: Optional[MACDSummary] = None
    volatility: Optional[float] = None  # annualized, 0.25 == 25%
    volume_ratio: Optional[float] = None  # latest volume / average volume
    sector: str = 'UNKNOWN'
    market_cap: str = 'UNKNOWN'
    returns: List[float] = field(default_factory=list)
    market_returns: List[float] = field(default_factory=list)
    sector_returns: List[float] = field(default_factory=list)
    peer_returns: List[float] = field(default_factory=list)

    @property
    def has_divergence(self) -> bool:
        rsi_div = self.rsi is not None and self.rsi.divergence.upper() not in ('NONE', '')
        macd_div = self.macd is not None and self.macd.divergence.upper() not in ('NONE', '')
        return rsi_div or macd_div

    @classmethod
    def from_dict(cls, data: Dict[str, Any], ticker: str = '') -> 'TechnicalAnalysis':
        ma = data.get('moving_averages', data.get('movingAverages')) or {}
        rsi = data.get('rsi')
        macd = data.get('macd')
        return cls(
            ticker=data.get('ticker', ticker),
            current_price=float(data.get('current_price', data.get('currentPrice', 0.0))),
            overall_signal=data.get('overall_signal', data.get('overallSignal', 'NEUTRAL')),
            confidence=float(data.get('confidence', 0.5)),
            moving_averages=MovingAverageSummary(
                trend=ma.get('trend', 'SIDEWAYS'),
                signal=ma.get('signal', 'NEUTRAL'),
                confidence=float(ma.get('confidence', 0.5)),
            ),
            support_levels=[float(x) for x in data.get('support_levels', data.get('supportLevels', []))],
            resistance_levels=[float(x) for x in data.get('resistance_levels', data.get('resistanceLevels', []))],
            rsi=RSISummary(
                value=float(rsi.get('value', rsi.get('currentRSI', 50.0))),
                signal=rsi.get('signal', 'NEUTRAL'),
                divergence=str(rsi.get('divergence', 'NONE')),
            ) if rsi else None,
            macd=MACDSummary(
                signal=macd.get('signal', 'NEUTRAL'),
                trend=macd.get('trend', 'NEUTRAL'),
                divergence=str(macd.get('divergence', 'NONE')),
            ) if macd else None,
            volatility=data.get('volatility'),
            volume_ratio=data.get('volume_ratio', data.get('volumeRatio')),
            sector=data.get('sector', 'UNKNOWN'),
            market_cap=data.get('market_cap', data.get('marketCap', 'UNKNOWN')),
            returns=list(data.get('returns', [])),
            market_returns=list(data.get('market_returns', [])),
            sector_returns=list(data.get('sector_returns', [])),
            peer_returns=list(data.get('peer_returns', [])),
        )

    @classmethod
    def coerce(cls, value: Any, ticker: str = '') -> 'TechnicalAnalysis':
        if isinstance(value, cls):
            return value
        return cls.from_dict(value, ticker)


class TechnicalAnalysisProvider(ABC):
    """Capability: produce a technical digest for a ticker"""

    @abstractmethod
    async def analyze_stock(self, ticker: str) -> TechnicalAnalysis:
        ...
