"""
File-Backed Analysis Providers

Serves pre-computed technical, sentiment and risk analyses from a JSON
document so the engine can run without live analyzers:

    {
      "AAPL": {
        "technical": {...TechnicalAnalysis fields...},
        "sentiment": {...SentimentAnalysis fields...},
        "risk": {...RiskAssessment fields...}       # optional
      }
    }

A ticker without a "risk" entry gets a risk assessment derived from its
annualized volatility.
"""

import json
import logging
import os
from typing import Any, Dict

from analyzers.risk import RiskAssessment, RiskLevel, RiskProvider
from analyzers.sentiment import SentimentAnalysis, SentimentProvider
from analyzers.technical import TechnicalAnalysis, TechnicalAnalysisProvider

logger = logging.getLogger(__name__)


class AnalysisFileProvider(TechnicalAnalysisProvider, SentimentProvider, RiskProvider):
    def __init__(self, data: Dict[str, Dict[str, Any]]):
        self.data = {ticker.upper(): entry for ticker, entry in data.items()}

    @classmethod
    def from_json(cls, path: str) -> 'AnalysisFileProvider':
        if not os.path.exists(path):
            raise FileNotFoundError(f"Analysis file not found: {path}")
        with open(path, 'r') as f:
            data = json.load(f)
        logger.info(f"Loaded analyses for {len(data)} tickers from {path}")
        return cls(data)

    def _section(self, ticker: str, section: str) -> Dict[str, Any]:
        entry = self.data.get(ticker.upper())
        if entry is None:
            raise LookupError(f"No analysis data for {ticker}")
        if section not in entry:
            raise LookupError(f"No {section} analysis for {ticker}")
        return entry[section]

    async def analyze_stock(self, ticker: str) -> TechnicalAnalysis:
        return TechnicalAnalysis.from_dict(self._section(ticker, 'technical'), ticker)

    async def analyze_sentiment(self, ticker: str) -> SentimentAnalysis:
        return SentimentAnalysis.from_dict(self._section(ticker, 'sentiment'), ticker)

    async def analyze_signal_risk(self, ticker: str, signal: Dict[str, Any],
                                  technical: Any, sentiment: Any) -> RiskAssessment:
        entry = self.data.get(ticker.upper(), {})
        if 'risk' in entry:
            return RiskAssessment.from_dict(entry['risk'])
        return volatility_risk(TechnicalAnalysis.coerce(technical, ticker))


def volatility_risk(technical: TechnicalAnalysis) -> RiskAssessment:
    """Coarse risk assessment from annualized volatility alone."""
    volatility = technical.volatility if technical.volatility is not None else 0.3

    if volatility < 0.15:
        level, position = RiskLevel.LOW, 0.1
    elif volatility < 0.35:
        level, position = RiskLevel.MEDIUM, 0.05
    elif volatility < 0.6:
        level, position = RiskLevel.HIGH, 0.03
    else:
        level, position = RiskLevel.VERY_HIGH, 0.01

    warnings = []
    if level.rank >= RiskLevel.HIGH.rank:
        warnings.append(f"High volatility ({volatility:.0%} annualized)")

    # Stop two weekly standard deviations below the price
    stop_distance = min(0.5, 2 * volatility / (52 ** 0.5))
    return RiskAssessment(
        overall_risk=level,
        risk_score=min(100.0, volatility * 100 / 0.8),
        warnings=warnings,
        recommendations=[f"Limit position to {position:.0%} of portfolio"],
        stop_loss_level=technical.current_price * (1 - stop_distance),
        max_position_size=position,
        factors={'volatility': volatility},
    )
