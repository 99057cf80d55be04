"""
Risk Provider Interface

The detailed risk-factor breakdown (volatility, liquidity, concentration,
market, sentiment, technical sub-scores) lives outside the signal engine.
This module fixes the shape of what the engine consumes from it: a single
RiskAssessment record per signal.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RiskLevel(Enum):
    """Risk levels, ordered from lowest to highest"""
    VERY_LOW = "VERY_LOW"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    VERY_HIGH = "VERY_HIGH"

    @property
    def rank(self) -> int:
        return list(RiskLevel).index(self)


@dataclass
class RiskAssessment:
    """Risk assessment for one candidate signal"""
    overall_risk: RiskLevel
    risk_score: float  # 0-100
    warnings: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    stop_loss_level: Optional[float] = None
    max_position_size: Optional[float] = None  # fraction of portfolio
    take_profit_level: Optional[float] = None
    factors: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall_risk': self.overall_risk.value,
            'risk_score': self.risk_score,
            'warnings': list(self.warnings),
            'recommendations': list(self.recommendations),
            'stop_loss_level': self.stop_loss_level,
            'max_position_size': self.max_position_size,
            'take_profit_level': self.take_profit_level,
            'factors': dict(self.factors),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RiskAssessment':
        return cls(
            overall_risk=RiskLevel(data.get('overall_risk', data.get('overallRisk', 'MEDIUM'))),
            risk_score=float(data.get('risk_score', data.get('riskScore', 50.0))),
            warnings=list(data.get('warnings', [])),
            recommendations=list(data.get('recommendations', [])),
            stop_loss_level=data.get('stop_loss_level', data.get('stopLossLevel')),
            max_position_size=data.get('max_position_size', data.get('maxPositionSize')),
            take_profit_level=data.get('take_profit_level', data.get('takeProfitLevel')),
            factors=dict(data.get('factors', {})),
        )

    @classmethod
    def coerce(cls, value: Any) -> 'RiskAssessment':
        if isinstance(value, cls):
            return value
        return cls.from_dict(value)


class RiskProvider(ABC):
    """Capability: assess the risk of a candidate signal"""

    @abstractmethod
    async def analyze_signal_risk(self, ticker: str, signal: Dict[str, Any],
                                  technical: Any, sentiment: Any) -> RiskAssessment:
        """
        Args:
            ticker: Stock symbol
            signal: Partial signal draft (ticker, time horizon)
            technical: TechnicalAnalysis for the ticker
            sentiment: SentimentAnalysis for the ticker
        """
