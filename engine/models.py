"""
Signal Data Model

This module defines the records that flow through the signal engine:
- Decision taxonomy (actions, strengths, horizons, risk levels)
- Context snapshots used for embedding and pattern matching
- Historical patterns and their similarity-search wrappers
- Confidence factors, agreement and breakdown records
- The finished Signal plus batch, multi-timeframe and update results

Enum values equal their names so records serialize to the same strings the
storage collaborator already holds.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from analyzers.risk import RiskAssessment, RiskLevel


class SignalAction(Enum):
    """Trading actions, in consensus tie-break order"""
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"
    WATCH = "WATCH"


class SignalStrength(Enum):
    VERY_STRONG = "VERY_STRONG"
    STRONG = "STRONG"
    MODERATE = "MODERATE"
    WEAK = "WEAK"
    VERY_WEAK = "VERY_WEAK"


class TimeHorizon(Enum):
    INTRADAY = "INTRADAY"
    SHORT_TERM = "SHORT_TERM"
    MEDIUM_TERM = "MEDIUM_TERM"
    LONG_TERM = "LONG_TERM"


class AnalysisDepth(Enum):
    QUICK = "QUICK"
    STANDARD = "STANDARD"
    COMPREHENSIVE = "COMPREHENSIVE"


class MarketCondition(Enum):
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    SIDEWAYS = "SIDEWAYS"
    VOLATILE = "VOLATILE"
    UNCERTAIN = "UNCERTAIN"


BUY_FAMILY = (SignalAction.BUY, SignalAction.STRONG_BUY)
SELL_FAMILY = (SignalAction.SELL, SignalAction.STRONG_SELL)

_BULLISH_LABELS = {'BUY', 'STRONG_BUY', 'BULLISH', 'POSITIVE', 'VERY_POSITIVE', 'UP', 'UPTREND'}
_BEARISH_LABELS = {'SELL', 'STRONG_SELL', 'BEARISH', 'NEGATIVE', 'VERY_NEGATIVE', 'DOWN', 'DOWNTREND'}


def direction_of(label: Any) -> int:
    """
    Map any signal-like label to a direction.

    Accepts technical signals (BUY, STRONG_SELL), sentiment impacts
    (Bullish, Bearish), trends and SignalAction members.

    Returns:
        +1 for bullish, -1 for bearish, 0 for neutral or unknown
    """
    if label is None:
        return 0
    if isinstance(label, Enum):
        label = label.value
    key = str(label).strip().upper().replace(' ', '_').replace('-', '_')
    if key in _BULLISH_LABELS:
        return 1
    if key in _BEARISH_LABELS:
        return -1
    return 0


def _parse_timestamp(value: Any) -> datetime:
    """Parse a stored timestamp (ISO strings incl. a trailing 'Z'); raises ValueError when absent."""
    if isinstance(value, datetime):
        return value
    if value is None or value == '':
        raise ValueError("missing timestamp")
    timestamp = pd.Timestamp(value)
    if pd.isna(timestamp):
        raise ValueError(f"unparseable timestamp {value!r}")
    return timestamp.to_pydatetime()


# ---------------------------------------------------------------------------
# Context snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TechnicalSummary:
    """Pre-digested technical view used for embedding and relevance"""
    signal: str
    confidence: float
    trend: str
    support: Tuple[float, ...] = ()
    resistance: Tuple[float, ...] = ()


@dataclass(frozen=True)
class SentimentSummary:
    score: float  # -1 to +1
    label: str
    news_volume: int


@dataclass(frozen=True)
class MarketContext:
    """Market-condition facts for one ticker"""
    condition: MarketCondition
    trend: str  # 'UP', 'DOWN', 'SIDEWAYS'
    volatility: str  # 'LOW', 'MEDIUM', 'HIGH'
    volume: str  # 'LOW', 'MEDIUM', 'HIGH'
    sector: str = 'UNKNOWN'
    market_cap: str = 'UNKNOWN'
    # Pearson correlations against market/sector/peers; None when no series was supplied
    correlations: Tuple[Tuple[str, Optional[float]], ...] = ()

    def correlation(self, name: str) -> Optional[float]:
        return dict(self.correlations).get(name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'condition': self.condition.value,
            'trend': self.trend,
            'volatility': self.volatility,
            'volume': self.volume,
            'sector': self.sector,
            'market_cap': self.market_cap,
            'correlation': dict(self.correlations),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MarketContext':
        correlation = data.get('correlation') or data.get('correlations') or {}
        return cls(
            condition=MarketCondition(data.get('condition', 'UNCERTAIN')),
            trend=data.get('trend', 'SIDEWAYS'),
            volatility=data.get('volatility', 'MEDIUM'),
            volume=data.get('volume', 'MEDIUM'),
            sector=data.get('sector', 'UNKNOWN'),
            market_cap=data.get('market_cap', data.get('marketCap', 'UNKNOWN')),
            correlations=tuple(sorted(correlation.items())),
        )


@dataclass(frozen=True)
class ContextSnapshot:
    """Structured summary of technical, sentiment and market facts for one ticker/horizon"""
    ticker: str
    time_horizon: TimeHorizon
    technical: TechnicalSummary
    sentiment: SentimentSummary
    market: MarketContext

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ticker': self.ticker,
            'time_horizon': self.time_horizon.value,
            'technical': {
                'signal': self.technical.signal,
                'confidence': self.technical.confidence,
                'trend': self.technical.trend,
                'support': list(self.technical.support),
                'resistance': list(self.technical.resistance),
            },
            'sentiment': {
                'score': self.sentiment.score,
                'label': self.sentiment.label,
                'news_volume': self.sentiment.news_volume,
            },
            'market': self.market.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContextSnapshot':
        technical = data.get('technical', {})
        sentiment = data.get('sentiment', {})
        return cls(
            ticker=data.get('ticker', ''),
            time_horizon=TimeHorizon(data.get('time_horizon', 'MEDIUM_TERM')),
            technical=TechnicalSummary(
                signal=technical.get('signal', technical.get('overallSignal', 'NEUTRAL')),
                confidence=float(technical.get('confidence', 0.5)),
                trend=technical.get('trend', 'SIDEWAYS'),
                support=tuple(technical.get('support', ())),
                resistance=tuple(technical.get('resistance', ())),
            ),
            sentiment=SentimentSummary(
                score=float(sentiment.get('score', sentiment.get('sentimentScore', 0.0))),
                label=sentiment.get('label', 'Neutral'),
                news_volume=int(sentiment.get('news_volume', sentiment.get('newsCount', 0))),
            ),
            market=MarketContext.from_dict(data.get('market', {})),
        )


# ---------------------------------------------------------------------------
# Historical patterns
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PatternOutcome:
    actual_return: float  # fractional, 0.08 == +8%
    time_to_target: float  # days
    success: bool


@dataclass
class HistoricalPattern:
    """Stored (snapshot, signal, realized outcome) triple"""
    pattern_id: str
    ticker: str
    timestamp: datetime
    context: ContextSnapshot
    signal_action: SignalAction
    outcome: PatternOutcome
    embedding: np.ndarray

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'HistoricalPattern':
        """Build a pattern from a storage row; raises KeyError/ValueError on malformed rows."""
        signal = record.get('signal') or {}
        action = signal.get('action') if isinstance(signal, dict) else signal
        outcome = record['outcome']
        embedding = np.asarray(record['embedding'], dtype=float)
        return cls(
            pattern_id=str(record['id']),
            ticker=record.get('ticker', ''),
            timestamp=_parse_timestamp(record.get('timestamp')),
            context=ContextSnapshot.from_dict(record.get('context', {})),
            signal_action=SignalAction(action or 'HOLD'),
            outcome=PatternOutcome(
                actual_return=float(outcome.get('actual_return', outcome.get('actualReturn', 0.0))),
                time_to_target=float(outcome.get('time_to_target', outcome.get('timeToTarget', 0.0))),
                success=bool(outcome.get('success', False)),
            ),
            embedding=embedding,
        )


@dataclass
class SimilarPattern:
    """Transient pairing of a pattern with its search scores"""
    pattern: HistoricalPattern
    similarity: float
    relevance: float
    weight: float


@dataclass
class PatternMatch:
    """Pattern match normalized for confidence aggregation and reporting"""
    pattern_name: str
    similarity: float
    historical_outcome: str  # 'BULLISH', 'BEARISH', 'NEUTRAL'
    average_return: float
    success_rate: float
    time_to_target: float
    confidence: float
    description: str
    implied_action: SignalAction = SignalAction.HOLD

    @classmethod
    def from_similar(cls, similar: SimilarPattern) -> 'PatternMatch':
        pattern = similar.pattern
        actual_return = pattern.outcome.actual_return
        if actual_return > 0:
            outcome = 'BULLISH'
        elif actual_return < 0:
            outcome = 'BEARISH'
        else:
            outcome = 'NEUTRAL'
        implied = {
            'BULLISH': SignalAction.BUY,
            'BEARISH': SignalAction.SELL,
        }.get(outcome, pattern.signal_action)
        return cls(
            pattern_name=f"Pattern-{pattern.pattern_id[-8:]}",
            similarity=similar.similarity,
            historical_outcome=outcome,
            average_return=actual_return,
            # Single realized outcome, smoothed away from 0/1
            success_rate=0.8 if pattern.outcome.success else 0.2,
            time_to_target=pattern.outcome.time_to_target,
            confidence=similar.relevance,
            description=f"Historical pattern from {pattern.timestamp.strftime('%Y-%m-%d')}",
            implied_action=implied,
        )


# ---------------------------------------------------------------------------
# Confidence
# ---------------------------------------------------------------------------

@dataclass
class ConfidenceFactors:
    """Per-source confidence scalars, each in [0, 1]"""
    technical: float
    sentiment: float
    pattern_match: float
    market_condition: float
    volume: float
    historical_accuracy: float = 0.5


@dataclass
class AgreementResult:
    overall_agreement: float
    pairwise: Dict[str, float] = field(default_factory=dict)
    technical_sentiment_alignment: float = 0.5
    pattern_confirmation: float = 0.0
    supporting_factors: List[str] = field(default_factory=list)
    conflicting_sources: List[str] = field(default_factory=list)


@dataclass
class ConfidenceBreakdown:
    technical_contribution: float
    sentiment_contribution: float
    pattern_contribution: float
    market_contribution: float
    volume_contribution: float
    weighted_sum: float
    agreement_bonus: float
    final_confidence: float
    explanation: List[str] = field(default_factory=list)


@dataclass
class ValidationResult:
    is_valid: bool
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class PriceTargets:
    time_horizon: TimeHorizon
    conservative: float
    moderate: float
    aggressive: float
    upside_probability: float
    downside_probability: float
    support_levels: List[float] = field(default_factory=list)
    resistance_levels: List[float] = field(default_factory=list)


@dataclass
class BacktestSummary:
    """Realized performance of the matched patterns"""
    accuracy: float
    average_return: float
    sharpe_ratio: float
    max_drawdown: float
    sample_size: int


# ---------------------------------------------------------------------------
# Signal
# ---------------------------------------------------------------------------

@dataclass
class SignalRequest:
    """Options for a single generation call"""
    time_horizon: TimeHorizon = TimeHorizon.MEDIUM_TERM
    risk_tolerance: RiskLevel = RiskLevel.MEDIUM
    analysis_depth: AnalysisDepth = AnalysisDepth.STANDARD
    include_patterns: Optional[bool] = None
    include_backtest: Optional[bool] = None
    custom_weights: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Signal:
    """Finished trading signal. Never mutated; updates produce a new Signal."""
    signal_id: str
    ticker: str
    timestamp: datetime
    action: SignalAction
    strength: SignalStrength
    confidence: float
    time_horizon: TimeHorizon
    analysis_depth: AnalysisDepth
    current_price: float
    target_price: float
    stop_loss: Optional[float]
    decision_score: float
    technical_contributions: Dict[str, Any]
    sentiment_contributions: Dict[str, Any]
    risk_assessment: RiskAssessment
    market_context: MarketContext
    context: ContextSnapshot
    embedding: Tuple[float, ...]
    pattern_matches: Tuple[PatternMatch, ...]
    price_targets: PriceTargets
    confidence_factors: ConfidenceFactors
    confidence_breakdown: ConfidenceBreakdown
    agreement: AgreementResult
    reasoning: Tuple[str, ...]
    key_factors: Tuple[str, ...]
    warnings: Tuple[str, ...]
    validation: ValidationResult
    valid_until: datetime
    backtest: Optional[BacktestSummary] = None
    source: str = 'COMBINED'
    version: str = '1.0'

    @property
    def reasoning_text(self) -> str:
        return ' '.join(self.reasoning)

    @property
    def risk_level(self) -> RiskLevel:
        return self.risk_assessment.overall_risk

    def to_record(self) -> Dict[str, Any]:
        """Flatten into the row shape written to ``trading_signals``."""
        return {
            'id': self.signal_id,
            'ticker': self.ticker,
            'timestamp': self.timestamp.isoformat(),
            'action': self.action.value,
            'strength': self.strength.value,
            'confidence': self.confidence,
            'time_horizon': self.time_horizon.value,
            'analysis_depth': self.analysis_depth.value,
            'current_price': self.current_price,
            'target_price': self.target_price,
            'stop_loss': self.stop_loss,
            'decision_score': self.decision_score,
            'technical_contributions': self.technical_contributions,
            'sentiment_contributions': self.sentiment_contributions,
            'risk_assessment': self.risk_assessment.to_dict(),
            'market_context': self.market_context.to_dict(),
            'context': self.context.to_dict(),
            'embedding': list(self.embedding),
            'pattern_matches': [
                {
                    'pattern_name': m.pattern_name,
                    'similarity': m.similarity,
                    'historical_outcome': m.historical_outcome,
                    'average_return': m.average_return,
                    'success_rate': m.success_rate,
                    'time_to_target': m.time_to_target,
                    'confidence': m.confidence,
                    'description': m.description,
                    'implied_action': m.implied_action.value,
                }
                for m in self.pattern_matches
            ],
            'price_targets': {
                'time_horizon': self.price_targets.time_horizon.value,
                'conservative': self.price_targets.conservative,
                'moderate': self.price_targets.moderate,
                'aggressive': self.price_targets.aggressive,
                'upside_probability': self.price_targets.upside_probability,
                'downside_probability': self.price_targets.downside_probability,
                'support_levels': self.price_targets.support_levels,
                'resistance_levels': self.price_targets.resistance_levels,
            },
            'confidence_factors': vars(self.confidence_factors).copy(),
            'overall_agreement': self.agreement.overall_agreement,
            'reasoning': list(self.reasoning),
            'key_factors': list(self.key_factors),
            'warnings': list(self.warnings),
            'is_valid': self.validation.is_valid,
            'backtest': vars(self.backtest).copy() if self.backtest else None,
            'valid_until': self.valid_until.isoformat(),
            'source': self.source,
            'version': self.version,
        }


@dataclass(frozen=True)
class StoredSignal:
    """The fields of a persisted signal needed to regenerate and compare it"""
    signal_id: str
    ticker: str
    timestamp: datetime
    action: SignalAction
    confidence: float
    time_horizon: TimeHorizon
    analysis_depth: AnalysisDepth
    risk_level: RiskLevel

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'StoredSignal':
        risk = record.get('risk_assessment') or record.get('riskAssessment') or {}
        return cls(
            signal_id=str(record['id']),
            ticker=record['ticker'],
            timestamp=_parse_timestamp(record.get('timestamp')),
            action=SignalAction(record['action']),
            confidence=float(record['confidence']),
            time_horizon=TimeHorizon(record.get('time_horizon', record.get('timeHorizon', 'MEDIUM_TERM'))),
            analysis_depth=AnalysisDepth(record.get('analysis_depth', record.get('analysisDepth', 'STANDARD'))),
            risk_level=RiskLevel(risk.get('overall_risk', risk.get('overallRisk', 'MEDIUM'))),
        )


# ---------------------------------------------------------------------------
# Aggregate results
# ---------------------------------------------------------------------------

@dataclass
class BatchSignalResult:
    signals: List[Signal]
    summary: Dict[str, Any]
    errors: List[Dict[str, str]]

    def to_frame(self) -> pd.DataFrame:
        """One row per generated signal, for reporting."""
        rows = [
            {
                'ticker': s.ticker,
                'action': s.action.value,
                'strength': s.strength.value,
                'confidence': s.confidence,
                'risk': s.risk_level.value,
                'current_price': s.current_price,
                'target_price': s.target_price,
                'time_horizon': s.time_horizon.value,
            }
            for s in self.signals
        ]
        return pd.DataFrame(rows, columns=[
            'ticker', 'action', 'strength', 'confidence', 'risk',
            'current_price', 'target_price', 'time_horizon'
        ])


@dataclass
class ConsensusResult:
    action: SignalAction
    confidence: float
    agreement: float
    conflicts: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class MultiTimeframeSignal:
    ticker: str
    signals: Dict[TimeHorizon, Signal]
    consensus: ConsensusResult

    @property
    def conflicts(self) -> List[str]:
        return self.consensus.conflicts

    @property
    def recommendations(self) -> List[str]:
        return self.consensus.recommendations


@dataclass
class SignalUpdate:
    previous: StoredSignal
    current: Signal
    significant: bool
    changes: List[str] = field(default_factory=list)
