"""
Signal explanation helpers: per-indicator contribution breakdowns,
human-readable reasoning, key factors and warnings.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from analyzers.risk import RiskAssessment, RiskLevel
from analyzers.sentiment import SentimentAnalysis
from analyzers.technical import TechnicalAnalysis
from engine.models import AgreementResult, PatternMatch, SignalAction, ValidationResult, direction_of

logger = logging.getLogger(__name__)

NEAR_LEVEL_THRESHOLD = 0.02
MAX_KEY_FACTORS = 5


def _direction_label(label: Any, bullish: str = 'BUY', bearish: str = 'SELL') -> str:
    direction = direction_of(label)
    if direction > 0:
        return bullish
    if direction < 0:
        return bearish
    return 'NEUTRAL'


def is_near_level(price: float, levels: Sequence[float], threshold: float = NEAR_LEVEL_THRESHOLD) -> bool:
    if not levels or price <= 0:
        return False
    return any(abs(price - level) / price < threshold for level in levels)


def technical_contributions(technical: TechnicalAnalysis) -> Dict[str, Any]:
    ma = technical.moving_averages
    rsi_value = technical.rsi.value if technical.rsi else None
    macd_signal = technical.macd.signal if technical.macd else technical.overall_signal
    support = technical.support_levels[0] if technical.support_levels else None
    resistance = technical.resistance_levels[0] if technical.resistance_levels else None

    if technical.volume_ratio is None:
        volume = {'signal': 'NEUTRAL', 'weight': 0.1, 'confidence': 0.5,
                  'details': 'Volume analysis not available'}
    else:
        volume = {
            'signal': 'NEUTRAL',
            'weight': 0.1,
            'confidence': 0.7 if technical.volume_ratio >= 1.5 else 0.5,
            'details': f"Volume at {technical.volume_ratio:.2f}x average",
        }

    return {
        'moving_averages': {
            'signal': _direction_label(ma.signal),
            'weight': 0.3,
            'confidence': ma.confidence,
            'details': f"Trend: {ma.trend}, Signal: {ma.signal}",
        },
        'rsi': {
            'signal': _direction_label(technical.rsi.signal if technical.rsi else technical.overall_signal),
            'weight': 0.25,
            'confidence': technical.confidence,
            'value': rsi_value,
            'details': f"RSI {rsi_value:.1f}" if rsi_value is not None else 'RSI not available',
        },
        'macd': {
            'signal': _direction_label(macd_signal),
            'weight': 0.25,
            'confidence': technical.confidence,
            'details': f"MACD signal: {macd_signal}",
        },
        'volume': volume,
        'support_resistance': {
            'near_support': is_near_level(technical.current_price, technical.support_levels),
            'near_resistance': is_near_level(technical.current_price, technical.resistance_levels),
            'support_level': support,
            'resistance_level': resistance,
            'details': (
                f"Support: {support:.2f}" if support is not None else 'Support: N/A'
            ) + (
                f", Resistance: {resistance:.2f}" if resistance is not None else ', Resistance: N/A'
            ),
        },
    }


def sentiment_contributions(sentiment: SentimentAnalysis) -> Dict[str, Any]:
    signal = _direction_label(sentiment.impact, 'BULLISH', 'BEARISH')
    return {
        'news_impact': {
            'signal': signal,
            'weight': 0.4,
            'confidence': sentiment.confidence,
            'news_count': sentiment.news_count,
            'sentiment_score': sentiment.sentiment_score,
            'details': f"{sentiment.news_count} news items, sentiment: {sentiment.sentiment_label}",
        },
        'market_sentiment': {
            'signal': signal,
            'weight': 0.3,
            'confidence': sentiment.confidence,
            'details': f"Market sentiment trending {str(sentiment.trend_direction).lower()}",
        },
    }


def pattern_summary(matches: Sequence[PatternMatch]) -> str:
    successful = sum(1 for m in matches if m.success_rate > 0.5)
    average_return = float(np.mean([m.average_return for m in matches]))
    outlook = 'positive' if average_return > 0 else 'negative'
    return (
        f"{len(matches)} similar historical patterns ({successful} successful, "
        f"average return {average_return:+.1%}) suggest a {outlook} outcome."
    )


def build_reasoning(action: SignalAction, technical: TechnicalAnalysis,
                    sentiment: SentimentAnalysis, risk: RiskAssessment,
                    agreement: AgreementResult, matches: Sequence[PatternMatch],
                    confidence: Optional[float] = None,
                    strong_threshold: Optional[float] = None) -> List[str]:
    parts = [
        f"{action.value} signal based on combined analysis.",
        f"Technical analysis shows {technical.overall_signal.lower()} with "
        f"{technical.confidence * 100:.0f}% confidence.",
        f"Market sentiment is {sentiment.sentiment_label.lower()} based on "
        f"{sentiment.news_count} news items.",
        f"Risk assessment indicates {risk.overall_risk.value.lower()} risk level.",
    ]

    if agreement.overall_agreement > 0.7:
        parts.append('Multiple analysis methods are in agreement.')
    elif agreement.overall_agreement < 0.5:
        parts.append('Some conflicting signals detected - proceed with caution.')

    if (confidence is not None and strong_threshold is not None
            and action != SignalAction.HOLD and confidence >= strong_threshold):
        parts.append(f"Confidence {confidence:.0%} clears the strong-signal threshold of {strong_threshold:.0%}.")

    if matches:
        parts.append(pattern_summary(matches))

    return parts


def build_key_factors(technical: TechnicalAnalysis, sentiment: SentimentAnalysis,
                      risk: RiskAssessment, matches: Sequence[PatternMatch]) -> List[str]:
    factors = []

    if technical.confidence > 0.7:
        factors.append(f"Strong technical signal ({technical.overall_signal})")
    if technical.moving_averages.trend:
        factors.append(f"{technical.moving_averages.trend.lower()} trend in moving averages")

    if abs(sentiment.sentiment_score) > 0.5:
        factors.append(f"{'Positive' if sentiment.sentiment_score > 0 else 'Negative'} market sentiment")
    if sentiment.news_count > 10:
        factors.append(f"High news volume ({sentiment.news_count} articles)")

    if risk.overall_risk in (RiskLevel.LOW, RiskLevel.VERY_LOW):
        factors.append('Low risk profile')
    elif risk.overall_risk in (RiskLevel.HIGH, RiskLevel.VERY_HIGH):
        factors.append('High risk - proceed with caution')

    if matches:
        successful = sum(1 for m in matches if m.success_rate > 0.5)
        factors.append(f"{len(matches)} similar historical patterns ({successful} successful)")

    return factors[:MAX_KEY_FACTORS]


def build_warnings(risk: RiskAssessment, risk_tolerance: RiskLevel,
                   aggregation_warnings: Sequence[str],
                   validation: ValidationResult) -> List[str]:
    warnings = list(risk.warnings)
    warnings.extend(aggregation_warnings)

    if risk.overall_risk.rank > risk_tolerance.rank:
        warnings.append(
            f"Risk level {risk.overall_risk.value} exceeds risk tolerance {risk_tolerance.value}"
        )

    warnings.extend(issue for issue in validation.issues if issue not in warnings)
    return warnings
