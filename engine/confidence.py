"""
Confidence Aggregator

Combines per-source confidences into one calibrated confidence:
- Base confidence per source from its own reported confidence plus domain
  adjustments (signal strength, moving-average/MACD confirmation, extreme RSI,
  news volume, sentiment strength, pattern success and divergence)
- Directional agreement across technical, sentiment and matched patterns
- Weighted sum of source confidences plus an agreement bonus (at most 0.1)

Low agreement raises a warning but never zeroes the confidence. Every
factor is clamped to [0, 1].
"""

import logging
from dataclasses import dataclass, field
from itertools import combinations
from typing import List, Optional, Sequence, Tuple

import numpy as np

from analyzers.risk import RiskAssessment
from analyzers.sentiment import SentimentAnalysis
from analyzers.technical import TechnicalAnalysis
from engine.config import ConfidenceWeights
from engine.models import (
    AgreementResult, ConfidenceBreakdown, ConfidenceFactors, MarketCondition,
    MarketContext, PatternMatch, ValidationResult, direction_of
)

logger = logging.getLogger(__name__)

AGREEMENT_BONUS = 0.1

_STRENGTH_BONUS = {
    'STRONG_BUY': 0.15,
    'STRONG_SELL': 0.15,
    'BUY': 0.08,
    'SELL': 0.08,
}


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return float(np.clip(value, low, high))


def technical_confidence(analysis: TechnicalAnalysis) -> float:
    """Reported technical confidence adjusted for strength, confirmation and RSI extremes."""
    confidence = analysis.confidence if analysis.confidence is not None else 0.5
    overall_direction = direction_of(analysis.overall_signal)

    confidence += _STRENGTH_BONUS.get(str(analysis.overall_signal).upper(), 0.0)

    # Moving averages confirm or contradict the overall call
    ma_direction = direction_of(analysis.moving_averages.signal)
    if ma_direction == overall_direction:
        confidence += 0.1
    elif ma_direction != 0 and overall_direction != 0:
        confidence -= 0.1

    if analysis.rsi is not None:
        rsi = analysis.rsi.value
        if rsi <= 20 or rsi >= 80:
            confidence += 0.1
        elif rsi <= 30 or rsi >= 70:
            confidence += 0.05

    if analysis.macd is not None and overall_direction != 0:
        if direction_of(analysis.macd.signal) == overall_direction:
            confidence += 0.05

    return clamp(confidence)


def sentiment_confidence(analysis: SentimentAnalysis) -> float:
    confidence = analysis.confidence if analysis.confidence is not None else 0.5

    if analysis.news_count > 10:
        confidence += 0.1
    elif analysis.news_count > 5:
        confidence += 0.05

    strength = abs(analysis.sentiment_score)
    if strength > 0.7:
        confidence += 0.15
    elif strength > 0.4:
        confidence += 0.08

    trend = str(analysis.trend_direction).capitalize()
    if trend == 'Improving':
        confidence += 0.1
    elif trend == 'Declining':
        confidence -= 0.05

    return clamp(confidence)


def pattern_confidence(matches: Sequence[PatternMatch], divergence: bool = False) -> float:
    """Best match confidence, boosted by success rate, confirming matches and indicator divergence."""
    if not matches:
        return 0.3

    best = max(matches, key=lambda m: m.confidence)
    confidence = best.confidence

    if best.success_rate > 0.8:
        confidence += 0.15
    elif best.success_rate > 0.6:
        confidence += 0.08

    confirming = [
        m for m in matches
        if m.historical_outcome == best.historical_outcome and m.confidence > 0.6
    ]
    if len(confirming) > 1:
        confidence += min(0.2, len(confirming) * 0.05)

    if divergence:
        confidence += 0.05

    return clamp(confidence)


def market_condition_confidence(context: MarketContext) -> float:
    confidence = 0.5

    if context.trend in ('UP', 'DOWN'):
        confidence += 0.2

    if context.volatility == 'LOW':
        confidence += 0.15
    elif context.volatility == 'HIGH':
        confidence -= 0.1

    if context.condition in (MarketCondition.BULLISH, MarketCondition.BEARISH):
        confidence += 0.1
    elif context.condition == MarketCondition.UNCERTAIN:
        confidence -= 0.15
    elif context.condition == MarketCondition.VOLATILE:
        confidence -= 0.1

    return clamp(confidence)


def volume_confidence(context: MarketContext) -> float:
    return {'HIGH': 0.9, 'MEDIUM': 0.7, 'LOW': 0.3}.get(context.volume, 0.5)


def historical_accuracy(matches: Sequence[PatternMatch]) -> float:
    if not matches:
        return 0.5
    return float(np.mean([m.success_rate for m in matches]))


def pair_agreement(first: int, second: int) -> float:
    """1 for the same direction, 0 for opposite, 0.5 when exactly one side is neutral."""
    if first == second:
        return 1.0
    if first == 0 or second == 0:
        return 0.5
    return 0.0


def analyze_agreement(technical_signal: str, sentiment_impact: str,
                      pattern_actions: Sequence) -> AgreementResult:
    """
    Directional agreement across all sources.

    Args:
        technical_signal: Technical provider's overall signal label
        sentiment_impact: Sentiment provider's impact label
        pattern_actions: Implied action of each matched pattern

    Returns:
        AgreementResult whose overall_agreement is the mean pairwise agreement
    """
    sources: List[Tuple[str, int]] = [
        ('technical', direction_of(technical_signal)),
        ('sentiment', direction_of(sentiment_impact)),
    ]
    sources.extend(
        (f"pattern_{i + 1}", direction_of(action)) for i, action in enumerate(pattern_actions)
    )

    pairwise = {
        f"{a_name}~{b_name}": pair_agreement(a_dir, b_dir)
        for (a_name, a_dir), (b_name, b_dir) in combinations(sources, 2)
    }
    overall = float(np.mean(list(pairwise.values()))) if pairwise else 1.0

    technical_dir, sentiment_dir = sources[0][1], sources[1][1]
    alignment = pair_agreement(technical_dir, sentiment_dir)

    supporting, conflicting = [], []
    if alignment == 1.0:
        supporting.append('Technical and sentiment analysis agree')
    elif alignment == 0.0:
        conflicting.append('Technical and sentiment analysis disagree')

    pattern_dirs = [d for _, d in sources[2:]]
    confirming = sum(1 for d in pattern_dirs if d == technical_dir and d != 0)
    opposing = sum(1 for d in pattern_dirs if d == -technical_dir and d != 0)
    if confirming:
        supporting.append(f"{confirming} pattern(s) support the technical signal")
    if opposing:
        conflicting.append(f"{opposing} pattern(s) contradict the technical signal")

    return AgreementResult(
        overall_agreement=clamp(overall),
        pairwise=pairwise,
        technical_sentiment_alignment=alignment,
        pattern_confirmation=confirming / max(1, len(pattern_dirs)),
        supporting_factors=supporting,
        conflicting_sources=conflicting,
    )


def directional_bias(technical_signal: str, sentiment_impact: str,
                     pattern_actions: Sequence, weights: ConfidenceWeights) -> float:
    """
    Weighted directional vote in [-1, 1] of the directional sources.

    Patterns vote with the mean of their implied directions and only when
    there are matches.
    """
    votes = [
        (weights.technical, direction_of(technical_signal)),
        (weights.sentiment, direction_of(sentiment_impact)),
    ]
    if pattern_actions:
        votes.append((weights.pattern, float(np.mean([direction_of(a) for a in pattern_actions]))))

    total = sum(w for w, _ in votes)
    if total <= 0:
        return 0.0
    return float(np.clip(sum(w * d for w, d in votes) / total, -1.0, 1.0))


@dataclass
class AggregationResult:
    """Everything the aggregator derived, kept for explanation and audit"""
    factors: ConfidenceFactors
    agreement: AgreementResult
    breakdown: ConfidenceBreakdown
    direction: float
    warnings: List[str] = field(default_factory=list)

    @property
    def final_confidence(self) -> float:
        return self.breakdown.final_confidence


class ConfidenceAggregator:
    def __init__(self, weights: Optional[ConfidenceWeights] = None,
                 low_agreement_threshold: float = 0.5):
        self.weights = weights or ConfidenceWeights()
        self.low_agreement_threshold = low_agreement_threshold

    def calculate_factors(self, technical: TechnicalAnalysis, sentiment: SentimentAnalysis,
                          matches: Sequence[PatternMatch],
                          market_context: MarketContext) -> ConfidenceFactors:
        return ConfidenceFactors(
            technical=technical_confidence(technical),
            sentiment=sentiment_confidence(sentiment),
            pattern_match=pattern_confidence(matches, divergence=technical.has_divergence),
            market_condition=market_condition_confidence(market_context),
            volume=volume_confidence(market_context),
            historical_accuracy=historical_accuracy(matches),
        )

    def breakdown(self, factors: ConfidenceFactors, agreement: AgreementResult,
                  weights: ConfidenceWeights) -> ConfidenceBreakdown:
        technical = factors.technical * weights.technical
        sentiment = factors.sentiment * weights.sentiment
        pattern = factors.pattern_match * weights.pattern
        market = factors.market_condition * weights.market_condition
        volume = factors.volume * weights.volume

        weighted_sum = technical + sentiment + pattern + market + volume
        bonus = AGREEMENT_BONUS * agreement.overall_agreement
        final = clamp(weighted_sum + bonus)

        explanation = [
            f"Technical analysis: {factors.technical:.2f} x {weights.technical:.2f} = {technical:.3f}",
            f"Sentiment analysis: {factors.sentiment:.2f} x {weights.sentiment:.2f} = {sentiment:.3f}",
            f"Pattern matching: {factors.pattern_match:.2f} x {weights.pattern:.2f} = {pattern:.3f}",
            f"Market conditions: {factors.market_condition:.2f} x {weights.market_condition:.2f} = {market:.3f}",
        ]
        if weights.volume > 0:
            explanation.append(f"Volume confirmation: {factors.volume:.2f} x {weights.volume:.2f} = {volume:.3f}")
        explanation.append(f"Agreement bonus: {agreement.overall_agreement:.2f} x {AGREEMENT_BONUS} = {bonus:.3f}")
        explanation.append(f"Final confidence: {final:.3f}")

        return ConfidenceBreakdown(
            technical_contribution=technical,
            sentiment_contribution=sentiment,
            pattern_contribution=pattern,
            market_contribution=market,
            volume_contribution=volume,
            weighted_sum=weighted_sum,
            agreement_bonus=bonus,
            final_confidence=final,
            explanation=explanation,
        )

    def aggregate(self, technical: TechnicalAnalysis, sentiment: SentimentAnalysis,
                  matches: Sequence[PatternMatch], market_context: MarketContext,
                  risk: Optional[RiskAssessment] = None,
                  weights: Optional[ConfidenceWeights] = None) -> AggregationResult:
        """
        Fuse all sources into one confidence.

        Args:
            technical: Technical digest
            sentiment: Sentiment digest
            matches: Pattern matches in the common PatternMatch shape
            market_context: Derived market context
            risk: Risk assessment, reported in the explanation only
            weights: Per-request weights (defaults to the aggregator's)

        Returns:
            AggregationResult with factors, agreement, breakdown and direction
        """
        weights = weights or self.weights
        pattern_actions = [m.implied_action for m in matches]

        factors = self.calculate_factors(technical, sentiment, matches, market_context)
        agreement = analyze_agreement(technical.overall_signal, sentiment.impact, pattern_actions)
        breakdown = self.breakdown(factors, agreement, weights)
        direction = directional_bias(technical.overall_signal, sentiment.impact, pattern_actions, weights)

        if risk is not None:
            breakdown.explanation.append(
                f"Risk assessment: {risk.overall_risk.value} (score {risk.risk_score:.0f})"
            )

        warnings = []
        if agreement.overall_agreement < self.low_agreement_threshold:
            warnings.append('Conflicting signals detected across different analysis methods')

        return AggregationResult(
            factors=factors,
            agreement=agreement,
            breakdown=breakdown,
            direction=direction,
            warnings=warnings,
        )


def dynamic_thresholds(context: MarketContext, base_threshold: float = 0.6,
                       strong_threshold: float = 0.8) -> Tuple[float, float, List[str]]:
    """
    Adjust the minimum-confidence and strong-signal thresholds to market conditions.

    The strong threshold moves with the same adjustment and stays at least
    0.2 above the minimum, capped at 0.95.

    Returns:
        Tuple of (minimum_confidence, strong_signal_threshold, reasoning)
    """
    adjustment = 0.0
    reasoning = []

    if context.volatility == 'HIGH':
        adjustment -= 0.1
        reasoning.append('Lowered threshold due to high volatility')

    if context.condition == MarketCondition.UNCERTAIN:
        adjustment -= 0.1
        reasoning.append('Lowered threshold due to uncertain market conditions')
    elif context.trend != 'SIDEWAYS':
        adjustment += 0.05
        reasoning.append('Raised threshold due to clear market trend')

    minimum = clamp(base_threshold + adjustment, 0.3, 0.9)
    strong = min(0.95, max(strong_threshold + adjustment, minimum + 0.2))
    return minimum, strong, reasoning


def validate_confidence(confidence: float, factors: ConfidenceFactors,
                        agreement: AgreementResult,
                        minimum_confidence: float = 0.6) -> ValidationResult:
    """Flag internally inconsistent or weak results; never raises."""
    issues = []
    recommendations = []

    if confidence < minimum_confidence:
        issues.append(f"Confidence {confidence:.3f} below minimum {minimum_confidence:.2f}")
        recommendations.append('Consider requiring higher confidence threshold')

    if abs(factors.technical - factors.sentiment) > 0.4:
        issues.append('Large disagreement between technical and sentiment analysis')
        recommendations.append('Investigate conflicting signals before acting')

    if factors.pattern_match < 0.3:
        issues.append('Low pattern matching confidence')
        recommendations.append('Look for additional pattern confirmation')

    if factors.market_condition < 0.4:
        issues.append('Uncertain market conditions')
        recommendations.append('Consider waiting for clearer market direction')

    if confidence >= 0.8 and agreement.overall_agreement < 0.5:
        issues.append('High confidence despite low agreement between sources')
        recommendations.append('Treat the confidence score with caution')

    return ValidationResult(
        is_valid=not issues,
        issues=issues,
        recommendations=recommendations,
    )
