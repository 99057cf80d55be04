"""
Decision Mapper

Turns the aggregated confidence and directional bias into a trading
decision:
- Decision score in [0, 1]: 0.5 is neutral, above leans buy, below leans sell
- Action/strength banding of score + agreement bonus
- Horizon-scaled price targets, clipped to supplied support/resistance
- Optional backtest summary over the matched patterns' realized returns
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np

from engine.models import (
    BacktestSummary, PatternMatch, PriceTargets, SignalAction, SignalStrength, TimeHorizon
)

logger = logging.getLogger(__name__)

# (lower bound inclusive, action, strength), checked top-down.
# HOLD also absorbs scores within 0.005 below 0.45.
DECISION_BANDS = [
    (0.85, SignalAction.STRONG_BUY, SignalStrength.VERY_STRONG),
    (0.70, SignalAction.BUY, SignalStrength.STRONG),
    (0.55, SignalAction.BUY, SignalStrength.MODERATE),
    (0.445, SignalAction.HOLD, SignalStrength.MODERATE),
    (0.30, SignalAction.SELL, SignalStrength.MODERATE),
    (0.15, SignalAction.SELL, SignalStrength.STRONG),
]

HORIZON_BASE_MOVE = {
    TimeHorizon.INTRADAY: 0.02,
    TimeHorizon.SHORT_TERM: 0.05,
    TimeHorizon.MEDIUM_TERM: 0.12,
    TimeHorizon.LONG_TERM: 0.25,
}

TARGET_MULTIPLIERS = (0.6, 1.0, 1.5)


def decision_score(direction: float, confidence: float) -> float:
    """
    Map a directional bias in [-1, 1] and a confidence in [0, 1] to [0, 1].

    A confident bullish view approaches 1, a confident bearish view
    approaches 0, and no view or no confidence stays at 0.5.
    """
    direction = float(np.clip(direction, -1.0, 1.0))
    confidence = float(np.clip(confidence, 0.0, 1.0))
    return 0.5 + 0.5 * direction * confidence


def map_score_to_action(score: float, agreement: float) -> Tuple[SignalAction, SignalStrength]:
    """
    Shift the score by ``agreement * 0.1`` and look it up in DECISION_BANDS.

    HOLD starts at 0.445 rather than 0.45, so a shifted score of 0.449 is
    still HOLD; SELL covers [0.15, 0.445).
    """
    adjusted = score + agreement * 0.1
    for lower_bound, action, strength in DECISION_BANDS:
        if adjusted >= lower_bound:
            return action, strength
    return SignalAction.STRONG_SELL, SignalStrength.VERY_STRONG


def calculate_price_targets(current_price: float, time_horizon: TimeHorizon,
                            confidence: float, sentiment_score: float,
                            support_levels: Optional[Sequence[float]] = None,
                            resistance_levels: Optional[Sequence[float]] = None) -> PriceTargets:
    """
    Project conservative/moderate/aggressive targets for the horizon.

    Args:
        current_price: Latest price
        time_horizon: Holding period
        confidence: Final signal confidence
        sentiment_score: Sentiment in [-1, 1]
        support_levels: Optional support prices (lower clip bound)
        resistance_levels: Optional resistance prices (upper clip bound)

    Returns:
        PriceTargets with conservative <= moderate <= aggressive when the
        adjusted move is positive, and the reverse when it is negative
    """
    support_levels = list(support_levels or [])
    resistance_levels = list(resistance_levels or [])

    base_move = HORIZON_BASE_MOVE[time_horizon]
    adjusted_move = base_move + sentiment_score * 0.3 + (confidence - 0.5) * 0.2

    targets = current_price * (1 + adjusted_move * np.array(TARGET_MULTIPLIERS))
    if support_levels or resistance_levels:
        lower = min(support_levels) if support_levels else -np.inf
        upper = max(resistance_levels) if resistance_levels else np.inf
        if lower <= upper:
            targets = np.clip(targets, lower, upper)
        else:
            logger.debug(f"Ignoring inverted support/resistance band {lower}/{upper}")

    conservative, moderate, aggressive = (float(t) for t in targets)
    return PriceTargets(
        time_horizon=time_horizon,
        conservative=conservative,
        moderate=moderate,
        aggressive=aggressive,
        upside_probability=confidence * 0.8,
        downside_probability=(1 - confidence) * 0.8,
        support_levels=support_levels,
        resistance_levels=resistance_levels,
    )


def backtest_summary(matches: Sequence[PatternMatch]) -> Optional[BacktestSummary]:
    """Realized performance of the matched patterns, or None without matches."""
    if not matches:
        return None

    returns = np.array([m.average_return for m in matches], dtype=float)
    accuracy = float(np.mean([m.success_rate > 0.5 for m in matches]))

    std = returns.std()
    sharpe = float(returns.mean() / std) if std > 0 else 0.0

    equity = np.cumprod(1 + returns)
    peaks = np.maximum.accumulate(np.concatenate([[1.0], equity]))[1:]
    max_drawdown = float(np.max((peaks - equity) / peaks))

    return BacktestSummary(
        accuracy=accuracy,
        average_return=float(returns.mean()),
        sharpe_ratio=sharpe,
        max_drawdown=max_drawdown,
        sample_size=len(matches),
    )
