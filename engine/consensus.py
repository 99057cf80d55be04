"""
Timeframe Consensus

Reconciles the signals generated for several horizons of the same ticker
into one consensus action, confidence and agreement, listing conflicts and
position-sizing recommendations.
"""

import logging
from collections import Counter
from typing import Dict, Optional

import numpy as np

from engine.models import (
    BUY_FAMILY, SELL_FAMILY, ConsensusResult, Signal, SignalAction, TimeHorizon
)

logger = logging.getLogger(__name__)

_ACTION_ORDER = {action: i for i, action in enumerate(SignalAction)}


class TimeframeConsensus:
    def evaluate(self, signals: Dict[TimeHorizon, Optional[Signal]]) -> ConsensusResult:
        """
        Args:
            signals: Signal per horizon; None marks a horizon that failed

        Returns:
            ConsensusResult; HOLD with zero confidence and agreement when no
            horizon produced a signal
        """
        valid = [s for s in signals.values() if s is not None]
        if not valid:
            return ConsensusResult(action=SignalAction.HOLD, confidence=0.0, agreement=0.0)

        counts = Counter(s.action for s in valid)
        # Most frequent; ties go to the earliest action in enum order
        action, count = min(counts.items(), key=lambda item: (-item[1], _ACTION_ORDER[item[0]]))

        agreement = count / len(valid)
        confidence = float(np.mean([s.confidence for s in valid])) * agreement

        conflicts = []
        if len(counts) >= 3:
            conflicts.append('Multiple conflicting signals across timeframes')
        if any(a in BUY_FAMILY for a in counts) and any(a in SELL_FAMILY for a in counts):
            conflicts.append('Opposing buy and sell signals detected')

        recommendations = []
        if agreement > 0.8:
            recommendations.append('Strong consensus across timeframes - high confidence signal')
        elif agreement > 0.6:
            recommendations.append('Moderate agreement across timeframes')
        else:
            recommendations.append('Mixed signals - consider waiting for clearer direction')
        if conflicts:
            recommendations.append('Conflicting timeframes detected - use smaller position sizes')

        logger.debug(f"Consensus {action.value} from {len(valid)} horizons (agreement {agreement:.2f})")
        return ConsensusResult(
            action=action,
            confidence=confidence,
            agreement=agreement,
            conflicts=conflicts,
            recommendations=recommendations,
        )
