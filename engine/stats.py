"""
Engine Statistics

Running counters owned by one SignalGenerator instance: signals generated,
average confidence, average processing time, and the distribution of
actions and risk levels.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from engine.models import Signal

logger = logging.getLogger(__name__)


@dataclass
class SignalRecord:
    """One line of the statistics history"""
    timestamp: datetime
    ticker: str
    action: str
    confidence: float
    risk_level: str
    time_horizon: str
    processing_time: float


@dataclass
class EngineStats:
    total_signals: int = 0
    average_confidence: float = 0.0
    average_processing_time: float = 0.0
    action_distribution: Counter = field(default_factory=Counter)
    risk_distribution: Counter = field(default_factory=Counter)
    history: List[SignalRecord] = field(default_factory=list)
    last_signal_at: Optional[datetime] = None
    max_history: int = 1000

    def record(self, signal: Signal, processing_time: float) -> None:
        """Fold one generated signal into the running averages."""
        n = self.total_signals
        self.average_confidence = (self.average_confidence * n + signal.confidence) / (n + 1)
        self.average_processing_time = (self.average_processing_time * n + processing_time) / (n + 1)
        self.total_signals = n + 1

        self.action_distribution[signal.action.value] += 1
        self.risk_distribution[signal.risk_level.value] += 1
        self.last_signal_at = signal.timestamp

        self.history.append(SignalRecord(
            timestamp=signal.timestamp,
            ticker=signal.ticker,
            action=signal.action.value,
            confidence=signal.confidence,
            risk_level=signal.risk_level.value,
            time_horizon=signal.time_horizon.value,
            processing_time=processing_time,
        ))
        if len(self.history) > self.max_history:
            self.history = self.history[-self.max_history:]

    def reset(self) -> None:
        self.total_signals = 0
        self.average_confidence = 0.0
        self.average_processing_time = 0.0
        self.action_distribution = Counter()
        self.risk_distribution = Counter()
        self.history = []
        self.last_signal_at = None
        logger.info("Engine statistics reset")

    def export(self) -> Dict[str, Any]:
        return {
            'total_signals': self.total_signals,
            'average_confidence': self.average_confidence,
            'average_processing_time': self.average_processing_time,
            'action_distribution': dict(self.action_distribution),
            'risk_distribution': dict(self.risk_distribution),
            'last_signal_at': self.last_signal_at.isoformat() if self.last_signal_at else None,
        }

    def to_frame(self) -> pd.DataFrame:
        """Recorded signals as a DataFrame, one row per signal."""
        columns = ['timestamp', 'ticker', 'action', 'confidence', 'risk_level',
                   'time_horizon', 'processing_time']
        return pd.DataFrame([vars(r) for r in self.history], columns=columns)
