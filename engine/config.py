"""
Signal Engine Configuration

Dataclass configuration for the signal engine. Defaults reproduce the
production weighting; every value can be overridden from the environment
(see SignalEngineConfig.from_env) or at runtime through
SignalGenerator.update_config.
"""

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ConfidenceWeights:
    """Weights of each source in the aggregated confidence"""
    technical: float = 0.35
    sentiment: float = 0.25
    pattern: float = 0.25
    market_condition: float = 0.15
    volume: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {
            'technical': self.technical,
            'sentiment': self.sentiment,
            'pattern': self.pattern,
            'market_condition': self.market_condition,
            'volume': self.volume,
        }

    def merged(self, overrides: Optional[Dict[str, float]]) -> 'ConfidenceWeights':
        """
        Apply per-request overrides and renormalize so the weights sum to 1.

        Unknown keys are ignored with a warning; negative weights are clamped to 0.
        """
        weights = self.as_dict()
        for key, value in (overrides or {}).items():
            if key not in weights:
                logger.warning(f"Ignoring unknown confidence weight '{key}'")
                continue
            weights[key] = max(0.0, float(value))

        total = sum(weights.values())
        if total <= 0:
            logger.warning("Custom weights sum to zero, falling back to defaults")
            return ConfidenceWeights()
        return ConfidenceWeights(**{k: v / total for k, v in weights.items()})


@dataclass
class SignalThresholds:
    minimum_confidence: float = 0.6
    strong_signal_threshold: float = 0.8
    similarity_threshold: float = 0.7
    low_agreement: float = 0.5
    significant_confidence_change: float = 0.2


@dataclass
class FeatureFlags:
    use_pattern_matching: bool = True
    use_vector_search: bool = True
    use_backtesting: bool = True


@dataclass
class Timeouts:
    """Advisory timeouts (seconds) for collaborator calls; the engine never cancels"""
    analysis_timeout: float = 30.0
    data_fetch_timeout: float = 10.0


@dataclass
class SignalEngineConfig:
    """Configuration for signal generation"""
    weights: ConfidenceWeights = field(default_factory=ConfidenceWeights)
    thresholds: SignalThresholds = field(default_factory=SignalThresholds)
    features: FeatureFlags = field(default_factory=FeatureFlags)
    timeouts: Timeouts = field(default_factory=Timeouts)

    # Embedding / pattern search
    embedder: str = 'hashing'
    embedding_model: str = 'sentence-transformers/all-MiniLM-L6-v2'
    embedding_dimension: int = 384
    pattern_half_life_days: float = 365.0
    top_k_patterns: int = 5
    pattern_fetch_limits: Dict[str, int] = field(default_factory=lambda: {
        'QUICK': 10, 'STANDARD': 50, 'COMPREHENSIVE': 200
    })

    # Batch processing
    batch_size: int = 5
    batch_delay_seconds: float = 0.1

    # Signal metadata
    signal_validity_hours: float = 24.0
    version: str = '1.0'

    @classmethod
    def from_env(cls, prefix: str = 'SIGNAL_') -> 'SignalEngineConfig':
        """Build a config from environment variables, e.g. SIGNAL_BATCH_SIZE=10."""
        config = cls()

        def _get(name: str, cast, default):
            raw = os.getenv(f"{prefix}{name}")
            if raw is None or raw == '':
                return default
            try:
                return cast(raw)
            except ValueError:
                logger.warning(f"Invalid value for {prefix}{name}: {raw!r}, using {default}")
                return default

        def _flag(raw: str) -> bool:
            return raw.strip().lower() in ('1', 'true', 'yes', 'on')

        config.weights = ConfidenceWeights(
            technical=_get('WEIGHT_TECHNICAL', float, config.weights.technical),
            sentiment=_get('WEIGHT_SENTIMENT', float, config.weights.sentiment),
            pattern=_get('WEIGHT_PATTERN', float, config.weights.pattern),
            market_condition=_get('WEIGHT_MARKET_CONDITION', float, config.weights.market_condition),
            volume=_get('WEIGHT_VOLUME', float, config.weights.volume),
        )
        config.thresholds = replace(
            config.thresholds,
            minimum_confidence=_get('MIN_CONFIDENCE', float, config.thresholds.minimum_confidence),
            strong_signal_threshold=_get('STRONG_THRESHOLD', float, config.thresholds.strong_signal_threshold),
            similarity_threshold=_get('SIMILARITY_THRESHOLD', float, config.thresholds.similarity_threshold),
        )
        config.features = FeatureFlags(
            use_pattern_matching=_get('USE_PATTERN_MATCHING', _flag, config.features.use_pattern_matching),
            use_vector_search=_get('USE_VECTOR_SEARCH', _flag, config.features.use_vector_search),
            use_backtesting=_get('USE_BACKTESTING', _flag, config.features.use_backtesting),
        )
        config.timeouts = Timeouts(
            analysis_timeout=_get('ANALYSIS_TIMEOUT', float, config.timeouts.analysis_timeout),
            data_fetch_timeout=_get('DATA_FETCH_TIMEOUT', float, config.timeouts.data_fetch_timeout),
        )
        config.embedder = _get('EMBEDDER', str, config.embedder)
        config.embedding_model = _get('EMBEDDING_MODEL', str, config.embedding_model)
        config.embedding_dimension = _get('EMBEDDING_DIMENSION', int, config.embedding_dimension)
        config.pattern_half_life_days = _get('PATTERN_HALF_LIFE_DAYS', float, config.pattern_half_life_days)
        config.top_k_patterns = _get('TOP_K_PATTERNS', int, config.top_k_patterns)
        config.batch_size = _get('BATCH_SIZE', int, config.batch_size)
        config.batch_delay_seconds = _get('BATCH_DELAY_SECONDS', float, config.batch_delay_seconds)
        config.signal_validity_hours = _get('VALIDITY_HOURS', float, config.signal_validity_hours)
        return config
