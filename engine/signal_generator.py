"""
Signal Generator

Orchestrates one signal end to end:
1. Technical and sentiment analyses fetched concurrently, then risk
2. Market context and context snapshot derived from the digests
3. Snapshot embedded and matched against stored historical patterns
4. Confidence aggregated, decision mapped, price targets projected
5. Reasoning, key factors, warnings and validation attached
6. Signal persisted (best-effort) and folded into the engine statistics

Batch, multi-timeframe and update entry points reuse the same pipeline.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import fields, replace
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from analyzers.risk import RiskAssessment, RiskProvider
from analyzers.sentiment import SentimentAnalysis, SentimentProvider
from analyzers.technical import TechnicalAnalysis, TechnicalAnalysisProvider
from engine.confidence import ConfidenceAggregator, dynamic_thresholds, validate_confidence
from engine.config import SignalEngineConfig
from engine.consensus import TimeframeConsensus
from engine.context import build_market_context, build_snapshot
from engine.decision import (
    backtest_summary, calculate_price_targets, decision_score, map_score_to_action
)
from engine.errors import SignalEngineError, SignalGenerationError, SignalNotFoundError
from engine.models import (
    AnalysisDepth, BatchSignalResult, MultiTimeframeSignal, PatternMatch, Signal,
    SignalRequest, SignalUpdate, StoredSignal, TimeHorizon
)
from engine.pattern_store import PatternStoreClient
from engine.reasoning import (
    build_key_factors, build_reasoning, build_warnings, sentiment_contributions,
    technical_contributions
)
from engine.similarity import SimilaritySearch
from engine.stats import EngineStats
from engine.vectorizer import ContextVectorizer, HashingTextEmbedder, build_vectorizer
from storage.adapter import StorageAdapter
from storage.signal_store import SignalStoreWriter

logger = logging.getLogger(__name__)


class SignalGenerator:
    """
    Combines technical, sentiment, risk and historical-pattern evidence into
    trading signals with calibrated confidence.
    """

    def __init__(self, technical_provider: TechnicalAnalysisProvider,
                 sentiment_provider: SentimentProvider,
                 risk_provider: RiskProvider,
                 storage: StorageAdapter,
                 config: Optional[SignalEngineConfig] = None,
                 vectorizer: Optional[ContextVectorizer] = None):
        self.config = config or SignalEngineConfig()
        self.technical_provider = technical_provider
        self.sentiment_provider = sentiment_provider
        self.risk_provider = risk_provider
        self.storage = storage

        self.vectorizer = vectorizer or build_vectorizer(
            self.config.embedder, self.config.embedding_dimension, self.config.embedding_model
        )
        self.signal_store = SignalStoreWriter(storage)
        self.consensus = TimeframeConsensus()
        self.stats = EngineStats()
        self._build_components()

        logger.info(
            f"SignalGenerator initialized (weights={self.config.weights.as_dict()}, "
            f"embedding_dimension={self.config.embedding_dimension})"
        )

    def _build_components(self):
        self.pattern_store = PatternStoreClient(
            self.storage, embedding_dimension=self.config.embedding_dimension
        )
        self.similarity = SimilaritySearch(
            similarity_threshold=self.config.thresholds.similarity_threshold,
            half_life_days=self.config.pattern_half_life_days,
            top_k=self.config.top_k_patterns,
        )
        self.aggregator = ConfidenceAggregator(
            weights=self.config.weights,
            low_agreement_threshold=self.config.thresholds.low_agreement,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate_signal(self, ticker: str, request: Optional[SignalRequest] = None) -> Signal:
        """
        Generate and persist a signal for one ticker.

        Raises:
            SignalGenerationError: when an upstream analysis fails
        """
        return await self._generate(ticker, request or SignalRequest(), persist=True)

    async def generate_batch_signals(self, tickers: List[str],
                                     request: Optional[SignalRequest] = None) -> BatchSignalResult:
        """
        Generate signals for many tickers in chunks of ``batch_size``.

        A failing ticker is recorded in ``errors`` and skipped; it never
        aborts the rest of the batch.
        """
        start = time.perf_counter()
        signals: List[Signal] = []
        errors: List[Dict[str, str]] = []
        batch_size = max(1, self.config.batch_size)

        logger.info(f"Generating batch signals for {len(tickers)} tickers")

        for i in range(0, len(tickers), batch_size):
            chunk = tickers[i:i + batch_size]
            results = await asyncio.gather(
                *(self.generate_signal(ticker, request) for ticker in chunk),
                return_exceptions=True,
            )
            for ticker, result in zip(chunk, results):
                if isinstance(result, Exception):
                    errors.append({'ticker': ticker, 'error': str(result)})
                elif isinstance(result, BaseException):
                    raise result
                else:
                    signals.append(result)

            if i + batch_size < len(tickers) and self.config.batch_delay_seconds > 0:
                await asyncio.sleep(self.config.batch_delay_seconds)

        action_breakdown: Dict[str, int] = {}
        for signal in signals:
            action_breakdown[signal.action.value] = action_breakdown.get(signal.action.value, 0) + 1

        summary = {
            'total_analyzed': len(tickers),
            'signals_generated': len(signals),
            'average_confidence': (
                sum(s.confidence for s in signals) / len(signals) if signals else 0.0
            ),
            'action_breakdown': action_breakdown,
            'processing_time': time.perf_counter() - start,
            'time_generated': datetime.now(),
        }
        logger.info(
            f"Batch complete: {len(signals)}/{len(tickers)} signals, {len(errors)} errors "
            f"in {summary['processing_time']:.2f}s"
        )
        return BatchSignalResult(signals=signals, summary=summary, errors=errors)

    async def generate_multi_timeframe_signal(self, ticker: str) -> MultiTimeframeSignal:
        """Generate one signal per horizon and reconcile them; failed horizons are left out."""
        horizons = list(TimeHorizon)
        logger.info(f"Generating multi-timeframe analysis for {ticker}")

        results = await asyncio.gather(
            *(self.generate_signal(ticker, SignalRequest(time_horizon=h)) for h in horizons),
            return_exceptions=True,
        )

        signals: Dict[TimeHorizon, Signal] = {}
        for horizon, result in zip(horizons, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to generate {horizon.value} signal for {ticker}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                signals[horizon] = result

        consensus = self.consensus.evaluate(signals)
        return MultiTimeframeSignal(ticker=ticker, signals=signals, consensus=consensus)

    async def refresh_signal(self, signal_id: str) -> SignalUpdate:
        """
        Regenerate a stored signal and classify the change.

        The regenerated signal is persisted only when the change is
        significant: the action differs, confidence moved by more than the
        configured threshold, or the risk level differs.

        Raises:
            SignalNotFoundError: no stored signal has this id
            SignalGenerationError: when an upstream analysis fails
        """
        previous = await self.signal_store.fetch(signal_id)
        if previous is None:
            raise SignalNotFoundError(signal_id)

        request = SignalRequest(
            time_horizon=previous.time_horizon,
            analysis_depth=previous.analysis_depth,
        )
        current = await self._generate(previous.ticker, request, persist=False)

        changes = self._compare(previous, current)
        significant = bool(changes)
        if significant:
            logger.info(f"Significant signal change detected for {previous.ticker}: {'; '.join(changes)}")
            await self.signal_store.save(current)
        else:
            logger.debug(f"No significant change for signal {signal_id}")

        return SignalUpdate(previous=previous, current=current, significant=significant, changes=changes)

    async def update_signal(self, signal_id: str) -> Signal:
        update = await self.refresh_signal(signal_id)
        return update.current

    def update_config(self, **overrides) -> SignalEngineConfig:
        """
        Replace top-level config fields at runtime, e.g. ``update_config(batch_size=10)``.

        Nothing changes unless the new config and its vectorizer are both valid.

        Raises:
            ValueError: for an unknown field, or an embedding change the
                current embedder cannot follow
        """
        known = {f.name for f in fields(SignalEngineConfig)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}")

        config = replace(self.config, **overrides)
        vectorizer = self.vectorizer
        if 'embedder' in overrides or 'embedding_model' in overrides:
            vectorizer = build_vectorizer(config.embedder, config.embedding_dimension, config.embedding_model)
        elif config.embedding_dimension != vectorizer.dimension:
            if not isinstance(vectorizer.embedder, HashingTextEmbedder):
                raise ValueError(
                    f"Embedder {type(vectorizer.embedder).__name__} is fixed at dimension "
                    f"{vectorizer.dimension}, cannot switch to {config.embedding_dimension}"
                )
            vectorizer = ContextVectorizer(HashingTextEmbedder(config.embedding_dimension),
                                           config.embedding_dimension)

        self.config = config
        self.vectorizer = vectorizer
        self._build_components()
        logger.info(f"Signal generator config updated: {sorted(overrides)}")
        return self.config

    def get_stats(self) -> Dict:
        return self.stats.export()

    def reset_stats(self):
        self.stats.reset()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _generate(self, ticker: str, request: SignalRequest, persist: bool) -> Signal:
        start = time.perf_counter()
        try:
            signal = await self._build_signal(ticker, request)
        except SignalEngineError:
            raise
        except Exception as e:
            logger.error(f"Signal generation failed for {ticker}: {e}")
            raise SignalGenerationError(ticker, str(e)) from e

        if persist:
            await self.signal_store.save(signal)

        self.stats.record(signal, time.perf_counter() - start)
        logger.info(
            f"Signal generated for {ticker}: {signal.action.value} "
            f"({signal.confidence:.3f} confidence, {signal.time_horizon.value})"
        )
        return signal

    async def _fetch_analyses(self, ticker: str, time_horizon: TimeHorizon):
        technical, sentiment = await asyncio.gather(
            self.technical_provider.analyze_stock(ticker),
            self.sentiment_provider.analyze_sentiment(ticker),
        )
        technical = TechnicalAnalysis.coerce(technical, ticker)
        sentiment = SentimentAnalysis.coerce(sentiment, ticker)

        draft = {'ticker': ticker, 'time_horizon': time_horizon.value}
        risk = await self.risk_provider.analyze_signal_risk(ticker, draft, technical, sentiment)
        return technical, sentiment, RiskAssessment.coerce(risk)

    async def _find_patterns(self, snapshot, embedding, request: SignalRequest) -> List[PatternMatch]:
        include = request.include_patterns
        if include is None:
            include = self.config.features.use_pattern_matching
        if not include or not self.config.features.use_vector_search:
            return []

        limit = self.config.pattern_fetch_limits.get(request.analysis_depth.value, 50)
        similar = await self.similarity.search(self.pattern_store, embedding, snapshot, limit=limit)
        return [PatternMatch.from_similar(s) for s in similar]

    async def _build_signal(self, ticker: str, request: SignalRequest) -> Signal:
        technical, sentiment, risk = await self._fetch_analyses(ticker, request.time_horizon)

        market_context = build_market_context(technical, sentiment)
        snapshot = build_snapshot(ticker, request.time_horizon, technical, sentiment, market_context)
        embedding = self.vectorizer.vectorize(snapshot)
        matches = await self._find_patterns(snapshot, embedding, request)

        weights = self.config.weights
        if request.custom_weights:
            weights = weights.merged(request.custom_weights)

        aggregation = self.aggregator.aggregate(
            technical, sentiment, matches, market_context, risk=risk, weights=weights
        )
        confidence = aggregation.final_confidence
        agreement = aggregation.agreement

        # Agreement reinforces whichever side the sources lean to
        score = decision_score(aggregation.direction, confidence)
        action, strength = map_score_to_action(score, agreement.overall_agreement * aggregation.direction)

        price_targets = calculate_price_targets(
            technical.current_price, request.time_horizon, confidence,
            sentiment.sentiment_score, technical.support_levels, technical.resistance_levels,
        )

        minimum_confidence, strong_threshold, threshold_notes = dynamic_thresholds(
            market_context, self.config.thresholds.minimum_confidence,
            self.config.thresholds.strong_signal_threshold,
        )
        validation = validate_confidence(confidence, aggregation.factors, agreement, minimum_confidence)
        if not validation.is_valid and request.analysis_depth == AnalysisDepth.COMPREHENSIVE:
            logger.warning(f"Signal validation failed for {ticker}: {validation.issues}")
        if threshold_notes:
            logger.debug(f"{ticker} threshold {minimum_confidence:.2f}: {threshold_notes}")

        include_backtest = request.include_backtest
        if include_backtest is None:
            include_backtest = self.config.features.use_backtesting

        timestamp = datetime.now()
        return Signal(
            signal_id=f"signal_{ticker}_{uuid.uuid4().hex[:12]}",
            ticker=ticker,
            timestamp=timestamp,
            action=action,
            strength=strength,
            confidence=confidence,
            time_horizon=request.time_horizon,
            analysis_depth=request.analysis_depth,
            current_price=technical.current_price,
            target_price=price_targets.moderate,
            stop_loss=risk.stop_loss_level,
            decision_score=score,
            technical_contributions=technical_contributions(technical),
            sentiment_contributions=sentiment_contributions(sentiment),
            risk_assessment=risk,
            market_context=market_context,
            context=snapshot,
            embedding=tuple(float(x) for x in embedding),
            pattern_matches=tuple(matches),
            price_targets=price_targets,
            confidence_factors=aggregation.factors,
            confidence_breakdown=aggregation.breakdown,
            agreement=agreement,
            reasoning=tuple(build_reasoning(action, technical, sentiment, risk, agreement, matches,
                                           confidence=confidence, strong_threshold=strong_threshold)),
            key_factors=tuple(build_key_factors(technical, sentiment, risk, matches)),
            warnings=tuple(build_warnings(risk, request.risk_tolerance, aggregation.warnings, validation)),
            validation=validation,
            valid_until=timestamp + timedelta(hours=self.config.signal_validity_hours),
            backtest=backtest_summary(matches) if include_backtest else None,
            version=self.config.version,
        )

    def _compare(self, previous: StoredSignal, current: Signal) -> List[str]:
        changes = []
        if previous.action != current.action:
            changes.append(f"action {previous.action.value} -> {current.action.value}")
        delta = current.confidence - previous.confidence
        if abs(delta) > self.config.thresholds.significant_confidence_change:
            changes.append(f"confidence {previous.confidence:.3f} -> {current.confidence:.3f}")
        if previous.risk_level != current.risk_level:
            changes.append(f"risk {previous.risk_level.value} -> {current.risk_level.value}")
        return changes
