"""Signal intelligence engine.

SignalIntelligenceEngine runs a batch of signals through five analyzers
and turns their output into recommended ResponseActions:

    patterns      → patternsDetected
    anomalies     → anomaliesDetected
    predictions   → predictionsGenerated
    correlations  → correlationsAnalyzed
    trends        → trendsAnalyzed
    recommendations → recommendationsGenerated
    result        → analysisCompleted

Each analyzer can be switched off in the config, and each is isolated: an
analyzer that raises is logged and contributes an empty analysis, the
others still run.

Anomaly detection and historical correlation compare the batch against
signals from earlier calls. The batch is appended to that history only
after the analysis, so a signal is never compared with itself.
"""

import itertools
import logging
import time
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import BaseModel

from core.errors import NotInitializedError
from core.events import EventBus, Listener
from intelligence.anomalies import detect_anomalies
from intelligence.correlations import analyze_correlations
from intelligence.patterns import recognize_patterns
from intelligence.predictions import predict_outcomes
from intelligence.recommendations import build_recommendations
from intelligence.trends import analyze_trends
from schemas.config import SignalIntelligenceConfig
from schemas.events import AnalysisPayload, EnginePayload, EventType
from schemas.intelligence import (
    AnomalyDetection,
    CorrelationAnalysis,
    PatternRecognition,
    PredictiveAnalytics,
    Recommendations,
    SignalIntelligenceResult,
    TrendAnalysis,
)
from schemas.result import OperationResult
from schemas.signal import Signal, utcnow

logger = logging.getLogger(__name__)

_SOURCE = "intelligence"

AnalysisT = TypeVar("AnalysisT", bound=BaseModel)


def validate_config(config: SignalIntelligenceConfig) -> list[str]:
    errors: list[str] = []
    if not config.id or not config.name:
        errors.append("Configuration must have id and name")
    analysis = config.analysis
    if analysis.analysis_window <= 0:
        errors.append("analysis.analysis_window must be greater than 0")
    if not 0.0 <= analysis.correlation_threshold <= 1.0:
        errors.append("analysis.correlation_threshold must be between 0 and 1")
    if not 0.0 <= analysis.anomaly_threshold <= 1.0:
        errors.append("analysis.anomaly_threshold must be between 0 and 1")
    if analysis.prediction_horizon <= 0:
        errors.append("analysis.prediction_horizon must be greater than 0")
    return errors


class SignalIntelligenceEngine:
    """Analyses signal batches and keeps their history and results.

    Attributes:
        config: Feature toggles and analysis thresholds.
        _history: Every signal analysed so far, in arrival order.
        _results: Every SignalIntelligenceResult produced, oldest first.
    """

    def __init__(self, config: SignalIntelligenceConfig, event_bus: EventBus | None = None) -> None:
        self.config = config
        self._events = event_bus or EventBus()
        self._history: list[Signal] = []
        self._results: list[SignalIntelligenceResult] = []
        self._initialized = False
        self._seq = itertools.count(1)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> OperationResult:
        errors = validate_config(self.config)
        if errors:
            logger.error("Intelligence config rejected: %s", "; ".join(errors))
            return OperationResult.fail("Invalid configuration: " + "; ".join(errors))

        self._initialized = True
        features = self.config.features.enabled()
        logger.info("Intelligence engine '%s' initialised. Features: %s", self.config.id, ", ".join(features))
        self._events.emit(
            EventType.INITIALIZED,
            _SOURCE,
            EnginePayload(engine_id=self.config.id, detail={"features": features}),
        )
        return OperationResult.ok(features=features)

    async def analyze_signals(self, signals: list[Signal]) -> SignalIntelligenceResult:
        """Run every enabled analyzer over a batch.

        Args:
            signals: The batch. May be empty.

        Returns:
            The stored SignalIntelligenceResult.

        Raises:
            NotInitializedError: If initialize() has not succeeded.
        """
        if not self._initialized:
            raise NotInitializedError("Signal Intelligence Engine")

        start = time.perf_counter()
        batch = list(signals)
        history = list(self._history)
        features = self.config.features
        settings = self.config.analysis
        logger.info("Analysing %d signals against %d in history.", len(batch), len(history))

        patterns = self._run(
            "pattern recognition",
            features.pattern_recognition,
            PatternRecognition,
            lambda: recognize_patterns(batch),
        )
        self._emit_analysis(EventType.PATTERNS_DETECTED, len(patterns.patterns), patterns.confidence)

        anomalies = self._run(
            "anomaly detection",
            features.anomaly_detection,
            AnomalyDetection,
            lambda: detect_anomalies(batch, history),
        )
        alerts = [a for a in anomalies.anomalies if a.score >= settings.anomaly_threshold]
        for anomaly in alerts:
            logger.warning("Anomaly %s scored %.2f: %s", anomaly.id, anomaly.score, anomaly.description)
        self._emit_analysis(
            EventType.ANOMALIES_DETECTED,
            len(anomalies.anomalies),
            anomalies.score,
            above_threshold=len(alerts),
        )

        predictions = self._run(
            "predictive analytics",
            features.predictive_analytics,
            PredictiveAnalytics,
            lambda: predict_outcomes(batch, settings.prediction_horizon),
        )
        self._emit_analysis(
            EventType.PREDICTIONS_GENERATED, len(predictions.predictions), predictions.confidence
        )

        correlations = self._run(
            "correlation analysis",
            features.correlation_analysis,
            CorrelationAnalysis,
            lambda: analyze_correlations(
                batch,
                history,
                settings.correlation_threshold,
                settings.analysis_window,
                utcnow(),
            ),
        )
        self._emit_analysis(
            EventType.CORRELATIONS_ANALYZED,
            len(correlations.correlations),
            strong=len(correlations.strong_correlations),
        )

        trends = self._run(
            "trend analysis",
            features.trend_analysis,
            TrendAnalysis,
            lambda: analyze_trends(batch),
        )
        self._emit_analysis(
            EventType.TRENDS_ANALYZED,
            len(trends.trends),
            direction=trends.overall_direction.value,
        )

        recommendations = self._run(
            "recommendations",
            True,
            Recommendations,
            lambda: build_recommendations(patterns, anomalies, predictions, correlations),
        )
        self._emit_analysis(
            EventType.RECOMMENDATIONS_GENERATED,
            len(recommendations.actions),
            recommendations.confidence,
            rationale=recommendations.rationale,
        )

        now = utcnow()
        result = SignalIntelligenceResult(
            id=f"intelligence-{int(now.timestamp() * 1000)}-{next(self._seq)}",
            timestamp=now,
            duration=(time.perf_counter() - start) * 1000,
            input_signals=batch,
            pattern_recognition=patterns,
            anomaly_detection=anomalies,
            predictive_analytics=predictions,
            correlation_analysis=correlations,
            trend_analysis=trends,
            recommendations=recommendations,
            features_used=features.enabled(),
        )

        self._history.extend(batch)
        self._results.append(result)
        logger.info(
            "Analysis %s done in %.0fms: %d patterns, %d anomalies, %d predictions, %d actions.",
            result.id,
            result.duration,
            len(patterns.patterns),
            len(anomalies.anomalies),
            len(predictions.predictions),
            len(recommendations.actions),
        )
        self._events.emit(
            EventType.ANALYSIS_COMPLETED,
            _SOURCE,
            AnalysisPayload(
                count=len(batch),
                score=recommendations.confidence,
                result_id=result.id,
                detail={"duration_ms": result.duration, "actions": len(recommendations.actions)},
            ),
        )
        return result

    def _run(
        self,
        name: str,
        enabled: bool,
        empty: type[AnalysisT],
        analyzer: Callable[[], AnalysisT],
    ) -> AnalysisT:
        if not enabled:
            return empty()
        try:
            return analyzer()
        except Exception:
            logger.exception("%s failed. Continuing with an empty result.", name.capitalize())
            return empty()

    def _emit_analysis(self, event_type: EventType, count: int, score: float = 0.0, **detail: Any) -> None:
        self._events.emit(
            event_type,
            _SOURCE,
            AnalysisPayload(count=count, score=score, detail=detail),
        )

    # ── Queries and maintenance ───────────────────────────────────────────────

    def get_signal_history(self) -> list[Signal]:
        return list(self._history)

    def get_intelligence_results(self) -> list[SignalIntelligenceResult]:
        return list(self._results)

    def clear_signal_history(self) -> None:
        self._history.clear()
        logger.info("Signal history cleared.")

    def clear_intelligence_results(self) -> None:
        self._results.clear()
        logger.info("Intelligence results cleared.")

    def update_config(self, **fields: Any) -> OperationResult:
        data = self.config.model_dump()
        data.update(fields)
        try:
            candidate = SignalIntelligenceConfig.model_validate(data)
        except ValueError as exc:
            return OperationResult.fail(f"Invalid configuration: {exc}")
        errors = validate_config(candidate)
        if errors:
            return OperationResult.fail("Invalid configuration: " + "; ".join(errors))
        self.config = candidate
        logger.info("Intelligence config updated: %s", ", ".join(sorted(fields)))
        return OperationResult.ok(updated=sorted(fields))

    def subscribe(self, event_type: EventType, listener: Listener) -> None:
        self._events.subscribe(event_type, listener)

    def unsubscribe(self, event_type: EventType, listener: Listener) -> bool:
        return self._events.unsubscribe(event_type, listener)

    def get_statistics(self) -> dict[str, Any]:
        results = self._results
        return {
            "signals_analyzed": len(self._history),
            "patterns_detected": sum(len(r.pattern_recognition.patterns) for r in results),
            "anomalies_detected": sum(len(r.anomaly_detection.anomalies) for r in results),
            "predictions_generated": sum(len(r.predictive_analytics.predictions) for r in results),
            "correlations_found": sum(len(r.correlation_analysis.correlations) for r in results),
            "trends_analyzed": sum(len(r.trend_analysis.trends) for r in results),
            "average_analysis_time": (
                sum(r.duration for r in results) / len(results) if results else 0.0
            ),
        }
