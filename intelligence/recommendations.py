"""Recommended response actions built from one analysis run.

Each non-empty analysis contributes actions and a fixed share of the
overall confidence:

    patterns      0.3   IMMEDIATE_RESPONSE per critical-severity pattern
    anomalies     0.4   INVESTIGATE_PATTERN per HIGH or CRITICAL anomaly
    predictions   0.2   SCHEDULE_INSPECTION per prediction above 0.7 accuracy
    correlations  0.1   one UPDATE_CONFIG when any strong correlation exists

Confidence is capped at 1.0. The rationale names the contributing sources.
"""

from schemas.intelligence import (
    AnomalyDetection,
    CorrelationAnalysis,
    PatternRecognition,
    PredictiveAnalytics,
    Recommendations,
    ResponseAction,
)
from schemas.signal import SignalSeverity, utcnow
from schemas.workflow import Priority, ResponseActionType

PATTERN_WEIGHT = 0.3
ANOMALY_WEIGHT = 0.4
PREDICTION_WEIGHT = 0.2
CORRELATION_WEIGHT = 0.1
PREDICTION_ACCURACY = 0.7


def pattern_actions(analysis: PatternRecognition) -> list[ResponseAction]:
    return [
        ResponseAction(
            id=f"pattern-response-{pattern.id}",
            type=ResponseActionType.IMMEDIATE_RESPONSE,
            description="Execute immediate response for critical pattern",
            priority=Priority.CRITICAL,
            parameters={"pattern": pattern.name, "signal_id": pattern.signal_id},
            estimated_duration=300_000,
            required_resources=["emergency-team"],
            success_criteria="Critical pattern response executed",
        )
        for pattern in analysis.patterns
        if pattern.type == "severity-based"
    ]


def anomaly_actions(analysis: AnomalyDetection) -> list[ResponseAction]:
    return [
        ResponseAction(
            id=f"anomaly-response-{anomaly.id}",
            type=ResponseActionType.INVESTIGATE_PATTERN,
            description="Investigate detected anomaly",
            priority=Priority(anomaly.severity.value),
            parameters={"anomaly": anomaly.type, "signals": anomaly.affected_signals},
            estimated_duration=900_000,
            required_resources=["analyst"],
            success_criteria="Anomaly investigation completed",
        )
        for anomaly in analysis.anomalies
        if anomaly.severity in (SignalSeverity.HIGH, SignalSeverity.CRITICAL)
    ]


def prediction_actions(analysis: PredictiveAnalytics) -> list[ResponseAction]:
    return [
        ResponseAction(
            id=f"prediction-response-{prediction.id}",
            type=ResponseActionType.SCHEDULE_INSPECTION,
            description=f"Schedule inspection based on prediction: {prediction.value}",
            priority=Priority.MEDIUM,
            parameters={"prediction": prediction.type, "signal_id": prediction.signal_id},
            estimated_duration=3_600_000,
            required_resources=["inspector"],
            success_criteria="Prediction-based inspection scheduled",
        )
        for prediction in analysis.predictions
        if prediction.accuracy > PREDICTION_ACCURACY
    ]


def correlation_actions(analysis: CorrelationAnalysis) -> list[ResponseAction]:
    if not analysis.strong_correlations:
        return []
    return [
        ResponseAction(
            id=f"correlation-response-{int(utcnow().timestamp() * 1000)}",
            type=ResponseActionType.UPDATE_CONFIG,
            description="Update system configuration based on signal correlations",
            priority=Priority.LOW,
            parameters={"correlations": len(analysis.strong_correlations)},
            estimated_duration=1_800_000,
            required_resources=["admin"],
            success_criteria="Configuration updated based on correlations",
        )
    ]


def build_recommendations(
    patterns: PatternRecognition,
    anomalies: AnomalyDetection,
    predictions: PredictiveAnalytics,
    correlations: CorrelationAnalysis,
) -> Recommendations:
    actions: list[ResponseAction] = []
    confidence = 0.0
    rationale: list[str] = []

    if patterns.patterns:
        actions.extend(pattern_actions(patterns))
        confidence += PATTERN_WEIGHT
        rationale.append("Pattern-based recommendations")

    if anomalies.anomalies:
        actions.extend(anomaly_actions(anomalies))
        confidence += ANOMALY_WEIGHT
        rationale.append("Anomaly-based recommendations")

    if predictions.predictions:
        actions.extend(prediction_actions(predictions))
        confidence += PREDICTION_WEIGHT
        rationale.append("Prediction-based recommendations")

    if correlations.strong_correlations:
        actions.extend(correlation_actions(correlations))
        confidence += CORRELATION_WEIGHT
        rationale.append("Correlation-based recommendations")

    return Recommendations(
        actions=actions,
        confidence=min(1.0, confidence),
        rationale=", ".join(rationale),
    )
