"""Signal intelligence schema.

Output shapes of the five analyzers (patterns, anomalies, predictions,
correlations, trends), the recommended ResponseActions built from them and
the SignalIntelligenceResult that bundles one analysis run.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from schemas.signal import Signal, SignalSeverity, SignalType, utcnow
from schemas.workflow import Priority, ResponseActionType


class CorrelationType(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class TrendDirection(str, Enum):
    INCREASING = "INCREASING"
    DECREASING = "DECREASING"
    STABLE = "STABLE"


class OverallDirection(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    STABLE = "STABLE"
    MIXED = "MIXED"


class Pattern(BaseModel):
    """A recognised recurring shape in a signal.

    Attributes:
        id: "{kind}-pattern-{signal_id}".
        name: Display name (e.g. "Critical Event Pattern").
        type: Rule family: "time-based", "severity-based" or "strength-based".
        confidence: Fixed per rule, in [0, 1].
        signal_id: Signal the pattern was found in.
        description: Human-readable explanation.
    """

    id: str
    name: str
    type: str
    confidence: float = Field(ge=0.0, le=1.0)
    signal_id: str
    frequency: int = 1
    description: str = ""


class Anomaly(BaseModel):
    """A signal that deviates from history or arrives at an unusual time.

    Attributes:
        id: "{kind}-anomaly-{signal_id}".
        type: "strength-deviation" or "unusual-timing".
        severity: MEDIUM or HIGH.
        score: Anomaly score in [0, 1].
        description: Human-readable explanation.
        affected_signals: Ids of the signals involved.
        expected_value: Historical mean strength, for deviation anomalies.
        actual_value: Observed strength, for deviation anomalies.
    """

    id: str
    type: str
    severity: SignalSeverity
    score: float = Field(ge=0.0, le=1.0)
    description: str = ""
    affected_signals: list[str] = Field(default_factory=list)
    expected_value: float | None = None
    actual_value: float | None = None


class ConfidenceInterval(BaseModel):
    lower: float
    upper: float


class Prediction(BaseModel):
    id: str
    type: str
    signal_id: str
    value: str
    horizon: int  # hours
    accuracy: float = Field(ge=0.0, le=1.0)
    confidence_interval: ConfidenceInterval


class Correlation(BaseModel):
    """Pairwise similarity between two signals.

    Attributes:
        signal_pair: Ids of the two signals (batch first, history second for
            historical correlations).
        coefficient: Weighted similarity in [0, 1].
        type: POSITIVE above 0.5, NEUTRAL otherwise.
        significance: Absolute value of the coefficient.
        historical: True when the second signal came from history.
    """

    signal_pair: tuple[str, str]
    coefficient: float
    type: CorrelationType
    significance: float
    historical: bool = False


class Trend(BaseModel):
    id: str
    signal_type: SignalType
    direction: TrendDirection
    strength: float = 0.0
    data_points: int = 0
    description: str = ""


class PatternRecognition(BaseModel):
    patterns: list[Pattern] = Field(default_factory=list)
    confidence: float = 0.0


class AnomalyDetection(BaseModel):
    anomalies: list[Anomaly] = Field(default_factory=list)
    score: float = 0.0


class PredictiveAnalytics(BaseModel):
    predictions: list[Prediction] = Field(default_factory=list)
    confidence: float = 0.0


class CorrelationAnalysis(BaseModel):
    correlations: list[Correlation] = Field(default_factory=list)
    strong_correlations: list[str] = Field(default_factory=list)


class TrendAnalysis(BaseModel):
    trends: list[Trend] = Field(default_factory=list)
    overall_direction: OverallDirection = OverallDirection.STABLE


class ResponseAction(BaseModel):
    """A recommended action produced by the intelligence engine.

    Can be attached to an execution request as requested_actions or used to
    drive workflow generation directly.

    Attributes:
        id: Unique action id.
        type: The action to perform.
        description: Human-readable explanation.
        priority: Urgency label.
        parameters: Context for the action handler.
        estimated_duration: Expected duration in milliseconds.
        required_resources: Pool ids the action would consume.
        success_criteria: What "done" means for this action.
    """

    id: str
    type: ResponseActionType
    description: str = ""
    priority: Priority = Priority.MEDIUM
    parameters: dict[str, Any] = Field(default_factory=dict)
    estimated_duration: int = 0
    required_resources: list[str] = Field(default_factory=list)
    success_criteria: str = ""


class Recommendations(BaseModel):
    actions: list[ResponseAction] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    rationale: str = ""


class SignalIntelligenceResult(BaseModel):
    """Aggregate output of one analyze_signals() call.

    Attributes:
        id: "intelligence-{epoch_ms}-{n}".
        timestamp: When the analysis finished.
        duration: Wall-clock time of the analysis in milliseconds.
        input_signals: The analysed batch.
        pattern_recognition: Patterns and their mean confidence.
        anomaly_detection: Anomalies and their mean score.
        predictive_analytics: Predictions and their mean accuracy.
        correlation_analysis: All correlations and the strong pair keys.
        trend_analysis: Per-type trends and the majority direction.
        recommendations: Actions built from the analyses above.
        features_used: Names of the analyzers that were enabled.
    """

    id: str
    timestamp: datetime = Field(default_factory=utcnow)
    duration: float = 0.0
    input_signals: list[Signal] = Field(default_factory=list)
    pattern_recognition: PatternRecognition = Field(default_factory=PatternRecognition)
    anomaly_detection: AnomalyDetection = Field(default_factory=AnomalyDetection)
    predictive_analytics: PredictiveAnalytics = Field(default_factory=PredictiveAnalytics)
    correlation_analysis: CorrelationAnalysis = Field(default_factory=CorrelationAnalysis)
    trend_analysis: TrendAnalysis = Field(default_factory=TrendAnalysis)
    recommendations: Recommendations = Field(default_factory=Recommendations)
    features_used: list[str] = Field(default_factory=list)
