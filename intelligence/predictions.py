"""Outcome predictions keyed on signal type and severity."""

from schemas.intelligence import ConfidenceInterval, Prediction, PredictiveAnalytics
from schemas.signal import Signal, SignalSeverity, SignalType


def signal_predictions(signal: Signal) -> list[Prediction]:
    if signal.type == SignalType.ASSET_CONDITION and signal.severity == SignalSeverity.HIGH:
        return [
            Prediction(
                id=f"failure-prediction-{signal.id}",
                type="asset-failure",
                signal_id=signal.id,
                value="Asset failure within 24-48 hours",
                horizon=48,
                accuracy=0.75,
                confidence_interval=ConfidenceInterval(lower=0.6, upper=0.9),
            )
        ]
    if signal.type == SignalType.MAINTENANCE:
        return [
            Prediction(
                id=f"maintenance-prediction-{signal.id}",
                type="maintenance-required",
                signal_id=signal.id,
                value="Maintenance required within 72 hours",
                horizon=72,
                accuracy=0.8,
                confidence_interval=ConfidenceInterval(lower=0.7, upper=0.95),
            )
        ]
    if signal.type == SignalType.ENVIRONMENTAL:
        return [
            Prediction(
                id=f"environmental-prediction-{signal.id}",
                type="environmental-impact",
                signal_id=signal.id,
                value="Environmental impact within 12-24 hours",
                horizon=24,
                accuracy=0.65,
                confidence_interval=ConfidenceInterval(lower=0.5, upper=0.8),
            )
        ]
    return []


def predict_outcomes(signals: list[Signal], horizon: int) -> PredictiveAnalytics:
    """Predict outcomes for the batch.

    Args:
        signals: The batch under analysis.
        horizon: Hours. Predictions further out are dropped.

    Returns:
        The predictions, with confidence set to their mean accuracy.
    """
    predictions = [
        prediction
        for signal in signals
        for prediction in signal_predictions(signal)
        if prediction.horizon <= horizon
    ]
    confidence = sum(p.accuracy for p in predictions) / len(predictions) if predictions else 0.0
    return PredictiveAnalytics(predictions=predictions, confidence=confidence)
