"""Anomaly detection.

Two detectors run on every signal:

Strength deviation
    The signal's strength is compared with the mean strength of earlier
    signals of the same type on the same asset observed within 24 hours of
    it. A deviation above 30 is a MEDIUM anomaly, above 50 a HIGH one. The
    score is deviation / 100, capped at 1. Without comparable history there
    is nothing to compare against and no anomaly is raised.

Unusual timing
    A signal observed between 22:00 and 05:59 is a MEDIUM anomaly with a
    fixed score of 0.6.
"""

from datetime import timedelta

from schemas.intelligence import Anomaly, AnomalyDetection
from schemas.signal import Signal, SignalSeverity

COMPARISON_WINDOW = timedelta(hours=24)
MEDIUM_DEVIATION = 30
HIGH_DEVIATION = 50
TIMING_SCORE = 0.6


def comparable_history(signal: Signal, history: list[Signal]) -> list[Signal]:
    """Same type, same asset, within 24 hours, and not the signal itself."""
    return [
        past
        for past in history
        if past.id != signal.id
        and past.type == signal.type
        and past.asset_id == signal.asset_id
        and abs(past.timestamp - signal.timestamp) < COMPARISON_WINDOW
    ]


def strength_anomaly(signal: Signal, history: list[Signal]) -> Anomaly | None:
    comparable = comparable_history(signal, history)
    if not comparable:
        return None

    expected = sum(s.strength for s in comparable) / len(comparable)
    deviation = abs(signal.strength - expected)
    if deviation <= MEDIUM_DEVIATION:
        return None

    return Anomaly(
        id=f"strength-anomaly-{signal.id}",
        type="strength-deviation",
        severity=SignalSeverity.HIGH if deviation > HIGH_DEVIATION else SignalSeverity.MEDIUM,
        score=min(1.0, deviation / 100),
        description="Signal strength deviates significantly from historical average",
        affected_signals=[signal.id],
        expected_value=expected,
        actual_value=signal.strength,
    )


def timing_anomaly(signal: Signal) -> Anomaly | None:
    hour = signal.timestamp.hour
    if 5 < hour < 22:
        return None
    return Anomaly(
        id=f"timing-anomaly-{signal.id}",
        type="unusual-timing",
        severity=SignalSeverity.MEDIUM,
        score=TIMING_SCORE,
        description=f"Signal detected during unusual hours ({hour}:00)",
        affected_signals=[signal.id],
    )


def detect_anomalies(signals: list[Signal], history: list[Signal]) -> AnomalyDetection:
    """Run both detectors over the batch.

    Args:
        signals: The batch under analysis.
        history: Previously analysed signals. The batch itself must not be
            in it yet.

    Returns:
        Every anomaly found, with score set to the mean anomaly score.
    """
    anomalies: list[Anomaly] = []
    for signal in signals:
        for anomaly in (strength_anomaly(signal, history), timing_anomaly(signal)):
            if anomaly is not None:
                anomalies.append(anomaly)
    score = sum(a.score for a in anomalies) / len(anomalies) if anomalies else 0.0
    return AnomalyDetection(anomalies=anomalies, score=score)
