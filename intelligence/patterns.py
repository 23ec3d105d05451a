"""Rule-based pattern recognition.

Each signal is checked against three fixed rules. A signal can match
several rules and so contribute several patterns.

    Morning Peak Pattern    observed between 06:00 and 08:59    0.8
    Critical Event Pattern  severity CRITICAL                   0.9
    High Strength Pattern   strength above 90                   0.7
"""

from schemas.intelligence import Pattern, PatternRecognition
from schemas.signal import Signal, SignalSeverity

MORNING_HOURS = (6, 8)
HIGH_STRENGTH = 90


def signal_patterns(signal: Signal) -> list[Pattern]:
    patterns: list[Pattern] = []

    hour = signal.timestamp.hour
    if MORNING_HOURS[0] <= hour <= MORNING_HOURS[1]:
        patterns.append(
            Pattern(
                id=f"morning-pattern-{signal.id}",
                name="Morning Peak Pattern",
                type="time-based",
                confidence=0.8,
                signal_id=signal.id,
                description="Signal detected during morning peak hours",
            )
        )

    if signal.severity == SignalSeverity.CRITICAL:
        patterns.append(
            Pattern(
                id=f"critical-pattern-{signal.id}",
                name="Critical Event Pattern",
                type="severity-based",
                confidence=0.9,
                signal_id=signal.id,
                description="Critical severity signal pattern detected",
            )
        )

    if signal.strength > HIGH_STRENGTH:
        patterns.append(
            Pattern(
                id=f"high-strength-pattern-{signal.id}",
                name="High Strength Pattern",
                type="strength-based",
                confidence=0.7,
                signal_id=signal.id,
                description="High signal strength pattern detected",
            )
        )

    return patterns


def recognize_patterns(signals: list[Signal]) -> PatternRecognition:
    """Collect every pattern in the batch. Confidence is the mean over patterns."""
    patterns = [pattern for signal in signals for pattern in signal_patterns(signal)]
    confidence = sum(p.confidence for p in patterns) / len(patterns) if patterns else 0.0
    return PatternRecognition(patterns=patterns, confidence=confidence)
