"""Pairwise signal correlation.

The coefficient is a weighted similarity:

    0.4  same type
    0.3  same asset
    0.2  same severity
    0.1  × max(0, 1 − |Δt| / 1 h)

so it lies in [0, 1]. Above 0.5 the pair is POSITIVE, otherwise NEUTRAL.
"""

from datetime import datetime, timedelta

from schemas.intelligence import Correlation, CorrelationAnalysis, CorrelationType
from schemas.signal import Signal

TYPE_WEIGHT = 0.4
ASSET_WEIGHT = 0.3
SEVERITY_WEIGHT = 0.2
TIME_WEIGHT = 0.1
TIME_WINDOW = timedelta(hours=1)


def correlate(first: Signal, second: Signal, historical: bool = False) -> Correlation:
    coefficient = 0.0
    if first.type == second.type:
        coefficient += TYPE_WEIGHT
    if first.asset_id == second.asset_id:
        coefficient += ASSET_WEIGHT
    if first.severity == second.severity:
        coefficient += SEVERITY_WEIGHT

    gap = abs(first.timestamp - second.timestamp)
    coefficient += TIME_WEIGHT * max(0.0, 1 - gap / TIME_WINDOW)

    if coefficient > 0.5:
        kind = CorrelationType.POSITIVE
    elif coefficient < -0.5:
        kind = CorrelationType.NEGATIVE
    else:
        kind = CorrelationType.NEUTRAL

    return Correlation(
        signal_pair=(first.id, second.id),
        coefficient=coefficient,
        type=kind,
        significance=abs(coefficient),
        historical=historical,
    )


def analyze_correlations(
    signals: list[Signal],
    history: list[Signal],
    threshold: float,
    window_days: int,
    now: datetime,
) -> CorrelationAnalysis:
    """Correlate every pair in the batch, then the batch against history.

    Every in-batch pair is reported; pairs at or above the threshold are
    also listed in strong_correlations as "{a}-{b}". Against history only
    correlations reaching the threshold are kept, and only history observed
    within window_days of now is considered.

    Args:
        signals: The batch under analysis.
        history: Previously analysed signals, excluding the batch.
        threshold: Strong-correlation cut-off.
        window_days: How far back history is considered.
        now: Reference time for the history window.
    """
    correlations: list[Correlation] = []
    strong: list[str] = []

    for i, first in enumerate(signals):
        for second in signals[i + 1:]:
            correlation = correlate(first, second)
            correlations.append(correlation)
            if correlation.significance >= threshold:
                strong.append(f"{first.id}-{second.id}")

    cutoff = now - timedelta(days=window_days)
    recent = [past for past in history if past.timestamp > cutoff]
    for signal in signals:
        for past in recent:
            if past.id == signal.id:
                continue
            correlation = correlate(signal, past, historical=True)
            if correlation.significance >= threshold:
                correlations.append(correlation)

    return CorrelationAnalysis(correlations=correlations, strong_correlations=strong)
