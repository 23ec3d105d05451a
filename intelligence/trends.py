"""Per-type strength trends.

For each signal type in the batch, signals are sorted by time and split at
the midpoint. The trend direction compares the mean strength of the later
half with the earlier half; its strength is the absolute difference.
"""

from schemas.intelligence import OverallDirection, Trend, TrendAnalysis, TrendDirection
from schemas.signal import Signal, SignalType


def type_trend(signal_type: SignalType, signals: list[Signal]) -> Trend:
    if len(signals) < 2:
        return Trend(
            id=f"trend-{signal_type.value}",
            signal_type=signal_type,
            direction=TrendDirection.STABLE,
            data_points=len(signals),
            description="Insufficient data for trend analysis",
        )

    ordered = sorted(signals, key=lambda s: s.timestamp)
    middle = len(ordered) // 2
    earlier = sum(s.strength for s in ordered[:middle]) / middle
    later = sum(s.strength for s in ordered[middle:]) / (len(ordered) - middle)

    if later > earlier:
        direction = TrendDirection.INCREASING
    elif later < earlier:
        direction = TrendDirection.DECREASING
    else:
        direction = TrendDirection.STABLE

    return Trend(
        id=f"trend-{signal_type.value}",
        signal_type=signal_type,
        direction=direction,
        strength=abs(later - earlier),
        data_points=len(ordered),
        description=f"{signal_type.value} signals showing {direction.value.lower()} trend",
    )


def overall_direction(directions: list[TrendDirection]) -> OverallDirection:
    """UP, DOWN or STABLE when one direction outnumbers both others, else MIXED."""
    if not directions:
        return OverallDirection.STABLE
    up = directions.count(TrendDirection.INCREASING)
    down = directions.count(TrendDirection.DECREASING)
    flat = directions.count(TrendDirection.STABLE)

    if up > down and up > flat:
        return OverallDirection.UP
    if down > up and down > flat:
        return OverallDirection.DOWN
    if flat > up and flat > down:
        return OverallDirection.STABLE
    return OverallDirection.MIXED


def analyze_trends(signals: list[Signal]) -> TrendAnalysis:
    by_type: dict[SignalType, list[Signal]] = {}
    for signal in signals:
        by_type.setdefault(signal.type, []).append(signal)

    trends = [type_trend(signal_type, group) for signal_type, group in by_type.items()]
    return TrendAnalysis(
        trends=trends,
        overall_direction=overall_direction([t.direction for t in trends]),
    )
