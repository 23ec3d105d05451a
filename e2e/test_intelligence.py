"""SignalIntelligenceEngine tests.

Signals use fixed daytime timestamps unless a test is about timing, so the
unusual-hours detector stays quiet.
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.errors import NotInitializedError
from core.events import EventBus
from intelligence import engine as engine_module
from intelligence.engine import SignalIntelligenceEngine
from schemas.config import AnalysisSettings, IntelligenceFeatures, SignalIntelligenceConfig
from schemas.events import EventType
from schemas.intelligence import CorrelationType, OverallDirection, TrendDirection
from schemas.signal import Signal, utcnow
from schemas.workflow import ResponseActionType

NOON = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def make_signal(signal_id="sig-1", minutes=0, **overrides) -> Signal:
    data = dict(
        id=signal_id,
        type="ASSET_CONDITION",
        severity="MEDIUM",
        strength=40,
        asset_id="bridge-12",
        timestamp=NOON + timedelta(minutes=minutes),
    )
    data.update(overrides)
    return Signal(**data)


def make_config(**overrides) -> SignalIntelligenceConfig:
    data = dict(id="intel", name="Signal Intelligence")
    data.update(overrides)
    return SignalIntelligenceConfig(**data)


async def make_engine(config=None, bus=None) -> SignalIntelligenceEngine:
    engine = SignalIntelligenceEngine(config or make_config(), bus)
    result = await engine.initialize()
    assert result.success, result.error
    return engine


# ── Lifecycle ─────────────────────────────────────────────────────────────────

class TestLifecycle:
    async def test_analyze_requires_initialize(self):
        engine = SignalIntelligenceEngine(make_config())
        with pytest.raises(NotInitializedError):
            await engine.analyze_signals([make_signal()])

    async def test_invalid_config(self):
        config = make_config(analysis=AnalysisSettings(analysis_window=0, correlation_threshold=1.5))
        result = await SignalIntelligenceEngine(config).initialize()
        assert not result.success
        assert "analysis.analysis_window must be greater than 0" in result.error
        assert "analysis.correlation_threshold must be between 0 and 1" in result.error

    async def test_empty_batch(self):
        engine = await make_engine()
        result = await engine.analyze_signals([])
        assert result.input_signals == []
        assert result.recommendations.actions == []
        assert result.recommendations.confidence == 0.0
        assert result.trend_analysis.overall_direction == OverallDirection.STABLE


# ── Anomalies ─────────────────────────────────────────────────────────────────

class TestAnomalies:
    async def test_strength_deviation_against_history(self):
        engine = await make_engine()
        await engine.analyze_signals([make_signal(f"hist-{i}", minutes=i * 10) for i in range(3)])

        result = await engine.analyze_signals([make_signal("spike", minutes=60, strength=95)])

        anomalies = result.anomaly_detection.anomalies
        assert len(anomalies) == 1
        anomaly = anomalies[0]
        assert anomaly.type == "strength-deviation"
        assert anomaly.score == pytest.approx(0.55)
        assert anomaly.severity.value == "HIGH"
        assert anomaly.expected_value == pytest.approx(40)
        assert anomaly.actual_value == 95

    async def test_medium_deviation(self):
        engine = await make_engine()
        await engine.analyze_signals([make_signal("hist")])
        result = await engine.analyze_signals([make_signal("bump", minutes=5, strength=80)])
        assert result.anomaly_detection.anomalies[0].severity.value == "MEDIUM"

    async def test_first_signal_has_no_baseline(self):
        engine = await make_engine()
        result = await engine.analyze_signals([make_signal(strength=95)])
        assert result.anomaly_detection.anomalies == []

    async def test_other_asset_is_not_a_baseline(self):
        engine = await make_engine()
        await engine.analyze_signals([make_signal("hist", asset_id="bridge-1")])
        result = await engine.analyze_signals([make_signal("spike", strength=95)])
        assert result.anomaly_detection.anomalies == []

    async def test_night_signal_is_unusual(self):
        engine = await make_engine()
        night = make_signal(timestamp=NOON.replace(hour=2))
        result = await engine.analyze_signals([night])
        anomaly = result.anomaly_detection.anomalies[0]
        assert anomaly.type == "unusual-timing"
        assert anomaly.score == 0.6


# ── Patterns, predictions, trends, correlations ───────────────────────────────

class TestAnalyzers:
    async def test_patterns(self):
        engine = await make_engine()
        signal = make_signal(severity="CRITICAL", strength=95, timestamp=NOON.replace(hour=7))

        result = await engine.analyze_signals([signal])

        names = [p.name for p in result.pattern_recognition.patterns]
        assert names == ["Morning Peak Pattern", "Critical Event Pattern", "High Strength Pattern"]
        assert result.pattern_recognition.confidence == pytest.approx(0.8)

    async def test_prediction_horizon_filter(self):
        engine = await make_engine(make_config(analysis=AnalysisSettings(prediction_horizon=24)))
        result = await engine.analyze_signals([
            make_signal("m", type="MAINTENANCE"),
            make_signal("e", type="ENVIRONMENTAL"),
        ])
        assert [p.type for p in result.predictive_analytics.predictions] == ["environmental-impact"]

    async def test_trend_direction(self):
        engine = await make_engine()
        batch = [make_signal(f"s{i}", minutes=i, strength=s) for i, s in enumerate((20, 30, 60, 80))]

        result = await engine.analyze_signals(batch)

        trend = result.trend_analysis.trends[0]
        assert trend.direction == TrendDirection.INCREASING
        assert trend.strength == pytest.approx(45)
        assert trend.data_points == 4
        assert result.trend_analysis.overall_direction == OverallDirection.UP

    async def test_single_signal_trend_is_stable(self):
        engine = await make_engine()
        result = await engine.analyze_signals([make_signal()])
        assert result.trend_analysis.trends[0].description == "Insufficient data for trend analysis"

    async def test_in_batch_correlations(self):
        engine = await make_engine()
        result = await engine.analyze_signals([
            make_signal("a"),
            make_signal("b"),
            make_signal("c", type="EMERGENCY", asset_id="pump-7", severity="LOW", minutes=180),
        ])

        analysis = result.correlation_analysis
        assert len(analysis.correlations) == 3
        assert analysis.strong_correlations == ["a-b"]
        pair = analysis.correlations[0]
        assert pair.coefficient == pytest.approx(1.0)
        assert pair.type == CorrelationType.POSITIVE

    async def test_historical_correlations_respect_window(self):
        now = utcnow()
        engine = await make_engine()
        await engine.analyze_signals([
            make_signal("recent", timestamp=now - timedelta(minutes=5)),
            make_signal("stale", timestamp=now - timedelta(days=30)),
        ])

        result = await engine.analyze_signals([make_signal("new", timestamp=now)])

        historical = [c for c in result.correlation_analysis.correlations if c.historical]
        assert [c.signal_pair for c in historical] == [("new", "recent")]


# ── Recommendations ───────────────────────────────────────────────────────────

class TestRecommendations:
    async def test_critical_signal_recommends_immediate_response(self):
        engine = await make_engine()
        result = await engine.analyze_signals([
            make_signal(type="EMERGENCY", severity="CRITICAL", strength=95, asset_id="pump-7")
        ])

        recommendations = result.recommendations
        assert [a.type for a in recommendations.actions] == [ResponseActionType.IMMEDIATE_RESPONSE]
        assert recommendations.confidence == pytest.approx(0.3)
        assert recommendations.rationale == "Pattern-based recommendations"

    async def test_sources_add_up(self):
        engine = await make_engine()
        await engine.analyze_signals([make_signal("hist")])
        result = await engine.analyze_signals([
            make_signal("a", severity="HIGH", strength=95, minutes=1),
            make_signal("b", severity="HIGH", strength=95, minutes=2),
        ])

        types = {a.type for a in result.recommendations.actions}
        assert types == {
            ResponseActionType.INVESTIGATE_PATTERN,
            ResponseActionType.SCHEDULE_INSPECTION,
            ResponseActionType.UPDATE_CONFIG,
        }
        # patterns 0.3 + anomalies 0.4 + predictions 0.2 + correlations 0.1
        assert result.recommendations.confidence == pytest.approx(1.0)


# ── Feature toggles and isolation ─────────────────────────────────────────────

class TestFeatures:
    async def test_disabled_analyzers_are_empty(self):
        features = IntelligenceFeatures(pattern_recognition=False, trend_analysis=False)
        engine = await make_engine(make_config(features=features))

        result = await engine.analyze_signals([make_signal(severity="CRITICAL", strength=95)])

        assert result.pattern_recognition.patterns == []
        assert result.trend_analysis.trends == []
        assert "pattern_recognition" not in result.features_used
        assert "anomaly_detection" in result.features_used

    async def test_failing_analyzer_is_isolated(self, monkeypatch):
        def explode(signals):
            raise RuntimeError("pattern store offline")

        monkeypatch.setattr(engine_module, "recognize_patterns", explode)
        engine = await make_engine()

        result = await engine.analyze_signals([make_signal("a"), make_signal("b", type="MAINTENANCE")])

        assert result.pattern_recognition.patterns == []
        assert len(result.predictive_analytics.predictions) == 1
        assert len(result.trend_analysis.trends) == 2

    async def test_update_config(self):
        engine = await make_engine()
        assert engine.update_config(features={"anomaly_detection": False}).success
        assert engine.config.features.anomaly_detection is False

        bad = engine.update_config(analysis={"prediction_horizon": 0})
        assert not bad.success
        assert engine.config.analysis.prediction_horizon == 72


# ── Events, history and statistics ────────────────────────────────────────────

class TestHistoryAndEvents:
    async def test_event_sequence(self):
        bus = EventBus()
        seen = []
        for event_type in (
            EventType.PATTERNS_DETECTED,
            EventType.ANOMALIES_DETECTED,
            EventType.RECOMMENDATIONS_GENERATED,
            EventType.ANALYSIS_COMPLETED,
        ):
            bus.subscribe(event_type, lambda e: seen.append(e.event_type))
        engine = await make_engine(bus=bus)

        result = await engine.analyze_signals([make_signal()])

        assert seen == [
            EventType.PATTERNS_DETECTED,
            EventType.ANOMALIES_DETECTED,
            EventType.RECOMMENDATIONS_GENERATED,
            EventType.ANALYSIS_COMPLETED,
        ]
        assert result.id.startswith("intelligence-")

    async def test_history_and_results(self):
        engine = await make_engine()
        await engine.analyze_signals([make_signal("a"), make_signal("b")])
        await engine.analyze_signals([make_signal("c")])

        assert [s.id for s in engine.get_signal_history()] == ["a", "b", "c"]
        assert len(engine.get_intelligence_results()) == 2

        engine.clear_signal_history()
        engine.clear_intelligence_results()
        assert engine.get_signal_history() == []
        assert engine.get_intelligence_results() == []

    async def test_statistics(self):
        engine = await make_engine()
        await engine.analyze_signals([
            make_signal("a", severity="CRITICAL", strength=95),
            make_signal("b", type="MAINTENANCE"),
        ])

        stats = engine.get_statistics()

        assert stats["signals_analyzed"] == 2
        assert stats["patterns_detected"] == 2
        assert stats["predictions_generated"] == 1
        assert stats["correlations_found"] == 1
        assert stats["trends_analyzed"] == 2
        assert stats["average_analysis_time"] >= 0
