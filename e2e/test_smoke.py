from schemas.signal import Signal, SignalSeverity, SignalType


def test_signal_schema_smoke() -> None:
    signal = Signal(
        id="sig_001",
        type="EMERGENCY",
        severity="CRITICAL",
        strength=95,
        asset_id="pump-7",
        description="Pressure relief valve stuck open",
    )
    assert signal.id == "sig_001"
    assert signal.type == SignalType.EMERGENCY
    assert signal.severity == SignalSeverity.CRITICAL
    assert signal.strength == 95.0
