"""Notification template rendering.

Notification templates reference signal fields with {placeholder} markers:

    "EMERGENCY: {signalType} detected for asset {assetId} at {timestamp}"

Only known placeholders are replaced. Anything else in braces is left as
written, so a template containing literal braces never raises.
"""

import re
from typing import Any

from schemas.signal import Signal

_PLACEHOLDER = re.compile(r"\{(\w+)\}")

UNKNOWN_ASSET = "Unknown"


def signal_fields(signal: Signal) -> dict[str, str]:
    """Placeholder values derived from a signal."""
    return {
        "signalId": signal.id,
        "signalType": signal.type.value,
        "severity": signal.severity.value,
        "assetId": signal.asset_id or UNKNOWN_ASSET,
        "timestamp": signal.timestamp.isoformat(),
        "strength": f"{signal.strength:g}",
    }


def render_template(template: str, signal: Signal, extra: dict[str, Any] | None = None) -> str:
    """Substitute signal fields (and any extra values) into a template.

    Args:
        template: Text with {placeholder} markers.
        signal: Source of the standard placeholders.
        extra: Additional placeholder values. Override signal fields of
            the same name.

    Returns:
        The rendered text.
    """
    values: dict[str, str] = signal_fields(signal)
    for key, value in (extra or {}).items():
        values[key] = str(value)
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)
