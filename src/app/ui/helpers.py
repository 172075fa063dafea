"""
Shared UI helper utilities for the LabLab participant app.

Small formatting helpers used by several stage views. Nothing here touches Streamlit
state, so everything is unit-testable without a running server.
"""

from __future__ import annotations

from datetime import UTC, datetime

from lablab.core.grammar import StageKind

_STAGE_LABELS = {
    StageKind.INSTRUCTIONS: "Instructions",
    StageKind.BREAK: "Break",
    StageKind.SCENARIO: "Market scenario",
    StageKind.SURVEY: "Survey",
}


def format_time(seconds: int) -> str:
    """Format seconds as MM:SS (negative values show as 00:00).

    Examples:
        >>> format_time(75)
        '01:15'
    """
    s = max(0, int(seconds))
    return f"{s // 60:02d}:{s % 60:02d}"


def humanize_ago(ts: datetime | None, now: datetime | None = None) -> str:
    """Convert a timestamp into a short humanized age string.

    Args:
        ts (datetime | None): Aware timestamp (naive values are taken as UTC).
        now (datetime | None): Reference time; defaults to UTC now.

    Returns:
        str: "32s ago", "5m ago", "2h ago", "3d ago", or "n/a" for None.
    """
    if ts is None:
        return "n/a"
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    delta = ((now or datetime.now(tz=UTC)) - ts).total_seconds()
    if delta < 60:
        return f"{max(0, int(delta))}s ago"
    if delta < 3600:
        return f"{int(delta // 60)}m ago"
    if delta < 86400:
        return f"{int(delta // 3600)}h ago"
    return f"{int(delta // 86400)}d ago"


def format_money(value: float | None) -> str:
    """Format a price or portfolio value with two decimals and thousands separators."""
    if value is None:
        return "n/a"
    return f"{value:,.2f}"


def format_delta(delta: float | None, base: float | None = None) -> str | None:
    """Signed change with optional percentage; None when there is no previous value.

    Examples:
        >>> format_delta(5.0, 100.0)
        '+5.00 (+5.0%)'
    """
    if delta is None:
        return None
    text = f"{delta:+,.2f}"
    if base:
        text += f" ({100.0 * delta / base:+.1f}%)"
    return text


def stage_label(kind: StageKind) -> str:
    return _STAGE_LABELS[kind]
