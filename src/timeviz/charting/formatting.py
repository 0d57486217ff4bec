"""Value formatting for bar labels, axis ticks and tooltips."""

from __future__ import annotations

from timeviz.domain.models import StepKey

__all__ = ["format_currency", "format_compact", "format_step_key"]


def format_currency(value: float) -> str:
    """``$1.2T`` / ``$850B`` / ``$12M`` style money labels."""
    sign = "-" if value < 0 else ""
    v = abs(value)
    if v >= 1e12:
        return f"{sign}${v / 1e12:.1f}T"
    if v >= 1e9:
        return f"{sign}${v / 1e9:.0f}B"
    return f"{sign}${v / 1e6:.0f}M"


def format_compact(value: float) -> str:
    """Short SI-ish label (``1.5B``, ``320M``, ``12.5k``, ``3.14``)."""
    sign = "-" if value < 0 else ""
    v = abs(value)
    for threshold, suffix in ((1e12, "T"), (1e9, "B"), (1e6, "M"), (1e3, "k")):
        if v >= threshold:
            scaled = v / threshold
            text = f"{scaled:.1f}".rstrip("0").rstrip(".")
            return f"{sign}{text}{suffix}"
    if v == int(v):
        return f"{sign}{int(v)}"
    return f"{sign}{v:.2f}".rstrip("0").rstrip(".")


def format_step_key(key: StepKey) -> str:
    if isinstance(key, float) and key.is_integer():
        return str(int(key))
    return str(key)
