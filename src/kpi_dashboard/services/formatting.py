from __future__ import annotations

import math
from typing import Optional

from ..models.common import ChangeDirection, FormatSettings, ValueFormat
from .metrics import is_missing


def format_value(value: Optional[float | str], fmt: ValueFormat | str | None, settings: FormatSettings) -> str:
    if isinstance(value, str):
        return value
    if is_missing(value) or not math.isfinite(value):
        return settings.placeholder
    fmt = ValueFormat(fmt) if fmt is not None else ValueFormat.TEXT
    if fmt == ValueFormat.CURRENCY:
        return _format_currency(value, settings)
    if fmt == ValueFormat.PERCENT:
        return f"{value * 100:.{settings.decimals_for(fmt)}f}%"
    if fmt == ValueFormat.NUMBER:
        return f"{value:.{settings.decimals_for(fmt)}f}"
    if fmt == ValueFormat.INTEGER:
        return f"{math.floor(value + 0.5):,}"
    return f"{value:.{settings.decimals_for(ValueFormat.DECIMAL)}f}"


def _format_currency(value: float, settings: FormatSettings) -> str:
    sign = "-" if value < 0 else ""
    symbol = settings.currency_symbol
    digits = settings.decimals_for(ValueFormat.CURRENCY)
    magnitude = abs(value)
    if magnitude >= 1e6:
        return f"{sign}{symbol}{magnitude / 1e6:.{settings.millions_decimals}f}M"
    if magnitude >= 1e3:
        return f"{sign}{symbol}{magnitude / 1e3:.{digits}f}K"
    return f"{sign}{symbol}{magnitude:.{digits}f}"


def change_direction(change: Optional[float], threshold: float = 0.001) -> ChangeDirection:
    if is_missing(change):
        return ChangeDirection.NEUTRAL
    if change > threshold:
        return ChangeDirection.POSITIVE
    if change < -threshold:
        return ChangeDirection.NEGATIVE
    return ChangeDirection.NEUTRAL


def describe_change(change: Optional[float], settings: FormatSettings) -> Optional[str]:
    """Card footer such as ``↑ 5.0% vs prev month``; ``None`` when there is no change to show."""
    if is_missing(change):
        return None
    direction = change_direction(change, settings.change_threshold)
    return f"{direction.arrow} {format_value(abs(change), ValueFormat.PERCENT, settings)} {settings.change_suffix}"
