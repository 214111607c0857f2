"""Derived metrics over monthly KPI series.

Every function here is pure: it reads the series it is given, never mutates
it, and returns the same result for the same input. Missing periods are
``None`` (``NaN`` is read the same way) and mean "no data", never zero.
"""
from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

from ..errors import EmptyInputError
from ..models.common import BreakevenStrategy, RunwayStatus
from ..models.results import ActualPlanSeries, RunwayEstimate

logger = logging.getLogger(__name__)

Value = Optional[float]


def is_missing(value: Value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def percent_change(series: Sequence[Value]) -> float:
    """Fractional change between the last two positions of ``series``.

    Returns 0 when there is no defined change: fewer than two points, a
    missing value in either of the last two positions, or a zero base.
    """
    if len(series) < 2:
        return 0.0
    last, previous = series[-1], series[-2]
    if is_missing(last) or is_missing(previous) or previous == 0:
        return 0.0
    return (last - previous) / abs(previous)


def trailing_average(series: Sequence[Value], window: int = 6) -> Optional[float]:
    if window <= 0:
        return None
    values = [v for v in series[-window:] if not is_missing(v)]
    if not values:
        return None
    return sum(values) / len(values)


def cash_runway_months(current_cash: Value, trailing_burn: Value) -> RunwayEstimate:
    """Months until cash reaches zero at the trailing burn rate."""
    if not is_missing(current_cash) and current_cash > 0:
        return RunwayEstimate(status=RunwayStatus.INFINITE)
    if is_missing(current_cash) or is_missing(trailing_burn) or trailing_burn == 0:
        logger.warning("Runway not computable (cash=%s, burn=%s)", current_cash, trailing_burn)
        return RunwayEstimate(status=RunwayStatus.NOT_COMPUTABLE)
    return RunwayEstimate(status=RunwayStatus.FINITE, months=abs(current_cash / trailing_burn))


def first_positive_breakeven(net_cash_flow: Sequence[Value], dates: Sequence[str]) -> Optional[str]:
    for value, label in zip(net_cash_flow, dates):
        if not is_missing(value) and value > 0:
            return label
    return None


def crossing_breakeven(cash_balance: Sequence[Value], dates: Sequence[str]) -> Optional[str]:
    length = min(len(cash_balance), len(dates))
    for idx in range(1, length):
        previous, current = cash_balance[idx - 1], cash_balance[idx]
        if is_missing(previous) or is_missing(current):
            continue
        if previous < 0 and current >= 0:
            return dates[idx]
    return None


_BREAKEVEN_STRATEGIES = {
    BreakevenStrategy.FIRST_POSITIVE: first_positive_breakeven,
    BreakevenStrategy.CROSSING: crossing_breakeven,
}


def find_breakeven(
    series: Sequence[Value],
    dates: Sequence[str],
    strategy: BreakevenStrategy = BreakevenStrategy.FIRST_POSITIVE,
) -> Optional[str]:
    """Breakeven period label under ``strategy``.

    ``FIRST_POSITIVE`` expects net operating cash flow, ``CROSSING`` expects
    the ending cash balance.
    """
    return _BREAKEVEN_STRATEGIES[BreakevenStrategy(strategy)](series, dates)


def cash_trough(series: Sequence[Value]) -> float:
    values = [v for v in series if not is_missing(v)]
    if not values:
        raise EmptyInputError("Cash trough needs at least one cash balance value")
    return min(values)


def target_delta(current_value: Value, target_value: Value) -> Optional[float]:
    if is_missing(target_value) or target_value == 0 or is_missing(current_value):
        return None
    return (target_value - current_value) / abs(target_value)


def split_actual_plan(series: Sequence[Value], today_index: int) -> ActualPlanSeries:
    """Split ``series`` into realized and projected segments around ``today_index``.

    The plan segment repeats the last actual point so both lines join.
    """
    length = len(series)
    today = max(-1, min(today_index, length - 1))
    actual = [value if idx <= today else None for idx, value in enumerate(series)]
    plan = [value if idx > today else None for idx, value in enumerate(series)]
    if today >= 0 and today + 1 < length:
        plan[today] = actual[today]
    return ActualPlanSeries(actual=actual, plan=plan)
