from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .common import BreakevenStrategy, ChangeDirection, Horizon, RunwayStatus, TabKey, ValueFormat


class RunwayEstimate(BaseModel):
    status: RunwayStatus
    months: Optional[float] = None

    @property
    def is_infinite(self) -> bool:
        return self.status == RunwayStatus.INFINITE

    @property
    def is_computable(self) -> bool:
        return self.status != RunwayStatus.NOT_COMPUTABLE


class ActualPlanSeries(BaseModel):
    actual: List[Optional[float]]
    plan: List[Optional[float]]


class KpiCard(BaseModel):
    key: str
    label: str
    value: Optional[float | str] = None
    display: str
    format: ValueFormat
    change: Optional[float] = None
    direction: ChangeDirection = ChangeDirection.NEUTRAL
    change_text: Optional[str] = None
    subtitle: Optional[str] = None
    color: Optional[str] = None


class ChartSeries(BaseModel):
    key: str
    name: str
    color: Optional[str] = None
    actual: List[Optional[float]]
    plan: List[Optional[float]]


class ChartSpec(BaseModel):
    title: str
    subtitle: Optional[str] = None
    value_format: ValueFormat = ValueFormat.CURRENCY
    dates: List[str]
    series: List[ChartSeries]
    reference_lines: List[float] = Field(default_factory=list)


class TargetDelta(BaseModel):
    horizon: Horizon
    period: Optional[str] = None
    metric: str
    current: Optional[float] = None
    target: Optional[float] = None
    delta: Optional[float] = None
    direction: ChangeDirection = ChangeDirection.NEUTRAL
    display: str


class HeadlineFigures(BaseModel):
    as_of: Optional[str] = None
    today_index: int
    mrr: Optional[float] = None
    arr: Optional[float] = None
    cash_position: Optional[float] = None
    trailing_burn: Optional[float] = None
    runway: RunwayEstimate
    breakeven_strategy: BreakevenStrategy
    breakeven_date: Optional[str] = None
    cash_trough: Optional[float] = None


class DashboardTab(BaseModel):
    key: TabKey
    label: str
    section: str
    cards: List[KpiCard]
    charts: List[ChartSpec]


class DashboardSnapshot(BaseModel):
    period_range: Dict[str, Optional[str]]
    months: int
    headline: HeadlineFigures
    tabs: List[DashboardTab]
    targets: List[TargetDelta]

    def tab(self, key: TabKey) -> DashboardTab:
        for tab in self.tabs:
            if tab.key == key:
                return tab
        raise KeyError(key)
