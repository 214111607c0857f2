from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..models.common import BreakevenStrategy, FormatSettings, Horizon, TabKey, ValueFormat
from ..models.dataset import INCOME_STATEMENT, Series, TimeSeriesDataset
from ..models.results import (
    ChartSeries,
    ChartSpec,
    DashboardSnapshot,
    DashboardTab,
    HeadlineFigures,
    KpiCard,
    RunwayEstimate,
    TargetDelta,
)
from .formatting import change_direction, describe_change, format_value
from .metrics import (
    cash_runway_months,
    cash_trough,
    find_breakeven,
    is_missing,
    percent_change,
    split_actual_plan,
    target_delta,
    trailing_average,
)

logger = logging.getLogger(__name__)

FINANCIAL = "financial"
GTM = "gtm"
DELIVERY = "delivery"


@dataclass
class CardDef:
    key: str
    label: str
    category: str
    name: str
    fmt: ValueFormat
    color: Optional[str] = None
    change: bool = False
    subtitle: Optional[str] = None
    absolute: bool = False
    absolute_change: bool = False


@dataclass
class SeriesDef:
    category: str
    name: str
    label: str
    color: Optional[str] = None
    absolute: bool = False


@dataclass
class ChartDef:
    title: str
    subtitle: str
    fmt: ValueFormat
    series: List[SeriesDef]
    reference_lines: List[float] = field(default_factory=list)


@dataclass
class TabDef:
    key: TabKey
    label: str
    section: str
    cards: List[CardDef | str]
    charts: List[ChartDef]


# Plain strings in a card list are computed cards, see DashboardBuilder._computed_card.
TABS: List[TabDef] = [
    TabDef(
        TabKey.OVERVIEW,
        "Overview",
        "Key Metrics Snapshot",
        [
            CardDef("mrr", "Monthly Recurring Revenue", FINANCIAL, "mrr", ValueFormat.CURRENCY, "blue", change=True),
            "arr",
            CardDef("gross_margin", "Gross Margin", FINANCIAL, "gross_margin", ValueFormat.PERCENT, "green", change=True),
            CardDef("logos_cumulative", "Cumulative Logos", INCOME_STATEMENT, "logos_cumulative", ValueFormat.NUMBER, "amber", change=True),
            CardDef("units_delivered", "Units Delivered/mo", DELIVERY, "units_delivered_per_month", ValueFormat.NUMBER, "purple", change=True),
            CardDef("utilization_rate", "Utilization Rate", DELIVERY, "utilization_rate", ValueFormat.PERCENT, change=True),
            CardDef("burn_rate", "Monthly Burn Rate", FINANCIAL, "burn_rate", ValueFormat.CURRENCY, "red", change=True, absolute_change=True),
            "cash_position",
        ],
        [
            ChartDef(
                "MRR Trajectory",
                "Monthly Recurring Revenue by product",
                ValueFormat.CURRENCY,
                [SeriesDef(FINANCIAL, "mrr_vision", "Vision", "blue"), SeriesDef(FINANCIAL, "mrr_main", "MAIN", "green")],
            ),
            ChartDef(
                "Net Cash Flow",
                "Monthly operating cash flow trend",
                ValueFormat.CURRENCY,
                [SeriesDef(INCOME_STATEMENT, "net_operating_cash_flow", "Net Cash Flow", "blue")],
                [0.0],
            ),
        ],
    ),
    TabDef(
        TabKey.FINANCIAL,
        "Financial",
        "Financial KPIs",
        [
            CardDef("mrr", "MRR", FINANCIAL, "mrr", ValueFormat.CURRENCY, "blue", change=True),
            CardDef("mrr_vision", "MRR - Vision", FINANCIAL, "mrr_vision", ValueFormat.CURRENCY, "cyan", change=True),
            CardDef("mrr_main", "MRR - MAIN", FINANCIAL, "mrr_main", ValueFormat.CURRENCY, "green", change=True),
            CardDef("gross_margin", "Gross Margin", FINANCIAL, "gross_margin", ValueFormat.PERCENT, "green", change=True),
            CardDef("gross_margin_vision", "GM - Vision", FINANCIAL, "gross_margin_vision", ValueFormat.PERCENT, "cyan"),
            CardDef("gross_margin_main", "GM - MAIN", FINANCIAL, "gross_margin_main", ValueFormat.PERCENT, "purple"),
            CardDef("revenue_per_employee", "Revenue / Employee", FINANCIAL, "revenue_per_employee", ValueFormat.CURRENCY, "amber", change=True),
            "breakeven",
        ],
        [
            ChartDef(
                "MRR Growth",
                "Total and by product line",
                ValueFormat.CURRENCY,
                [
                    SeriesDef(FINANCIAL, "mrr", "Total MRR", "blue"),
                    SeriesDef(FINANCIAL, "mrr_vision", "Vision", "cyan"),
                    SeriesDef(FINANCIAL, "mrr_main", "MAIN", "green"),
                ],
            ),
            ChartDef(
                "Gross Margin Trajectory",
                "Overall and by product",
                ValueFormat.PERCENT,
                [
                    SeriesDef(FINANCIAL, "gross_margin", "Overall", "green"),
                    SeriesDef(FINANCIAL, "gross_margin_vision", "Vision", "cyan"),
                    SeriesDef(FINANCIAL, "gross_margin_main", "MAIN", "purple"),
                ],
                [0.0],
            ),
            ChartDef(
                "Revenue per Employee",
                "Monthly revenue efficiency metric",
                ValueFormat.CURRENCY,
                [SeriesDef(FINANCIAL, "revenue_per_employee", "Overall", "amber")],
            ),
            ChartDef(
                "Burn Rate",
                "Monthly cash burn by segment",
                ValueFormat.CURRENCY,
                [
                    SeriesDef(FINANCIAL, "burn_rate", "Total", "red"),
                    SeriesDef(FINANCIAL, "burn_rate_vision", "Vision", "orange"),
                    SeriesDef(FINANCIAL, "burn_rate_main", "MAIN", "pink"),
                ],
            ),
        ],
    ),
    TabDef(
        TabKey.GTM,
        "Go-to-Market",
        "Go-to-Market KPIs",
        [
            CardDef("new_logos", "New Logos / Month", GTM, "new_logos_per_month", ValueFormat.NUMBER, "amber", change=True),
            CardDef("logos_cumulative", "Cumulative Logos", INCOME_STATEMENT, "logos_cumulative", ValueFormat.NUMBER, "blue"),
            CardDef(
                "sales_productivity",
                "Sales Productivity",
                GTM,
                "sales_productivity",
                ValueFormat.NUMBER,
                "green",
                subtitle="Logos per ramped AE per month",
            ),
            CardDef("vision_customers", "Vision Customers", INCOME_STATEMENT, "vision_customers_cumulative", ValueFormat.NUMBER, "cyan"),
            CardDef("main_customers", "MAIN Customers", INCOME_STATEMENT, "main_customers_cumulative", ValueFormat.NUMBER, "purple"),
        ],
        [
            ChartDef(
                "Customer Acquisition",
                "Cumulative logos over time",
                ValueFormat.NUMBER,
                [SeriesDef(INCOME_STATEMENT, "logos_cumulative", "Cumulative Logos", "amber")],
            ),
            ChartDef(
                "Customer Base by Product",
                "Vision vs MAIN cumulative customers",
                ValueFormat.NUMBER,
                [
                    SeriesDef(INCOME_STATEMENT, "vision_customers_cumulative", "Vision Customers", "cyan"),
                    SeriesDef(INCOME_STATEMENT, "main_customers_cumulative", "MAIN Customers", "purple"),
                ],
            ),
            ChartDef(
                "Installed Base (Units)",
                "Cumulative units/subscriptions deployed",
                ValueFormat.NUMBER,
                [
                    SeriesDef(INCOME_STATEMENT, "vision_units_cumulative", "Vision Units", "blue"),
                    SeriesDef(INCOME_STATEMENT, "main_units_cumulative", "MAIN Subscriptions", "green"),
                ],
            ),
        ],
    ),
    TabDef(
        TabKey.DELIVERY,
        "Delivery & Ops",
        "Delivery & Operations KPIs",
        [
            CardDef("units_delivered", "Units Delivered / Month", DELIVERY, "units_delivered_per_month", ValueFormat.NUMBER, "blue", change=True),
            CardDef("vision_units", "Vision Delivered", DELIVERY, "vision_units", ValueFormat.NUMBER, "cyan"),
            CardDef("main_units", "MAIN Delivered", DELIVERY, "main_units", ValueFormat.NUMBER, "green"),
            CardDef(
                "order_to_deploy",
                "Order-to-Deploy (wks)",
                DELIVERY,
                "order_to_deployment_time",
                ValueFormat.NUMBER,
                "amber",
                subtitle="Weighted avg weeks",
            ),
            CardDef("utilization_rate", "Utilization Rate", DELIVERY, "utilization_rate", ValueFormat.PERCENT, "purple", change=True),
            CardDef("utilization_vision", "Vision Utilization", DELIVERY, "utilization_vision", ValueFormat.PERCENT, "cyan"),
            CardDef("utilization_main", "MAIN Utilization", DELIVERY, "utilization_main", ValueFormat.PERCENT, "green"),
        ],
        [
            ChartDef(
                "Monthly Delivery Volume",
                "Units delivered per month by product",
                ValueFormat.NUMBER,
                [SeriesDef(DELIVERY, "vision_units", "Vision", "cyan"), SeriesDef(DELIVERY, "main_units", "MAIN", "green")],
            ),
            ChartDef(
                "Team Utilization",
                "Capacity usage across teams",
                ValueFormat.PERCENT,
                [
                    SeriesDef(DELIVERY, "utilization_rate", "Overall", "purple"),
                    SeriesDef(DELIVERY, "utilization_vision", "Vision", "cyan"),
                    SeriesDef(DELIVERY, "utilization_main", "MAIN", "green"),
                ],
                [0.9],
            ),
        ],
    ),
    TabDef(
        TabKey.CASHFLOW,
        "Cash Flow",
        "Cash Flow & Runway",
        [
            "cash_position",
            CardDef("burn_rate", "Monthly Burn", FINANCIAL, "burn_rate", ValueFormat.CURRENCY, "red", change=True, absolute_change=True),
            CardDef("collections", "Total Collections", INCOME_STATEMENT, "total_collections", ValueFormat.CURRENCY, "blue", change=True),
            CardDef("cogs", "COGS", INCOME_STATEMENT, "cogs", ValueFormat.CURRENCY, "orange", absolute=True),
            CardDef("opex", "OPEX", INCOME_STATEMENT, "operating_costs", ValueFormat.CURRENCY, "pink", absolute=True),
            CardDef("net_cash_flow", "Net Cash Flow", INCOME_STATEMENT, "net_operating_cash_flow", ValueFormat.CURRENCY, "green", change=True),
            "cash_trough",
            "breakeven",
        ],
        [
            ChartDef(
                "Cash Position Over Time",
                "Cumulative cash balance",
                ValueFormat.CURRENCY,
                [SeriesDef(INCOME_STATEMENT, "cash_ending", "Cash Balance", "green")],
                [0.0],
            ),
            ChartDef(
                "Revenue vs Costs",
                "Collections, COGS, and OPEX breakdown",
                ValueFormat.CURRENCY,
                [
                    SeriesDef(INCOME_STATEMENT, "total_collections", "Collections", "blue"),
                    SeriesDef(INCOME_STATEMENT, "cogs", "COGS", "orange", absolute=True),
                    SeriesDef(INCOME_STATEMENT, "operating_costs", "OPEX", "pink", absolute=True),
                ],
            ),
            ChartDef(
                "Gross Cash Margin",
                "Revenue minus cost of goods sold",
                ValueFormat.CURRENCY,
                [SeriesDef(INCOME_STATEMENT, "gross_cash_margin", "Gross Margin ($)", "green")],
                [0.0],
            ),
        ],
    ),
]

BREAKEVEN_SOURCES = {
    BreakevenStrategy.FIRST_POSITIVE: (INCOME_STATEMENT, "net_operating_cash_flow"),
    BreakevenStrategy.CROSSING: (INCOME_STATEMENT, "cash_ending"),
}

BREAKEVEN_SUBTITLES = {
    BreakevenStrategy.FIRST_POSITIVE: "First month with positive net cash flow",
    BreakevenStrategy.CROSSING: "First month cash balance turns non-negative",
}


def _absolute(values: Sequence) -> Series:
    return [None if is_missing(v) else abs(v) for v in values]


def _value_at(values: Sequence, index: int) -> Optional[float]:
    if index < 0 or index >= len(values):
        return None
    value = values[index]
    return None if is_missing(value) else value


class DashboardBuilder:
    """Turns a KPI dataset into the per-tab view model the dashboard renders.

    Nothing is cached between calls; a reloaded dataset simply produces a new
    snapshot.
    """

    def __init__(
        self,
        settings: FormatSettings | None = None,
        breakeven_strategy: BreakevenStrategy = BreakevenStrategy.FIRST_POSITIVE,
    ) -> None:
        self.settings = settings or FormatSettings()
        self.breakeven_strategy = BreakevenStrategy(breakeven_strategy)

    def build(self, dataset: TimeSeriesDataset) -> DashboardSnapshot:
        today = dataset.today_index
        headline = self._compute_headline(dataset, today)
        tabs = [self._build_tab(dataset, tab_def, today, headline) for tab_def in TABS]
        targets = self._compute_targets(dataset, today)
        logger.debug("Built dashboard snapshot: %d tabs, %d targets, today index %d", len(tabs), len(targets), today)
        return DashboardSnapshot(
            period_range={
                "start": dataset.dates[0] if dataset.dates else None,
                "end": dataset.dates[-1] if dataset.dates else None,
            },
            months=len(dataset.dates),
            headline=headline,
            tabs=tabs,
            targets=targets,
        )

    def build_tab(self, dataset: TimeSeriesDataset, key: TabKey) -> DashboardTab:
        key = TabKey(key)
        today = dataset.today_index
        headline = self._compute_headline(dataset, today)
        tab_def = next(tab_def for tab_def in TABS if tab_def.key == key)
        return self._build_tab(dataset, tab_def, today, headline)

    def _series(self, dataset: TimeSeriesDataset, category: str, name: str, absolute: bool = False) -> Optional[Series]:
        if not dataset.has_series(category, name):
            return None
        values = dataset.series(category, name)
        return _absolute(values) if absolute else list(values)

    def _realized(self, values: Optional[Series], today: int) -> Series:
        if values is None or today < 0:
            return []
        return values[: today + 1]

    def _compute_headline(self, dataset: TimeSeriesDataset, today: int) -> HeadlineFigures:
        mrr = _value_at(self._series(dataset, FINANCIAL, "mrr") or [], today)
        cash_series = self._series(dataset, INCOME_STATEMENT, "cash_ending")
        cash = _value_at(cash_series or [], today)
        burn = trailing_average(
            self._realized(self._series(dataset, FINANCIAL, "burn_rate"), today),
            self.settings.burn_window,
        )
        runway = cash_runway_months(cash, burn)

        breakeven_date = None
        source = self._series(dataset, *BREAKEVEN_SOURCES[self.breakeven_strategy])
        if source is not None:
            breakeven_date = find_breakeven(source, dataset.dates, self.breakeven_strategy)

        trough = None
        if cash_series is not None and any(not is_missing(v) for v in cash_series):
            trough = cash_trough(cash_series)

        return HeadlineFigures(
            as_of=dataset.dates[today] if today >= 0 else None,
            today_index=today,
            mrr=mrr,
            arr=mrr * 12 if mrr is not None else None,
            cash_position=cash,
            trailing_burn=burn,
            runway=runway,
            breakeven_strategy=self.breakeven_strategy,
            breakeven_date=breakeven_date,
            cash_trough=trough,
        )

    def _build_tab(
        self,
        dataset: TimeSeriesDataset,
        tab_def: TabDef,
        today: int,
        headline: HeadlineFigures,
    ) -> DashboardTab:
        cards = []
        for card_def in tab_def.cards:
            if isinstance(card_def, str):
                cards.append(self._computed_card(card_def, headline))
            else:
                cards.append(self._series_card(dataset, card_def, today))
        charts = [self._build_chart(dataset, chart_def, today) for chart_def in tab_def.charts]
        section = tab_def.section
        if tab_def.key == TabKey.OVERVIEW and headline.as_of:
            section = f"{section} (Latest: {headline.as_of})"
        return DashboardTab(key=tab_def.key, label=tab_def.label, section=section, cards=cards, charts=charts)

    def _series_card(self, dataset: TimeSeriesDataset, card_def: CardDef, today: int) -> KpiCard:
        values = self._series(dataset, card_def.category, card_def.name, card_def.absolute)
        value = _value_at(values or [], today)
        change = None
        if card_def.change and values is not None:
            compared = _absolute(values) if card_def.absolute_change else values
            change = percent_change(self._realized(compared, today))
        return self._card(
            card_def.key,
            card_def.label,
            value,
            card_def.fmt,
            change=change,
            subtitle=card_def.subtitle,
            color=card_def.color,
        )

    def _computed_card(self, key: str, headline: HeadlineFigures) -> KpiCard:
        if key == "arr":
            return self._card("arr", "Annual Run-Rate (ARR)", headline.arr, ValueFormat.CURRENCY, subtitle="MRR × 12", color="cyan")
        if key == "cash_position":
            positive = headline.runway.is_infinite
            return self._card(
                "cash_position",
                "Cash Position",
                headline.cash_position,
                ValueFormat.CURRENCY,
                subtitle=self._runway_subtitle(headline.runway),
                color="green" if positive else "red",
            )
        if key == "cash_trough":
            return self._card(
                "cash_trough",
                "Cash Need (Max)",
                headline.cash_trough,
                ValueFormat.CURRENCY,
                subtitle="Lowest cash point in forecast",
                color="red",
            )
        if key == "breakeven":
            return self._card(
                "breakeven",
                "Breakeven Month",
                headline.breakeven_date or "Not yet",
                ValueFormat.TEXT,
                subtitle=BREAKEVEN_SUBTITLES[headline.breakeven_strategy],
                color="green",
            )
        raise KeyError(f"Unknown computed card '{key}'")

    def _runway_subtitle(self, runway: RunwayEstimate) -> str:
        if runway.is_infinite:
            return "Cash positive"
        if not runway.is_computable:
            return "Runway not computable"
        return f"~{runway.months:.0f} months runway"

    def _card(
        self,
        key: str,
        label: str,
        value: Optional[float | str],
        fmt: ValueFormat,
        change: Optional[float] = None,
        subtitle: Optional[str] = None,
        color: Optional[str] = None,
    ) -> KpiCard:
        return KpiCard(
            key=key,
            label=label,
            value=value,
            display=format_value(value, fmt, self.settings),
            format=fmt,
            change=change,
            direction=change_direction(change, self.settings.change_threshold),
            change_text=describe_change(change, self.settings),
            subtitle=subtitle,
            color=self.settings.color(color),
        )

    def _build_chart(self, dataset: TimeSeriesDataset, chart_def: ChartDef, today: int) -> ChartSpec:
        series: List[ChartSeries] = []
        for series_def in chart_def.series:
            values = self._series(dataset, series_def.category, series_def.name, series_def.absolute)
            if values is None:
                continue
            split = split_actual_plan(values, today)
            series.append(
                ChartSeries(
                    key=series_def.name,
                    name=series_def.label,
                    color=self.settings.color(series_def.color),
                    actual=split.actual,
                    plan=split.plan,
                )
            )
        return ChartSpec(
            title=chart_def.title,
            subtitle=chart_def.subtitle,
            value_format=chart_def.fmt,
            dates=list(dataset.dates),
            series=series,
            reference_lines=list(chart_def.reference_lines),
        )

    def _lookup_current(self, dataset: TimeSeriesDataset, metric: str, today: int) -> Optional[float]:
        snapshot = dataset.milestones.get(Horizon.CURRENT, {})
        current = snapshot.get(metric)
        if not is_missing(current):
            return current
        for category in dataset.categories():
            if dataset.has_series(category, metric):
                return _value_at(dataset.series(category, metric), today)
        return None

    def _compute_targets(self, dataset: TimeSeriesDataset, today: int) -> List[TargetDelta]:
        targets: List[TargetDelta] = []
        horizons: List[Tuple[Horizon, dict]] = [
            (horizon, snapshot)
            for horizon, snapshot in sorted(dataset.milestones.items(), key=lambda item: item[0].months_ahead)
            if horizon != Horizon.CURRENT
        ]
        for horizon, snapshot in horizons:
            period = dataset.horizon_label(horizon)
            for metric, target in snapshot.items():
                current = self._lookup_current(dataset, metric, today)
                delta = target_delta(current, target)
                targets.append(
                    TargetDelta(
                        horizon=horizon,
                        period=period,
                        metric=metric,
                        current=current,
                        target=target,
                        delta=delta,
                        direction=change_direction(delta, self.settings.change_threshold),
                        display=format_value(delta, ValueFormat.PERCENT, self.settings),
                    )
                )
        return targets
