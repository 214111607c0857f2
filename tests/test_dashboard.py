from __future__ import annotations

import pytest

from kpi_dashboard.loader import parse_dataset
from kpi_dashboard.models.common import BreakevenStrategy, ChangeDirection, Horizon, RunwayStatus, TabKey
from kpi_dashboard.sample_data import build_sample_dataset
from kpi_dashboard.services.dashboard import DashboardBuilder


def _cards(tab):
    return {card.key: card for card in tab.cards}


def _chart(tab, title):
    return next(chart for chart in tab.charts if chart.title == title)


def test_sample_snapshot_headline():
    snapshot = DashboardBuilder().build(build_sample_dataset())
    headline = snapshot.headline

    assert snapshot.months == 24
    assert snapshot.period_range == {"start": "2025-01", "end": "2026-12"}
    assert [tab.key for tab in snapshot.tabs] == list(TabKey)
    assert headline.as_of == "2025-12"
    assert headline.mrr == pytest.approx(107000)
    assert headline.arr == pytest.approx(1_284_000)
    assert headline.cash_position == pytest.approx(732_630, abs=1)
    assert headline.trailing_burn == pytest.approx(-55_232.5, abs=0.1)
    assert headline.runway.status == RunwayStatus.INFINITE
    assert headline.breakeven_date == "2026-10"
    assert headline.cash_trough == pytest.approx(530_850, abs=1)


def test_overview_cards():
    snapshot = DashboardBuilder().build(build_sample_dataset())
    overview = snapshot.tab(TabKey.OVERVIEW)
    cards = _cards(overview)

    assert overview.section == "Key Metrics Snapshot (Latest: 2025-12)"
    assert cards["mrr"].display == "$107K"
    assert cards["mrr"].change == pytest.approx(0.07)
    assert cards["mrr"].direction == ChangeDirection.POSITIVE
    assert cards["mrr"].change_text == "↑ 7.0% vs prev month"
    assert cards["mrr"].color == "#4f8ff7"
    assert cards["arr"].display == "$1.3M"
    assert cards["arr"].subtitle == "MRR × 12"
    assert cards["arr"].change is None
    assert cards["cash_position"].subtitle == "Cash positive"
    assert cards["cash_position"].color == "#34d399"


def test_burn_change_uses_absolute_values():
    cards = _cards(DashboardBuilder().build(build_sample_dataset()).tab(TabKey.OVERVIEW))
    burn = cards["burn_rate"]

    assert burn.value == pytest.approx(-46_045, abs=0.1)
    assert burn.display == "-$46K"
    assert burn.change == pytest.approx((46_045 - 50_000) / 50_000, abs=1e-4)
    assert burn.direction == ChangeDirection.NEGATIVE


def test_gap_in_series_does_not_break_cards():
    cards = _cards(DashboardBuilder().build(build_sample_dataset()).tab(TabKey.FINANCIAL))

    assert cards["revenue_per_employee"].value == pytest.approx(107000 / 15, abs=0.01)
    assert cards["revenue_per_employee"].change == pytest.approx(0.07, abs=1e-4)


def test_breakeven_strategies_are_selectable():
    dataset = build_sample_dataset()
    first_positive = _cards(DashboardBuilder().build(dataset).tab(TabKey.FINANCIAL))["breakeven"]
    crossing = _cards(
        DashboardBuilder(breakeven_strategy=BreakevenStrategy.CROSSING).build(dataset).tab(TabKey.FINANCIAL)
    )["breakeven"]

    assert first_positive.display == "2026-10"
    assert first_positive.subtitle == "First month with positive net cash flow"
    assert crossing.display == "Not yet"
    assert crossing.subtitle == "First month cash balance turns non-negative"


def test_cashflow_tab_trough_and_costs():
    tab = DashboardBuilder().build(build_sample_dataset()).tab(TabKey.CASHFLOW)
    cards = _cards(tab)

    assert cards["cash_trough"].display == "$531K"
    assert cards["cash_trough"].subtitle == "Lowest cash point in forecast"
    assert cards["cogs"].value > 0
    assert cards["opex"].value == pytest.approx(106_500)

    costs = _chart(tab, "Revenue vs Costs")
    cogs = next(series for series in costs.series if series.key == "cogs")
    assert cogs.actual[0] == pytest.approx(18_000)


def test_chart_series_join_at_today():
    tab = DashboardBuilder().build(build_sample_dataset()).tab(TabKey.OVERVIEW)
    mrr = _chart(tab, "MRR Trajectory")
    vision = mrr.series[0]

    assert len(mrr.dates) == 24
    assert vision.name == "Vision"
    assert vision.actual[11] == vision.plan[11] == 64000
    assert vision.actual[12] is None
    assert vision.plan[10] is None
    assert vision.plan[23] == 20000 + 4000 * 23
    assert _chart(tab, "Net Cash Flow").reference_lines == [0.0]


def test_milestone_targets():
    snapshot = DashboardBuilder().build(build_sample_dataset())
    targets = {(t.horizon, t.metric): t for t in snapshot.targets}

    assert len(snapshot.targets) == 9
    assert all(t.horizon != Horizon.CURRENT for t in snapshot.targets)
    mrr_3m = targets[(Horizon.PLUS_3M, "mrr")]
    assert mrr_3m.period == "2026-03"
    assert mrr_3m.current == pytest.approx(107000)
    assert mrr_3m.delta == pytest.approx(33000 / 140000)
    assert mrr_3m.direction == ChangeDirection.POSITIVE
    assert mrr_3m.display == "23.6%"
    assert targets[(Horizon.PLUS_3M, "gross_margin")].delta == pytest.approx(0.12)
    missing = targets[(Horizon.PLUS_6M, "logos_cumulative")]
    assert missing.delta is None
    assert missing.display == "—"


def test_target_current_falls_back_to_series():
    dataset = parse_dataset(
        {
            "dates": ["2025-01", "2025-02", "2025-03"],
            "today": 1,
            "kpis": {"financial": {"mrr": [80.0, 90.0, 100.0]}},
            "milestones": {"plus_3m": {"mrr": 120.0, "arr": 0.0}},
        }
    )
    targets = {t.metric: t for t in DashboardBuilder().build(dataset).targets}

    assert targets["mrr"].current == 90.0
    assert targets["mrr"].delta == pytest.approx(0.25)
    assert targets["mrr"].period is None
    assert targets["arr"].delta is None


def test_sparse_dataset_renders_placeholders():
    dataset = parse_dataset(
        {
            "dates": ["2025-01", "2025-02", "2025-03", "2025-04"],
            "today": 1,
            "kpis": {"financial": {"mrr": [100.0, 110.0, 120.0, 130.0]}},
            "income_statement": {"cash_ending": [50.0, -10.0, 5.0, 20.0]},
        }
    )
    snapshot = DashboardBuilder().build(dataset)

    assert snapshot.headline.runway.status == RunwayStatus.NOT_COMPUTABLE
    assert snapshot.headline.cash_trough == -10.0
    assert snapshot.headline.breakeven_date is None
    overview = _cards(snapshot.tab(TabKey.OVERVIEW))
    assert overview["cash_position"].subtitle == "Runway not computable"
    assert overview["gross_margin"].display == "—"
    assert overview["gross_margin"].change is None
    delivery = _cards(snapshot.tab(TabKey.DELIVERY))
    assert all(card.display == "—" for card in delivery.values())
    assert snapshot.tab(TabKey.DELIVERY).charts[0].series == []

    crossing = DashboardBuilder(breakeven_strategy=BreakevenStrategy.CROSSING).build(dataset)
    assert crossing.headline.breakeven_date == "2025-03"


def test_finite_runway_subtitle():
    dataset = parse_dataset(
        {
            "dates": ["2025-01", "2025-02", "2025-03", "2025-04"],
            "today": 2,
            "kpis": {"financial": {"burn_rate": [-100.0, -200.0, -300.0, -100.0]}},
            "income_statement": {"cash_ending": [-100.0, -300.0, -600.0, -700.0]},
        }
    )
    snapshot = DashboardBuilder().build(dataset)

    assert snapshot.headline.trailing_burn == pytest.approx(-200)
    assert snapshot.headline.runway.months == pytest.approx(3)
    cards = _cards(snapshot.tab(TabKey.CASHFLOW))
    assert cards["cash_position"].subtitle == "~3 months runway"
    assert cards["cash_position"].color == "#f87171"


def test_today_before_series():
    dataset = parse_dataset(
        {
            "dates": ["2025-01", "2025-02"],
            "today": -1,
            "kpis": {"financial": {"mrr": [100.0, 110.0]}},
        }
    )
    snapshot = DashboardBuilder().build(dataset)

    assert snapshot.headline.as_of is None
    assert snapshot.headline.mrr is None
    overview = snapshot.tab(TabKey.OVERVIEW)
    assert overview.section == "Key Metrics Snapshot"
    assert _cards(overview)["mrr"].display == "—"
    assert _chart(overview, "MRR Trajectory").series == []
    growth = _chart(snapshot.tab(TabKey.FINANCIAL), "MRR Growth").series[0]
    assert growth.actual == [None, None]
    assert growth.plan == [100.0, 110.0]


def test_build_tab_matches_full_snapshot():
    dataset = build_sample_dataset()
    builder = DashboardBuilder()

    assert builder.build_tab(dataset, TabKey.GTM) == builder.build(dataset).tab(TabKey.GTM)
    assert builder.build(dataset) == builder.build(dataset)
