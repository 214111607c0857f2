from __future__ import annotations

from datetime import date
from itertools import accumulate
from typing import Any, Dict, List

from dateutil.relativedelta import relativedelta

from .loader import parse_dataset
from .models.dataset import TimeSeriesDataset

START = date(2025, 1, 1)
MONTHS = 24
TODAY_INDEX = 11
OPENING_CASH = 1_500_000.0


def _labels(start: date, months: int) -> List[str]:
    return [(start + relativedelta(months=i)).strftime("%Y-%m") for i in range(months)]


def _round(values) -> List[float]:
    return [round(v, 2) for v in values]


def build_sample_document() -> Dict[str, Any]:
    months = range(MONTHS)
    mrr_vision = [20000.0 + 4000 * i for i in months]
    mrr_main = [10000.0 + 3000 * i for i in months]
    mrr = [v + m for v, m in zip(mrr_vision, mrr_main)]

    cogs_pct = [max(0.25, 0.6 - 0.015 * i) for i in months]
    collections = list(mrr)
    cogs = _round(-c * pct for c, pct in zip(collections, cogs_pct))
    gross_cash_margin = _round(c + g for c, g in zip(collections, cogs))
    operating_costs = [-(90000.0 + 1500 * i) for i in months]
    net_cash_flow = _round(g + o for g, o in zip(gross_cash_margin, operating_costs))
    cash_ending = _round(OPENING_CASH + total for total in accumulate(net_cash_flow))
    burn_rate = [min(0.0, v) for v in net_cash_flow]

    new_logos = [2.0 + i // 4 for i in months]
    logos_cumulative = list(accumulate(new_logos))
    vision_customers = [float(round(total * 0.6)) for total in logos_cumulative]
    main_customers = [total - v for total, v in zip(logos_cumulative, vision_customers)]

    vision_units = [3.0 + i // 3 for i in months]
    main_units = [2.0 + i // 2 for i in months]
    utilization_vision = _round(min(0.95, 0.55 + 0.015 * i) for i in months)
    utilization_main = _round(min(0.95, 0.5 + 0.018 * i) for i in months)

    headcount = [12 + i // 3 for i in months]

    return {
        "dates": _labels(START, MONTHS),
        "today": TODAY_INDEX,
        "kpis": {
            "financial": {
                "mrr": mrr,
                "mrr_vision": mrr_vision,
                "mrr_main": mrr_main,
                "gross_margin": _round(g / c for g, c in zip(gross_cash_margin, collections)),
                "gross_margin_vision": _round(0.45 + 0.01 * i for i in months),
                "gross_margin_main": _round(0.35 + 0.012 * i for i in months),
                "burn_rate": burn_rate,
                "burn_rate_vision": _round(b * 0.6 for b in burn_rate),
                "burn_rate_main": _round(b * 0.4 for b in burn_rate),
                # no payroll close for the first month
                "revenue_per_employee": [None] + _round(m / h for m, h in zip(mrr[1:], headcount[1:])),
            },
            "gtm": {
                "new_logos_per_month": new_logos,
                "sales_productivity": _round(n / (1 + i // 6) for i, n in enumerate(new_logos)),
            },
            "delivery": {
                "units_delivered_per_month": [v + m for v, m in zip(vision_units, main_units)],
                "vision_units": vision_units,
                "main_units": main_units,
                "utilization_rate": _round((v + m) / 2 for v, m in zip(utilization_vision, utilization_main)),
                "utilization_vision": utilization_vision,
                "utilization_main": utilization_main,
                "order_to_deployment_time": [max(4.0, 10 - 0.25 * i) for i in months],
            },
        },
        "income_statement": {
            "logos_cumulative": logos_cumulative,
            "total_collections": collections,
            "cogs": cogs,
            "gross_cash_margin": gross_cash_margin,
            "operating_costs": operating_costs,
            "net_operating_cash_flow": net_cash_flow,
            "cash_ending": cash_ending,
            "vision_units_cumulative": list(accumulate(vision_units)),
            "main_units_cumulative": list(accumulate(main_units)),
            "vision_customers_cumulative": vision_customers,
            "main_customers_cumulative": main_customers,
        },
        "milestones": {
            "current": {"mrr": mrr[TODAY_INDEX], "gross_margin": 0.44, "logos_cumulative": logos_cumulative[TODAY_INDEX]},
            "plus_3m": {"mrr": 140000.0, "gross_margin": 0.5, "logos_cumulative": 50.0},
            "plus_6m": {"mrr": 160000.0, "gross_margin": 0.55, "logos_cumulative": None},
            "plus_12m": {"mrr": 200000.0, "gross_margin": 0.6, "logos_cumulative": 100.0},
        },
    }


def build_sample_dataset() -> TimeSeriesDataset:
    return parse_dataset(build_sample_document())
