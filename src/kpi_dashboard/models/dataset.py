from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, model_validator

from ..errors import MalformedSeriesError
from .common import Horizon

Number = Union[StrictInt, StrictFloat]
Series = List[Optional[Number]]

INCOME_STATEMENT = "income_statement"

_PARSE_DEFAULT = datetime(2000, 1, 1)


def month_key(label: str) -> Optional[Tuple[int, int]]:
    """(year, month) for a period label such as ``2025-06`` or ``Jun 2025``."""
    try:
        parsed = date_parser.parse(label, default=_PARSE_DEFAULT)
    except (ValueError, OverflowError):
        return None
    return parsed.year, parsed.month


class TimeSeriesDataset(BaseModel):
    """Monthly KPI document as published for the dashboard.

    Read-only for the engine: every derived value is recomputed from these
    series on request.
    """

    model_config = ConfigDict(frozen=True)

    dates: List[str]
    today: Optional[Union[int, str]] = Field(
        default=None,
        description="Index or period label of the last realized month; defaults to the last period",
    )
    kpis: Dict[str, Dict[str, Series]] = Field(default_factory=dict)
    income_statement: Dict[str, Series] = Field(default_factory=dict)
    milestones: Dict[Horizon, Dict[str, Optional[Number]]] = Field(default_factory=dict)

    @property
    def last_index(self) -> int:
        return len(self.dates) - 1

    @property
    def today_index(self) -> int:
        if self.today is None:
            return self.last_index
        if isinstance(self.today, int):
            return max(-1, min(self.today, self.last_index))
        return self.index_of(self.today)

    def calendar_months(self) -> Optional[List[Tuple[int, int]]]:
        """(year, month) per date, or ``None`` unless every label is a distinct calendar month."""
        keys = [month_key(label) for label in self.dates]
        if None in keys or len(set(keys)) != len(keys):
            return None
        return keys

    def index_of(self, label: str) -> int:
        if label in self.dates:
            return self.dates.index(label)
        calendar = self.calendar_months()
        wanted = month_key(label)
        if calendar is not None and wanted in calendar:
            return calendar.index(wanted)
        raise MalformedSeriesError(f"Period '{label}' does not match any date in the dataset")

    def horizon_label(self, horizon: Horizon) -> Optional[str]:
        today = self.today_index
        if today < 0:
            return None
        calendar = self.calendar_months()
        if calendar is not None:
            year, month = calendar[today]
            target = datetime(year, month, 1) + relativedelta(months=horizon.months_ahead)
            wanted = (target.year, target.month)
            return self.dates[calendar.index(wanted)] if wanted in calendar[today:] else None
        idx = today + horizon.months_ahead
        return self.dates[idx] if idx <= self.last_index else None

    def categories(self) -> List[str]:
        return list(self.kpis.keys()) + [INCOME_STATEMENT]

    def series(self, category: str, name: str) -> Series:
        if category == INCOME_STATEMENT:
            group = self.income_statement
        else:
            group = self.kpis.get(category)
            if group is None:
                raise KeyError(f"Unknown metric category '{category}'")
        if name not in group:
            raise KeyError(f"Unknown metric '{category}.{name}'")
        return group[name]

    def has_series(self, category: str, name: str) -> bool:
        try:
            self.series(category, name)
        except KeyError:
            return False
        return True

    def iter_series(self):
        for category, group in self.kpis.items():
            for name, values in group.items():
                yield category, name, values
        for name, values in self.income_statement.items():
            yield INCOME_STATEMENT, name, values

    @model_validator(mode="after")
    def check_dates_aligned(self) -> "TimeSeriesDataset":
        self.check_alignment()
        return self

    def check_alignment(self) -> None:
        if len(set(self.dates)) != len(self.dates):
            raise MalformedSeriesError("Dataset dates contain duplicates")
        expected = len(self.dates)
        for category, name, values in self.iter_series():
            if len(values) != expected:
                raise MalformedSeriesError(
                    f"Series '{category}.{name}' has {len(values)} values, expected {expected}"
                )
        if isinstance(self.today, str):
            self.index_of(self.today)
