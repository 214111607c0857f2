from __future__ import annotations

from enum import Enum
from typing import Dict

from pydantic import BaseModel, Field, conint, confloat


class Horizon(str, Enum):
    CURRENT = "current"
    PLUS_3M = "plus_3m"
    PLUS_6M = "plus_6m"
    PLUS_12M = "plus_12m"

    @property
    def months_ahead(self) -> int:
        return {"current": 0, "plus_3m": 3, "plus_6m": 6, "plus_12m": 12}[self.value]


class ValueFormat(str, Enum):
    CURRENCY = "currency"
    PERCENT = "percent"
    NUMBER = "number"
    INTEGER = "integer"
    TEXT = "text"
    DECIMAL = "decimal"


class ChangeDirection(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"

    @property
    def arrow(self) -> str:
        return {"positive": "↑", "negative": "↓", "neutral": "→"}[self.value]


class BreakevenStrategy(str, Enum):
    FIRST_POSITIVE = "first_positive"
    CROSSING = "crossing"


class RunwayStatus(str, Enum):
    FINITE = "finite"
    INFINITE = "infinite"
    NOT_COMPUTABLE = "not_computable"


class TabKey(str, Enum):
    OVERVIEW = "overview"
    FINANCIAL = "financial"
    GTM = "gtm"
    DELIVERY = "delivery"
    CASHFLOW = "cashflow"


def _default_palette() -> Dict[str, str]:
    return {
        "blue": "#4f8ff7",
        "green": "#34d399",
        "red": "#f87171",
        "amber": "#fbbf24",
        "purple": "#a78bfa",
        "cyan": "#22d3ee",
        "pink": "#f472b6",
        "orange": "#fb923c",
    }


DEFAULT_DECIMALS: Dict[ValueFormat, int] = {
    ValueFormat.CURRENCY: 0,
    ValueFormat.PERCENT: 1,
    ValueFormat.NUMBER: 1,
    ValueFormat.DECIMAL: 2,
}


class FormatSettings(BaseModel):
    currency_symbol: str = "$"
    placeholder: str = Field("—", description="Rendered for values that could not be computed")
    palette: Dict[str, str] = Field(default_factory=_default_palette)
    change_threshold: confloat(ge=0) = Field(0.001, description="Changes within +/- threshold count as flat")
    burn_window: conint(ge=1) = Field(6, description="Months averaged for the trailing burn rate")
    change_suffix: str = "vs prev month"
    decimals: Dict[ValueFormat, conint(ge=0)] = Field(
        default_factory=lambda: dict(DEFAULT_DECIMALS),
        description="Fraction digits per format; formats left out keep their default",
    )
    millions_decimals: conint(ge=0) = Field(1, description="Fraction digits for currency shown in millions")

    def color(self, name: str | None) -> str | None:
        if name is None:
            return None
        return self.palette.get(name, name)

    def decimals_for(self, fmt: ValueFormat) -> int:
        return self.decimals.get(fmt, DEFAULT_DECIMALS.get(fmt, 2))
