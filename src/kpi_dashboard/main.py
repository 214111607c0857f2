from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .errors import MetricsError
from .loader import load_dataset, parse_dataset
from .models.common import BreakevenStrategy, FormatSettings, TabKey
from .models.dataset import TimeSeriesDataset
from .models.results import DashboardSnapshot, DashboardTab
from .sample_data import build_sample_dataset
from .services.dashboard import DashboardBuilder

logger = logging.getLogger(__name__)


class AppSettings(BaseModel):
    data_path: Optional[str] = None
    breakeven_strategy: BreakevenStrategy = BreakevenStrategy.FIRST_POSITIVE
    formatting: FormatSettings = FormatSettings()

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            data_path=os.environ.get("KPI_DASHBOARD_DATA") or None,
            breakeven_strategy=os.environ.get("KPI_DASHBOARD_BREAKEVEN", BreakevenStrategy.FIRST_POSITIVE.value),
        )


app = FastAPI(title="KPI Dashboard Engine", version="0.1.0")

settings = AppSettings.from_env()
DATASETS: Dict[str, TimeSeriesDataset] = {}
ACTIVE = "active"


def _load_configured() -> TimeSeriesDataset:
    if settings.data_path:
        return load_dataset(settings.data_path)
    logger.info("No KPI_DASHBOARD_DATA configured, serving the bundled sample dataset")
    return build_sample_dataset()


def _active_dataset() -> TimeSeriesDataset:
    if ACTIVE not in DATASETS:
        try:
            DATASETS[ACTIVE] = _load_configured()
        except MetricsError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
    return DATASETS[ACTIVE]


def _builder(strategy: BreakevenStrategy | None) -> DashboardBuilder:
    return DashboardBuilder(settings.formatting, strategy or settings.breakeven_strategy)


@app.get("/data.json")
def get_dataset() -> Dict[str, Any]:
    return _active_dataset().model_dump(mode="json")


@app.get("/dashboard", response_model=DashboardSnapshot)
def get_dashboard(strategy: BreakevenStrategy | None = None) -> DashboardSnapshot:
    return _builder(strategy).build(_active_dataset())


@app.get("/dashboard/{tab}", response_model=DashboardTab)
def get_dashboard_tab(tab: str, strategy: BreakevenStrategy | None = None) -> DashboardTab:
    try:
        key = TabKey(tab)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"Tab {tab} not found")
    return _builder(strategy).build_tab(_active_dataset(), key)


@app.post("/dashboard", response_model=DashboardSnapshot)
def build_dashboard(payload: Dict[str, Any], strategy: BreakevenStrategy | None = None) -> DashboardSnapshot:
    try:
        dataset = parse_dataset(payload)
    except MetricsError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return _builder(strategy).build(dataset)


@app.post("/reload")
def reload_dataset() -> Dict[str, Any]:
    DATASETS.pop(ACTIVE, None)
    dataset = _active_dataset()
    logger.info("Reloaded KPI dataset: %d periods", len(dataset.dates))
    return {"months": len(dataset.dates), "today_index": dataset.today_index}


@app.get("/health")
def healthcheck() -> Dict[str, str]:
    return {"status": "ok"}
