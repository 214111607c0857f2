from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError

from .errors import MalformedSeriesError
from .models.dataset import TimeSeriesDataset

logger = logging.getLogger(__name__)


def parse_dataset(document: Dict[str, Any]) -> TimeSeriesDataset:
    try:
        dataset = TimeSeriesDataset.model_validate(document)
    except ValidationError as exc:
        raise MalformedSeriesError(f"Invalid KPI dataset: {exc}") from exc
    if isinstance(dataset.today, int) and dataset.today != dataset.today_index:
        logger.warning("Today index %s outside the series, clamped to %s", dataset.today, dataset.today_index)
    return dataset


def load_dataset(path: str | Path) -> TimeSeriesDataset:
    path = Path(path)
    with path.open(encoding="utf-8") as handle:
        try:
            document = json.load(handle)
        except json.JSONDecodeError as exc:
            raise MalformedSeriesError(f"{path.name} is not valid JSON: {exc}") from exc
    dataset = parse_dataset(document)
    logger.info(
        "Loaded %s: %d periods, today index %d",
        path.name,
        len(dataset.dates),
        dataset.today_index,
    )
    return dataset
