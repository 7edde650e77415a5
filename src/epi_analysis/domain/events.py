"""Domain events for the epidemiological analysis service."""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from shared.domain.commands import Event


@dataclass
class AggregationsRefreshed(Event):
    """Event raised after daily case counts were recomputed and committed."""
    mode: str                   # "day", "range" or "rebuild"
    start: Optional[date]
    end: Optional[date]
    buckets: int
    refreshed_at: datetime


@dataclass
class AnomalyDetected(Event):
    """Event raised when an observed daily count falls outside the control limits."""
    region_code: str
    flag: str
    target_date: date
    observed_value: int
    mean: float
    std_dev: float
    lcl: float
    ucl: float
    anomaly_type: str
    severity: str
    message: str
