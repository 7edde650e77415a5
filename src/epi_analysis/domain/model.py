"""
Surveillance Analysis Domain Model
Lab panels in, flagged observation summaries, daily case series and
Shewhart control chart results out.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

UNKNOWN_REGION = "unknown"


@dataclass(frozen=True)
class LabMeasurement:
    """One decoded panel component."""
    code: str                      # e.g. LOINC "6690-2"
    value: Decimal
    unit: Optional[str] = None     # e.g. "10*3/uL"


@dataclass(frozen=True)
class LabPanel:
    """
    A blood count panel as handed over by the ingestion service.

    Wire-format decoding (FHIR JSON, HL7) happens before this point; the
    analysis context only ever sees typed measurements.
    """
    collected_at: datetime
    measurements: Tuple[LabMeasurement, ...]
    region_code: Optional[str] = None
    observation_id: Optional[str] = None
    resource_type: Optional[str] = "Observation"


@dataclass(frozen=True)
class ObservationSummary:
    """Flags and normalized values derived from one lab panel. Never mutated."""
    observation_id: str
    collected_at: datetime                     # UTC
    flags: FrozenSet[str]
    lab_values: Mapping[str, Decimal] = field(hash=False)
    region_code: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "flags", frozenset(self.flags))
        object.__setattr__(self, "lab_values", MappingProxyType(dict(self.lab_values)))

    @property
    def collection_date(self) -> date:
        return to_utc(self.collected_at).date()

    def has_flag(self, token: str) -> bool:
        return token in self.flags


@dataclass
class DailyCaseAggregation:
    """Weighted case count for one (region, day, canonical flag) bucket."""
    region_code: str
    case_date: date
    flag: str
    total_cases: int
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class DailyCaseCount:
    date: date
    count: int


class AnomalyType(Enum):
    NONE = "none"
    ABRUPT_INCREASE = "abrupt_increase"    # possible outbreak
    ABRUPT_DECREASE = "abrupt_decrease"    # possible under-reporting


class AnomalySeverity(Enum):
    NONE = "none"
    LOW = "low"              # below 3 sigma, only reachable with limits tighter than 3 sigma
    MEDIUM = "medium"        # [3, 4) sigma
    HIGH = "high"            # [4, 5) sigma
    CRITICAL = "critical"    # >= 5 sigma


@dataclass(frozen=True)
class BaselineStatistics:
    mean: float
    std_dev: float
    ucl: float
    lcl: float
    sample_size: int
    baseline_days: int


@dataclass(frozen=True)
class ShewhartResult:
    region_code: str
    flag: str                                  # as requested by the caller
    target_date: date
    series_flag: str = ""                      # canonical series actually looked up
    observed_value: Optional[int] = None
    baseline: Optional[BaselineStatistics] = None
    anomaly_type: Optional[AnomalyType] = None
    severity: Optional[AnomalySeverity] = None
    insufficient_data: bool = False
    message: str = ""

    @property
    def anomaly_detected(self) -> bool:
        return self.anomaly_type in (AnomalyType.ABRUPT_INCREASE, AnomalyType.ABRUPT_DECREASE)

    def to_dict(self):
        return {
            "region_code": self.region_code,
            "flag": self.flag,
            "series_flag": self.series_flag,
            "target_date": self.target_date.isoformat(),
            "observed_value": self.observed_value,
            "baseline": None if self.baseline is None else {
                "mean": self.baseline.mean,
                "std_dev": self.baseline.std_dev,
                "ucl": self.baseline.ucl,
                "lcl": self.baseline.lcl,
                "sample_size": self.baseline.sample_size,
                "baseline_days": self.baseline.baseline_days,
            },
            "anomaly_detected": self.anomaly_detected,
            "anomaly_type": self.anomaly_type.value if self.anomaly_type else None,
            "severity": self.severity.value if self.severity else None,
            "insufficient_data": self.insufficient_data,
            "message": self.message,
        }


def to_utc(value: datetime) -> datetime:
    """Naive timestamps are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
