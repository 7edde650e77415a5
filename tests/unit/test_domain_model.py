"""Unit tests for the surveillance domain model"""
import dataclasses
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from epi_analysis.domain.model import (
    AnomalySeverity,
    AnomalyType,
    ObservationSummary,
    ShewhartResult,
    to_utc,
)


def test_observation_summary_is_immutable():
    """Summaries are written once and never changed"""
    summary = ObservationSummary(
        observation_id="Observation/1",
        collected_at=datetime(2024, 3, 1, 12, tzinfo=timezone.utc),
        flags={"BIS_SUSPECTED"},
        lab_values={"leukocytes": Decimal("15000")},
    )

    with pytest.raises(dataclasses.FrozenInstanceError):
        summary.flags = frozenset()
    with pytest.raises(TypeError):
        summary.lab_values["leukocytes"] = Decimal("1")

    assert isinstance(summary.flags, frozenset)
    assert summary.has_flag("BIS_SUSPECTED")
    assert not summary.has_flag("BIS_SEVERE")


def test_collection_date_is_utc_day():
    """Test that the collection date is the UTC calendar day."""
    summary = ObservationSummary(
        observation_id="Observation/1",
        collected_at=datetime(2024, 3, 1, 22, 0, tzinfo=timezone(timedelta(hours=-5))),
        flags=frozenset(),
        lab_values={},
    )
    assert summary.collection_date == date(2024, 3, 2)


def test_to_utc_treats_naive_as_utc():
    """Test that naive datetimes are taken as UTC and aware ones converted."""
    assert to_utc(datetime(2024, 3, 1, 8, 0)) == datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)
    converted = to_utc(datetime(2024, 3, 1, 8, 0, tzinfo=timezone(timedelta(hours=2))))
    assert converted.hour == 6
    assert converted.tzinfo == timezone.utc


def test_result_without_classification_is_not_an_anomaly():
    """Test that an insufficient-data result is not an anomaly."""
    result = ShewhartResult(region_code="3550308", flag="BIS_SUSPECTED", target_date=date(2024, 3, 1),
                            insufficient_data=True)

    assert not result.anomaly_detected
    assert result.to_dict()["baseline"] is None
    assert result.to_dict()["severity"] is None


@pytest.mark.parametrize("anomaly_type, detected", [
    (AnomalyType.NONE, False),
    (AnomalyType.ABRUPT_INCREASE, True),
    (AnomalyType.ABRUPT_DECREASE, True),
])
def test_anomaly_detected(anomaly_type, detected):
    """Test that only increases and decreases count as anomalies."""
    result = ShewhartResult(region_code="3550308", flag="BIS_SUSPECTED", target_date=date(2024, 3, 1),
                            anomaly_type=anomaly_type, severity=AnomalySeverity.NONE)
    assert result.anomaly_detected is detected
