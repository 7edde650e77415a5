"""
Shewhart control chart detector for daily case series.

For a (region, flag, target date) the detector builds a baseline from the
`baseline_days` calendar days strictly before the target date, derives
control limits mu +/- k*sigma and classifies the target day's count.

    baseline window: [target - baseline_days, target - 1]
    UCL = mu + k*sigma
    LCL = max(0, mu - k*sigma)

A baseline whose total case count is below `min_baseline_cases` is not
trusted: the result is marked insufficient_data and nothing is classified.
"""
import logging
import math
from datetime import date, timedelta
from typing import Iterable, List, Optional, Tuple

import numpy as np

from epi_analysis.domain.exceptions import ValidationError
from epi_analysis.domain.flags import canonical_series
from epi_analysis.domain.model import (
    AnomalySeverity,
    AnomalyType,
    BaselineStatistics,
    DailyCaseCount,
    ShewhartResult,
)
from epi_analysis.services.rule_engine import is_valid_region_code

logger = logging.getLogger(__name__)

# Lower bounds of the severity tiers, in sigmas from the mean
SEVERITY_TIERS = (
    (5.0, AnomalySeverity.CRITICAL),
    (4.0, AnomalySeverity.HIGH),
    (3.0, AnomalySeverity.MEDIUM),
)


def densify(rows: Iterable[Tuple[date, int]], start: date, end: date) -> List[DailyCaseCount]:
    """One entry per calendar day in [start, end]; days without a row count 0."""
    by_day = {}
    for day, count in rows:
        by_day[day] = by_day.get(day, 0) + count
    days = (end - start).days + 1
    return [
        DailyCaseCount(date=day, count=by_day.get(day, 0))
        for day in (start + timedelta(days=offset) for offset in range(max(days, 0)))
    ]


def compute_baseline(series: List[DailyCaseCount], sigma: float = 3.0) -> BaselineStatistics:
    """Mean, population standard deviation and control limits of a dense series."""
    values = np.array([point.count for point in series], dtype=float)
    mean = float(values.mean())
    std_dev = float(values.std())  # population (ddof=0)
    return BaselineStatistics(
        mean=mean,
        std_dev=std_dev,
        ucl=mean + sigma * std_dev,
        lcl=max(0.0, mean - sigma * std_dev),
        sample_size=len(values),
        baseline_days=len(series),
    )


def classify(observed: int, baseline: BaselineStatistics) -> AnomalyType:
    if observed > baseline.ucl:
        return AnomalyType.ABRUPT_INCREASE
    if observed < baseline.lcl:
        return AnomalyType.ABRUPT_DECREASE
    return AnomalyType.NONE


def sigma_deviation(observed: int, baseline: BaselineStatistics) -> float:
    """Absolute distance from the mean in sigmas. Infinite when sigma is 0."""
    distance = abs(observed - baseline.mean)
    if baseline.std_dev == 0:
        return math.inf if distance else 0.0
    return distance / baseline.std_dev


def severity_for(observed: int, baseline: BaselineStatistics, anomaly_type: AnomalyType) -> AnomalySeverity:
    if anomaly_type is AnomalyType.NONE:
        return AnomalySeverity.NONE
    deviation = sigma_deviation(observed, baseline)
    for lower_bound, severity in SEVERITY_TIERS:
        if deviation >= lower_bound:
            return severity
    return AnomalySeverity.LOW


def percent_deviation(observed: int, baseline: BaselineStatistics) -> Optional[float]:
    if baseline.mean == 0:
        return None
    return (observed - baseline.mean) / baseline.mean * 100


def explain(
    observed: int,
    baseline: BaselineStatistics,
    anomaly_type: AnomalyType,
    severity: AnomalySeverity,
) -> str:
    limits = f"[{baseline.lcl:.1f}, {baseline.ucl:.1f}]"
    if anomaly_type is AnomalyType.NONE:
        return f"Observed value ({observed}) within control limits {limits}"

    percent = percent_deviation(observed, baseline)
    percent_text = "n/a" if percent is None else f"{abs(percent):.1f}%"
    direction = "above" if anomaly_type is AnomalyType.ABRUPT_INCREASE else "below"
    interpretation = (
        "Possible outbreak"
        if anomaly_type is AnomalyType.ABRUPT_INCREASE
        else "Possible under-reporting or unusual event"
    )
    return (
        f"{severity.value.upper()} ANOMALY: observed value ({observed}) is {percent_text} "
        f"{direction} the historical mean ({baseline.mean:.1f}). "
        f"Deviation: {sigma_deviation(observed, baseline):.1f} sigma. "
        f"Control limits: {limits}. {interpretation}."
    )


class ShewhartDetector:
    """Run the control chart against an aggregation store."""

    def __init__(
        self,
        default_baseline_days: int = 60,
        min_baseline_days: int = 7,
        min_baseline_cases: int = 10,
        control_limit_sigma: float = 3.0,
        region_code_length: int = 7,
    ):
        self.default_baseline_days = default_baseline_days
        self.min_baseline_days = min_baseline_days
        self.min_baseline_cases = min_baseline_cases
        self.control_limit_sigma = control_limit_sigma
        self.region_code_length = region_code_length

    def validate(self, region_code: str, flag: str, baseline_days: int):
        if not is_valid_region_code(region_code, self.region_code_length):
            raise ValidationError(
                f"Region code must have exactly {self.region_code_length} digits, got {region_code!r}"
            )
        if not flag or not flag.strip():
            raise ValidationError("Flag is required")
        self.validate_window(baseline_days)

    def validate_window(self, baseline_days: int):
        if baseline_days < self.min_baseline_days:
            raise ValidationError(
                f"Baseline window must be at least {self.min_baseline_days} days, got {baseline_days}"
            )

    def analyze(
        self,
        store,
        region_code: str,
        flag: str,
        target_date: date,
        baseline_days: Optional[int] = None,
    ) -> ShewhartResult:
        """
        Analyze one region/flag series on the target date.

        Args:
            store: Aggregation repository offering query_range()
            region_code: Fixed-length numeric region code
            flag: Flag token as requested; reported back unchanged
            target_date: Day whose count is tested
            baseline_days: Length of the baseline window (default from config)

        Returns:
            ShewhartResult

        Raises:
            ValidationError: On a malformed region code, empty flag or short window
        """
        if baseline_days is None:
            baseline_days = self.default_baseline_days
        self.validate(region_code, flag, baseline_days)
        series_flag = canonical_series(flag)

        logger.info(
            f"Shewhart analysis: region={region_code}, flag={flag} (series {series_flag}), "
            f"target={target_date}, baseline={baseline_days}d"
        )

        # Step 1: baseline window ends the day before the target
        baseline_start = target_date - timedelta(days=baseline_days)
        baseline_end = target_date - timedelta(days=1)
        series = densify(
            store.query_range(region_code, series_flag, baseline_start, baseline_end),
            baseline_start,
            baseline_end,
        )

        # Step 2: statistics
        baseline = compute_baseline(series, self.control_limit_sigma)
        logger.debug(
            f"Baseline: mean={baseline.mean:.2f}, sd={baseline.std_dev:.2f}, "
            f"UCL={baseline.ucl:.2f}, LCL={baseline.lcl:.2f}"
        )

        # Step 3: sufficiency gate
        total_cases = sum(point.count for point in series)
        if total_cases < self.min_baseline_cases:
            logger.warning(
                f"Insufficient data: region={region_code}, flag={flag}, "
                f"baseline cases={total_cases} (minimum {self.min_baseline_cases})"
            )
            return ShewhartResult(
                region_code=region_code,
                flag=flag,
                target_date=target_date,
                series_flag=series_flag,
                baseline=baseline,
                insufficient_data=True,
                message=(
                    f"Insufficient data for a reliable analysis. Baseline cases: {total_cases} "
                    f"(minimum: {self.min_baseline_cases})"
                ),
            )

        # Step 4: observed count and classification
        target_rows = densify(
            store.query_range(region_code, series_flag, target_date, target_date),
            target_date,
            target_date,
        )
        observed = target_rows[0].count
        anomaly_type = classify(observed, baseline)
        severity = severity_for(observed, baseline, anomaly_type)
        message = explain(observed, baseline, anomaly_type, severity)

        if anomaly_type is AnomalyType.NONE:
            logger.info(
                f"No anomaly: observed={observed}, LCL={baseline.lcl:.2f}, UCL={baseline.ucl:.2f}"
            )
        else:
            logger.warning(f"Anomaly detected for region={region_code}, flag={flag}: {message}")

        return ShewhartResult(
            region_code=region_code,
            flag=flag,
            target_date=target_date,
            series_flag=series_flag,
            observed_value=observed,
            baseline=baseline,
            anomaly_type=anomaly_type,
            severity=severity,
            insufficient_data=False,
            message=message,
        )
