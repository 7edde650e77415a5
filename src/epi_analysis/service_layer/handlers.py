# pylint: disable=broad-except
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict

import config
from epi_analysis.domain import commands, events
from epi_analysis.domain.exceptions import ValidationError
from epi_analysis.domain.flags import canonical_series
from epi_analysis.domain.model import ShewhartResult
from epi_analysis.service_layer.unit_of_work import AbstractUnitOfWork
from epi_analysis.services.aggregation import compute_daily_counts
from epi_analysis.services.rule_engine import ClinicalRuleEngine
from epi_analysis.services.shewhart import ShewhartDetector

logger = logging.getLogger(__name__)


def analyze_observation(
    command: commands.AnalyzeObservation,
    uow: AbstractUnitOfWork
) -> str:
    """
    Derive clinical flags from a lab panel and store the observation summary.

    Flow:
    1. Run the clinical rule engine on the panel
    2. Skip storage if the observation was analyzed before (summaries are immutable)
    3. Store the summary and commit

    Args:
        command: AnalyzeObservation command carrying the decoded panel
        uow: Unit of work for transaction management

    Returns:
        observation_id: The ID of the stored summary

    Raises:
        ValidationError: If the panel is malformed; only this observation fails
    """
    detector_config = config.get_detector_config()
    engine = ClinicalRuleEngine(region_code_length=detector_config["region_code_length"])

    try:
        summary = engine.analyze(command.panel)
    except ValidationError as e:
        logger.error(f"Rejected lab panel {command.panel.observation_id}: {e}")
        raise

    with uow:
        if uow.observations.get(summary.observation_id) is not None:
            logger.info(f"Observation {summary.observation_id} already analyzed, keeping stored summary")
            return summary.observation_id

        observation_id = uow.observations.add(summary)
        uow.commit()
        logger.info(f"Committed observation summary {observation_id}")

    return observation_id


def aggregate_day(command: commands.AggregateDay, uow: AbstractUnitOfWork) -> int:
    """Recompute the buckets of one collection date."""
    logger.info(f"Aggregating daily cases for {command.day}")
    return _aggregate(
        uow,
        lambda: uow.observations.list_between(command.day, command.day),
        mode="day",
        start=command.day,
        end=command.day,
    )


def aggregate_range(command: commands.AggregateRange, uow: AbstractUnitOfWork) -> int:
    """Recompute every bucket between start and end, e.g. after late-arriving reports."""
    if command.start > command.end:
        raise ValidationError(f"Range start {command.start} is after end {command.end}")
    logger.info(f"Aggregating daily cases from {command.start} to {command.end}")
    return _aggregate(
        uow,
        lambda: uow.observations.list_between(command.start, command.end),
        mode="range",
        start=command.start,
        end=command.end,
    )


def rebuild_aggregations(command: commands.RebuildAggregations, uow: AbstractUnitOfWork) -> int:
    """Recompute the complete daily case history from all stored summaries."""
    logger.info("Rebuilding all daily case aggregations")
    return _aggregate(uow, uow.observations.list_all, mode="rebuild", start=None, end=None)


def _aggregate(uow: AbstractUnitOfWork, load_summaries, mode: str, start, end) -> int:
    severe_weight = config.get_aggregation_config()["severe_weight"]

    with uow:
        summaries = load_summaries()
        counts = compute_daily_counts(summaries, severe_weight=severe_weight)

        # Recompute-and-replace: every bucket is overwritten, never incremented
        for (region_code, day, flag), total in sorted(counts.items()):
            uow.aggregations.upsert(region_code, day, flag, total)

        uow.commit()
        logger.info(f"Committed {len(counts)} daily buckets ({mode})")

        uow.record_event(
            events.AggregationsRefreshed(
                mode=mode,
                start=start,
                end=end,
                buckets=len(counts),
                refreshed_at=datetime.now(timezone.utc),
            )
        )

    return len(counts)


def analyze_anomaly(command: commands.AnalyzeAnomaly, uow: AbstractUnitOfWork) -> ShewhartResult:
    """
    Run the Shewhart detector for one region and flag.

    Args:
        command: AnalyzeAnomaly command
        uow: Unit of work

    Returns:
        ShewhartResult, reported under the flag as requested

    Raises:
        ValidationError: On a malformed region code, empty flag or short window
    """
    detector = ShewhartDetector(**config.get_detector_config())

    with uow:
        result = detector.analyze(
            uow.aggregations,
            command.region_code,
            command.flag,
            command.target_date,
            command.baseline_days,
        )

    if result.anomaly_detected:
        uow.record_event(_anomaly_event(result))
    return result


def scan_anomalies(command: commands.ScanAnomalies, uow: AbstractUnitOfWork) -> Dict[str, int]:
    """
    Run the Shewhart detector for every known region and every scan flag.

    Scan flags that fold into the same series are analyzed once, under the
    first of them. Each (region, series) pair is analyzed in its own unit of
    work. A failure on one pair is logged and skipped; the remaining pairs
    still run.

    Returns:
        {"analyzed": successful analyses, "anomalies": anomalies detected}

    Raises:
        ValidationError: If the baseline window is shorter than the minimum
    """
    detector = ShewhartDetector(**config.get_detector_config())
    baseline_days = command.baseline_days or detector.default_baseline_days
    detector.validate_window(baseline_days)
    target_date = command.target_date

    scan_flags = []
    seen_series = set()
    for flag in config.get_scheduler_config()["scan_flags"]:
        series = canonical_series(flag)
        if series in seen_series:
            logger.debug(f"Scan flag {flag} folds into series {series}, already scanned")
            continue
        seen_series.add(series)
        scan_flags.append(flag)

    with uow:
        regions = uow.aggregations.list_regions(target_date - timedelta(days=baseline_days), target_date)

    logger.info(
        f"Scanning {len(regions)} regions x {len(scan_flags)} flags for {target_date} "
        f"(baseline {baseline_days}d)"
    )

    analyzed = 0
    anomalies = 0
    for region_code in regions:
        for flag in scan_flags:
            try:
                with uow:
                    result = detector.analyze(uow.aggregations, region_code, flag, target_date, baseline_days)
            except Exception:
                logger.exception(f"Failed to analyze region={region_code}, flag={flag}")
                continue

            analyzed += 1
            if result.anomaly_detected:
                anomalies += 1
                uow.record_event(_anomaly_event(result))
            elif result.insufficient_data:
                logger.debug(f"Insufficient data: region={region_code}, flag={flag}")

    logger.info(f"Shewhart scan finished: {analyzed} analyses, {anomalies} anomalies")
    return {"analyzed": analyzed, "anomalies": anomalies}


def _anomaly_event(result: ShewhartResult) -> events.AnomalyDetected:
    return events.AnomalyDetected(
        region_code=result.region_code,
        flag=result.flag,
        target_date=result.target_date,
        observed_value=result.observed_value,
        mean=result.baseline.mean,
        std_dev=result.baseline.std_dev,
        lcl=result.baseline.lcl,
        ucl=result.baseline.ucl,
        anomaly_type=result.anomaly_type.value,
        severity=result.severity.value,
        message=result.message,
    )


def publish_anomaly_event(event: events.AnomalyDetected, uow: AbstractUnitOfWork):
    """
    Publish AnomalyDetected event to external systems (alerting, dashboards).

    Args:
        event: AnomalyDetected event
        uow: Unit of work
    """
    logger.info(f"Publishing AnomalyDetected event for {event.region_code}/{event.flag}")
    try:
        # Import here to avoid connecting to Redis on module import
        from epi_analysis.adapters import redis_adapter

        redis_adapter.publish("surveillance:anomalies", event)

    except Exception as e:
        logger.error(f"Failed to publish anomaly for {event.region_code}/{event.flag}: {e}")
        # Don't re-raise - external failures shouldn't break the flow


def publish_aggregations_refreshed(event: events.AggregationsRefreshed, uow: AbstractUnitOfWork):
    """Publish AggregationsRefreshed so downstream consumers can re-read the series."""
    logger.info(f"Publishing AggregationsRefreshed event ({event.mode}, {event.buckets} buckets)")
    try:
        from epi_analysis.adapters import redis_adapter

        redis_adapter.publish("surveillance:aggregations", event)

    except Exception as e:
        logger.error(f"Failed to publish aggregation refresh: {e}")
