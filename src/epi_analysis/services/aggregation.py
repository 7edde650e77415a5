"""
Aggregation Engine - turn flagged observation summaries into daily case counts.

Only clinical (syndrome-level) flags are counted. Each syndrome keeps a
single series under its suspect flag; severity survives as counting weight:
an observation carrying the severe variant counts `severe_weight` times,
a suspect-only observation counts once.
"""
import logging
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, Tuple

from epi_analysis.domain.flags import ClinicalFlag
from epi_analysis.domain.model import UNKNOWN_REGION, ObservationSummary

logger = logging.getLogger(__name__)

DEFAULT_SEVERE_WEIGHT = 2

BucketKey = Tuple[str, date, str]


def observation_weights(summary: ObservationSummary, severe_weight: int = DEFAULT_SEVERE_WEIGHT) -> Dict[str, int]:
    """
    Weight contributed by one observation to each canonical series.

    An observation with both the suspect and the severe variant of the same
    syndrome counts once, at the severe weight.
    """
    weights = {}
    for token in summary.flags:
        flag = ClinicalFlag.parse(token)
        if flag is None or not flag.is_clinical:
            continue
        series = flag.canonical.token
        weight = severe_weight if flag.is_severe_variant else 1
        weights[series] = max(weights.get(series, 0), weight)
    return weights


def compute_daily_counts(
    summaries: Iterable[ObservationSummary],
    severe_weight: int = DEFAULT_SEVERE_WEIGHT,
) -> Dict[BucketKey, int]:
    """
    Group summaries by (region, collection date, canonical flag) and sum weights.

    Args:
        summaries: Observation summaries in scope for this run
        severe_weight: Count contributed by a severe occurrence

    Returns:
        Mapping of bucket key to weighted case count
    """
    counts = defaultdict(int)  # type: Dict[BucketKey, int]
    observed = 0
    for summary in summaries:
        observed += 1
        region = summary.region_code or UNKNOWN_REGION
        day = summary.collection_date
        for series, weight in observation_weights(summary, severe_weight).items():
            counts[(region, day, series)] += weight

    logger.info(f"Computed {len(counts)} daily buckets from {observed} observations")
    return dict(counts)
