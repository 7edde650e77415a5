"""
Views for read operations - separate from command/write path.

Series are read straight from the daily_case_aggregations table that the
aggregation handlers keep up to date.
"""
import logging
from datetime import date
from typing import Any, Dict, List

from sqlalchemy import Date, Integer, bindparam, text

from epi_analysis.domain.exceptions import ValidationError
from epi_analysis.domain.flags import canonical_series
from epi_analysis.service_layer.unit_of_work import AbstractUnitOfWork
from epi_analysis.services.shewhart import densify

logger = logging.getLogger(__name__)


def get_daily_series(
    region_code: str,
    flag: str,
    start: date,
    end: date,
    uow: AbstractUnitOfWork,
) -> List[Dict[str, Any]]:
    """
    Get the daily case series of a region and flag, one entry per day.

    Args:
        region_code: Region to read
        flag: Flag token; laboratory flags and severe variants resolve to their series
        start: First day (inclusive)
        end: Last day (inclusive)
        uow: Unit of work

    Returns:
        [{"date": date, "count": int}, ...], missing days filled with 0
    """
    if start > end:
        raise ValidationError(f"Range start {start} is after end {end}")

    series_flag = canonical_series(flag)
    with uow:
        rows = uow.session.execute(
            text("""
                SELECT case_date, total_cases
                FROM daily_case_aggregations
                WHERE region_code = :region_code
                  AND flag = :flag
                  AND case_date BETWEEN :start AND :end
                ORDER BY case_date
            """).bindparams(
                bindparam("start", type_=Date),
                bindparam("end", type_=Date),
            ).columns(case_date=Date, total_cases=Integer),
            dict(region_code=region_code, flag=series_flag, start=start, end=end),
        ).all()

    parsed = [(day, total) for day, total in rows]
    logger.debug(f"Read {len(parsed)} stored days for {region_code}/{series_flag}")

    return [
        {"date": point.date, "count": point.count}
        for point in densify(parsed, start, end)
    ]
