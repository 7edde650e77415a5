"""
Scheduler entrypoint for the epidemiological analysis service.

Scheduled jobs (cron, k8s CronJob, ...) run one subcommand per invocation:

    epi-jobs aggregate [--date D]
    epi-jobs aggregate-range --start D --end D
    epi-jobs rebuild
    epi-jobs scan [--date D] [--baseline-days N]
    epi-jobs analyze REGION FLAG [--date D] [--baseline-days N]
    epi-jobs series REGION FLAG --start D --end D

Jobs without an explicit date work on today minus JOB_TARGET_OFFSET_DAYS
(D-2 by default) so late lab reports are in before a day is processed.
"""
import argparse
import json
import logging
from datetime import date, timedelta
from typing import Literal, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, model_validator
from sqlalchemy import create_engine

import config
from epi_analysis import views
from epi_analysis.adapters import orm
from epi_analysis.domain import commands
from epi_analysis.domain.exceptions import PersistenceError, ValidationError
from epi_analysis.service_layer import messagebus
from epi_analysis.service_layer.unit_of_work import SqlAlchemyUnitOfWork

logger = logging.getLogger(__name__)

JobName = Literal["aggregate", "aggregate-range", "rebuild", "scan", "analyze"]


class JobRequest(BaseModel):
    """A scheduler job, from the command line or a surveillance:jobs message."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    job: JobName
    target_date: Optional[date] = Field(default=None, alias="date")
    start: Optional[date] = None
    end: Optional[date] = None
    region_code: Optional[str] = Field(default=None, alias="region")
    flag: Optional[str] = None
    baseline_days: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_job_arguments(self):
        if self.job == "aggregate-range" and (self.start is None or self.end is None):
            raise ValueError("aggregate-range needs start and end")
        if self.job == "analyze" and (not self.region_code or not self.flag):
            raise ValueError("analyze needs region and flag")
        return self


def default_target_date(today: Optional[date] = None) -> date:
    offset = config.get_scheduler_config()["target_offset_days"]
    return (today or date.today()) - timedelta(days=offset)


def build_command(request: JobRequest, today: Optional[date] = None) -> commands.Command:
    """Turn a validated job request into the command the message bus handles."""
    target_date = request.target_date or default_target_date(today)

    if request.job == "aggregate":
        return commands.AggregateDay(day=target_date)
    if request.job == "aggregate-range":
        return commands.AggregateRange(start=request.start, end=request.end)
    if request.job == "rebuild":
        return commands.RebuildAggregations()
    if request.job == "scan":
        return commands.ScanAnomalies(target_date=target_date, baseline_days=request.baseline_days)
    return commands.AnalyzeAnomaly(
        region_code=request.region_code,
        flag=request.flag,
        target_date=target_date,
        baseline_days=request.baseline_days,
    )


def init_database():
    """Create tables and start ORM mappers, once per process."""
    logger.info("Initializing database schema and ORM mappers...")
    engine = create_engine(config.get_postgres_uri())
    orm.metadata.create_all(engine)
    orm.start_mappers()
    logger.info("Database tables created and ORM mappers initialized")


def run_job(request: JobRequest, uow=None, today: Optional[date] = None):
    """Dispatch one job through the message bus and return the handler result."""
    cmd = build_command(request, today)
    logger.info(f"Running job {request.job}: {cmd}")
    results = messagebus.handle(cmd, uow or SqlAlchemyUnitOfWork())
    return results[0] if results else None


def format_result(result) -> str:
    if hasattr(result, "to_dict"):
        return json.dumps(result.to_dict(), indent=2)
    if isinstance(result, dict):
        return json.dumps(result)
    return str(result)


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}") from e


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="epi-jobs",
        description="Run aggregation and anomaly detection jobs",
    )
    subparsers = parser.add_subparsers(dest="job", required=True)

    aggregate = subparsers.add_parser("aggregate", help="Recompute daily counts of one day")
    aggregate.add_argument("--date", type=_iso_date, dest="target_date")

    aggregate_range = subparsers.add_parser("aggregate-range", help="Recompute daily counts of a date range")
    aggregate_range.add_argument("--start", type=_iso_date, required=True)
    aggregate_range.add_argument("--end", type=_iso_date, required=True)

    subparsers.add_parser("rebuild", help="Recompute all daily counts")

    scan = subparsers.add_parser("scan", help="Shewhart scan over all regions and scan flags")
    scan.add_argument("--date", type=_iso_date, dest="target_date")
    scan.add_argument("--baseline-days", type=int)

    analyze = subparsers.add_parser("analyze", help="Shewhart analysis of one region and flag")
    analyze.add_argument("region_code", metavar="REGION")
    analyze.add_argument("flag", metavar="FLAG")
    analyze.add_argument("--date", type=_iso_date, dest="target_date")
    analyze.add_argument("--baseline-days", type=int)

    series = subparsers.add_parser("series", help="Print the daily series of one region and flag")
    series.add_argument("region_code", metavar="REGION")
    series.add_argument("flag", metavar="FLAG")
    series.add_argument("--start", type=_iso_date, required=True)
    series.add_argument("--end", type=_iso_date, required=True)

    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)
    init_database()

    try:
        if args.job == "series":
            points = views.get_daily_series(
                args.region_code, args.flag, args.start, args.end, SqlAlchemyUnitOfWork()
            )
            for point in points:
                print(f"{point['date'].isoformat()}\t{point['count']}")
            return 0

        request = JobRequest.model_validate(
            {key: value for key, value in vars(args).items() if value is not None}
        )
        print(format_result(run_job(request)))
        return 0

    except (ValidationError, pydantic.ValidationError) as e:
        logger.error(f"Invalid job arguments: {e}")
        return 2
    except PersistenceError as e:
        logger.error(f"Store unavailable, job can be retried: {e}")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
