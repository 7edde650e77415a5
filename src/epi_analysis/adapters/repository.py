import abc
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from epi_analysis.adapters import orm
from epi_analysis.domain import model
from epi_analysis.domain.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class AbstractObservationRepository(abc.ABC):
    """Store of immutable observation summaries, keyed by observation id."""

    def add(self, summary: model.ObservationSummary) -> str:
        """Store the summary. A known observation id keeps its first summary."""
        if self._get(summary.observation_id) is None:
            self._add(summary)
        return summary.observation_id

    def get(self, observation_id: str) -> Optional[model.ObservationSummary]:
        return self._get(observation_id)

    def list_all(self) -> List[model.ObservationSummary]:
        return self._list_between(None, None)

    def list_between(self, start: date, end: date) -> List[model.ObservationSummary]:
        """Summaries whose UTC collection date lies in [start, end]."""
        return self._list_between(start, end)

    @abc.abstractmethod
    def _add(self, summary: model.ObservationSummary):
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, observation_id: str) -> Optional[model.ObservationSummary]:
        raise NotImplementedError

    @abc.abstractmethod
    def _list_between(self, start: Optional[date], end: Optional[date]) -> List[model.ObservationSummary]:
        raise NotImplementedError


class AbstractAggregationRepository(abc.ABC):
    """Store of daily case counts, one row per (region, date, flag)."""

    def upsert(self, region_code: str, case_date: date, flag: str, total_cases: int):
        """Insert the bucket or overwrite its count. Never increments."""
        self._upsert(region_code, case_date, flag, total_cases, datetime.now(timezone.utc))

    def query_range(self, region_code: str, flag: str, start: date, end: date) -> List[Tuple[date, int]]:
        return self._query_range(region_code, flag, start, end)

    def get(self, region_code: str, case_date: date, flag: str) -> Optional[model.DailyCaseAggregation]:
        return self._get(region_code, case_date, flag)

    def list_regions(self, start: date, end: date) -> List[str]:
        """Distinct known region codes with at least one row in [start, end]."""
        return [
            region for region in self._list_regions(start, end)
            if region != model.UNKNOWN_REGION
        ]

    @abc.abstractmethod
    def _upsert(self, region_code, case_date, flag, total_cases, updated_at):
        raise NotImplementedError

    @abc.abstractmethod
    def _query_range(self, region_code, flag, start, end) -> List[Tuple[date, int]]:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, region_code, case_date, flag) -> Optional[model.DailyCaseAggregation]:
        raise NotImplementedError

    @abc.abstractmethod
    def _list_regions(self, start, end) -> List[str]:
        raise NotImplementedError


class SqlAlchemyObservationRepository(AbstractObservationRepository):
    def __init__(self, session):
        super().__init__()
        self.session = session

    def _add(self, summary):
        table = orm.observation_summaries
        try:
            self.session.execute(
                table.insert().values(
                    observation_id=summary.observation_id,
                    collected_at=summary.collected_at,
                    collection_date=summary.collection_date,
                    region_code=summary.region_code,
                    flags=sorted(summary.flags),
                    lab_values={name: str(value) for name, value in summary.lab_values.items()},
                )
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to store observation {summary.observation_id}: {e}") from e

    def _get(self, observation_id):
        table = orm.observation_summaries
        try:
            row = self.session.execute(
                select(table).where(table.c.observation_id == observation_id)
            ).mappings().first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load observation {observation_id}: {e}") from e
        return _row_to_summary(row) if row else None

    def _list_between(self, start, end):
        table = orm.observation_summaries
        query = select(table)
        if start is not None:
            query = query.where(table.c.collection_date >= start)
        if end is not None:
            query = query.where(table.c.collection_date <= end)
        query = query.order_by(table.c.collected_at)
        try:
            rows = self.session.execute(query).mappings().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list observations: {e}") from e
        return [_row_to_summary(row) for row in rows]


class SqlAlchemyAggregationRepository(AbstractAggregationRepository):
    def __init__(self, session):
        super().__init__()
        self.session = session

    def _upsert(self, region_code, case_date, flag, total_cases, updated_at):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise PersistenceError(f"Upsert is not supported on dialect {dialect}")

        stmt = insert(orm.daily_case_aggregations).values(
            region_code=region_code,
            case_date=case_date,
            flag=flag,
            total_cases=total_cases,
            updated_at=updated_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["region_code", "case_date", "flag"],
            set_=dict(total_cases=stmt.excluded.total_cases, updated_at=stmt.excluded.updated_at),
        )
        try:
            self.session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to upsert bucket ({region_code}, {case_date}, {flag}): {e}"
            ) from e

    def _query_range(self, region_code, flag, start, end):
        Aggregation = model.DailyCaseAggregation
        try:
            rows = (
                self.session.query(Aggregation)
                .populate_existing()
                .filter(Aggregation.region_code == region_code)
                .filter(Aggregation.flag == flag)
                .filter(Aggregation.case_date >= start)
                .filter(Aggregation.case_date <= end)
                .order_by(Aggregation.case_date)
                .all()
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to query series {region_code}/{flag}: {e}") from e
        return [(row.case_date, row.total_cases) for row in rows]

    def _get(self, region_code, case_date, flag):
        # Built from the row values so the result outlives the session
        table = orm.daily_case_aggregations
        try:
            row = self.session.execute(
                select(table)
                .where(table.c.region_code == region_code)
                .where(table.c.case_date == case_date)
                .where(table.c.flag == flag)
            ).mappings().first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load bucket ({region_code}, {case_date}, {flag}): {e}") from e
        if row is None:
            return None
        return model.DailyCaseAggregation(
            region_code=row["region_code"],
            case_date=row["case_date"],
            flag=row["flag"],
            total_cases=row["total_cases"],
            updated_at=row["updated_at"],
        )

    def _list_regions(self, start, end):
        table = orm.daily_case_aggregations
        try:
            rows = self.session.execute(
                select(table.c.region_code)
                .where(table.c.case_date >= start)
                .where(table.c.case_date <= end)
                .distinct()
                .order_by(table.c.region_code)
            ).scalars().all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list regions: {e}") from e
        return list(rows)


def _row_to_summary(row) -> model.ObservationSummary:
    return model.ObservationSummary(
        observation_id=row["observation_id"],
        collected_at=model.to_utc(row["collected_at"]),
        region_code=row["region_code"],
        flags=frozenset(row["flags"]),
        lab_values={name: Decimal(value) for name, value in row["lab_values"].items()},
    )
