# pylint: disable=redefined-outer-name
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import fakeredis
import pytest

from epi_analysis.adapters import repository
from epi_analysis.domain import model
from epi_analysis.service_layer.unit_of_work import AbstractUnitOfWork


@pytest.fixture
def sqlite_session_factory():
    """Create SQLite in-memory database for fast testing."""
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker, clear_mappers
    from epi_analysis.adapters import orm

    engine = create_engine("sqlite:///:memory:")
    orm.metadata.create_all(engine)
    orm.start_mappers()

    yield sessionmaker(bind=engine)

    clear_mappers()
    engine.dispose()


@pytest.fixture
def sqlite_uow(sqlite_session_factory):
    from epi_analysis.service_layer.unit_of_work import SqlAlchemyUnitOfWork

    return SqlAlchemyUnitOfWork(sqlite_session_factory)


@pytest.fixture
def fake_redis():
    """Replace the publishing Redis client with an in-process fake."""
    from unittest.mock import patch
    from epi_analysis.adapters import redis_adapter

    client = fakeredis.FakeRedis()
    with patch.object(redis_adapter, "r", client):
        yield client


class FakeObservationRepository(repository.AbstractObservationRepository):
    def __init__(self, summaries=()):
        self._summaries = {summary.observation_id: summary for summary in summaries}

    def _add(self, summary):
        self._summaries[summary.observation_id] = summary

    def _get(self, observation_id):
        return self._summaries.get(observation_id)

    def _list_between(self, start, end):
        return [
            summary for summary in self._summaries.values()
            if (start is None or summary.collection_date >= start)
            and (end is None or summary.collection_date <= end)
        ]


class FakeAggregationRepository(repository.AbstractAggregationRepository):
    def __init__(self, counts=None):
        self.rows = dict(counts or {})  # (region, date, flag) -> count

    def _upsert(self, region_code, case_date, flag, total_cases, updated_at):
        self.rows[(region_code, case_date, flag)] = total_cases

    def _query_range(self, region_code, flag, start, end):
        return sorted(
            (day, count) for (region, day, series), count in self.rows.items()
            if region == region_code and series == flag and start <= day <= end
        )

    def _get(self, region_code, case_date, flag):
        count = self.rows.get((region_code, case_date, flag))
        if count is None:
            return None
        return model.DailyCaseAggregation(region_code, case_date, flag, count)

    def _list_regions(self, start, end):
        return sorted({region for (region, day, _) in self.rows if start <= day <= end})


class FakeUnitOfWork(AbstractUnitOfWork):
    def __init__(self, summaries=(), counts=None):
        self.observations = FakeObservationRepository(summaries)
        self.aggregations = FakeAggregationRepository(counts)
        self.committed = False

    def _commit(self):
        self.committed = True

    def rollback(self):
        pass


@pytest.fixture
def fake_uow():
    return FakeUnitOfWork()


def make_summary(observation_id, day, flags, region_code="3550308", lab_values=None):
    """Observation summary collected at noon UTC on `day`."""
    return model.ObservationSummary(
        observation_id=observation_id,
        collected_at=datetime(day.year, day.month, day.day, 12, 0, tzinfo=timezone.utc),
        flags=frozenset(flags),
        lab_values=lab_values or {"leukocytes": Decimal("12000")},
        region_code=region_code,
    )


def alternating_series(region_code, flag, target_date, days=60, low=8, high=12):
    """
    Baseline of `days` days before target_date alternating low/high.

    With 8/12 the mean is 10 and the population standard deviation 2.
    """
    counts = {}
    for offset in range(1, days + 1):
        day = target_date - timedelta(days=offset)
        counts[(region_code, day, flag)] = low if offset % 2 else high
    return counts


@pytest.fixture
def target_date():
    return date(2024, 3, 1)


@pytest.fixture
def make_uow():
    return FakeUnitOfWork


@pytest.fixture
def summary_factory():
    return make_summary


@pytest.fixture
def baseline_counts():
    return alternating_series
