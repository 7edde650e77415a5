# pylint: disable=attribute-defined-outside-init
from __future__ import annotations
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session


import config
from epi_analysis.adapters import repository
from shared.service_layer import unit_of_work


class AbstractUnitOfWork(unit_of_work.AbstractUnitOfWork):
    observations: repository.AbstractObservationRepository
    aggregations: repository.AbstractAggregationRepository


# Concurrent upserts on one bucket must not fail with serialization errors;
# under READ COMMITTED, ON CONFLICT DO UPDATE lets the last writer win.
ISOLATION_LEVEL = "READ COMMITTED"

DEFAULT_SESSION_FACTORY = sessionmaker(
    bind=create_engine(
        config.get_postgres_uri(),
        isolation_level=ISOLATION_LEVEL,
    )
)

class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    def __init__(self, session_factory=DEFAULT_SESSION_FACTORY):
        self.session_factory = session_factory

    def __enter__(self):
        self.session = self.session_factory()  # type: Session
        self.observations = repository.SqlAlchemyObservationRepository(self.session)
        self.aggregations = repository.SqlAlchemyAggregationRepository(self.session)
        return super().__enter__()

    def __exit__(self, *args):
        super().__exit__(*args)
        self.session.close()

    def _commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()
