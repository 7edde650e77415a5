import logging
from sqlalchemy import (
    Table,
    Column,
    Integer,
    String,
    Date,
    DateTime,
    JSON,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import registry
from epi_analysis.domain import model

logger = logging.getLogger(__name__)

# SQLAlchemy 2.0 pattern: use registry
mapper_registry = registry()
metadata = mapper_registry.metadata

# Observation summaries are immutable value objects; the repository reads
# and writes them through Core instead of mapping them.
observation_summaries = Table(
    "observation_summaries",
    metadata,
    Column("observation_id", String(255), primary_key=True),
    Column("collected_at", DateTime(timezone=True), nullable=False),
    Column("collection_date", Date, nullable=False, index=True),
    Column("region_code", String(16)),
    Column("flags", JSON, nullable=False),
    Column("lab_values", JSON, nullable=False),
)

daily_case_aggregations = Table(
    "daily_case_aggregations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("region_code", String(16), nullable=False),
    Column("case_date", Date, nullable=False),
    Column("flag", String(100), nullable=False),
    Column("total_cases", Integer, nullable=False, server_default="0"),
    Column("updated_at", DateTime(timezone=True)),
    UniqueConstraint("region_code", "case_date", "flag", name="uq_daily_case_bucket"),
    Index("ix_daily_case_series", "region_code", "flag", "case_date"),
)


def start_mappers():
    logger.info("Starting mappers")
    mapper_registry.map_imperatively(model.DailyCaseAggregation, daily_case_aggregations)
