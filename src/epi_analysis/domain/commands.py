"""Commands for the epidemiological analysis service."""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from shared.domain.commands import Command
from epi_analysis.domain.model import LabPanel


@dataclass
class AnalyzeObservation(Command):
    """Command to derive clinical flags from one lab panel and store the summary."""
    panel: LabPanel


@dataclass
class AggregateDay(Command):
    """Command to recompute the daily case counts of a single collection date."""
    day: date


@dataclass
class AggregateRange(Command):
    """Command to recompute daily case counts for every date in [start, end]."""
    start: date
    end: date


@dataclass
class RebuildAggregations(Command):
    """Command to recompute the whole daily case series from all stored summaries."""
    pass


@dataclass
class AnalyzeAnomaly(Command):
    """Command to run the Shewhart detector for one region and flag."""
    region_code: str
    flag: str
    target_date: date
    baseline_days: Optional[int] = None


@dataclass
class ScanAnomalies(Command):
    """Command to run the Shewhart detector for every known region and scan flag."""
    target_date: date
    baseline_days: Optional[int] = None
