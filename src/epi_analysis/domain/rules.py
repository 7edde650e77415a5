"""
Clinical rule tables for blood count surveillance.

All tables are immutable values: the rule engine receives a RuleSet at
construction and never mutates it. Thresholds follow adult reference
ranges used for bacterial infection syndrome screening.
"""
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from epi_analysis.domain.flags import ClinicalFlag


# LOINC code -> canonical parameter name
LOINC_CODE_MAP = MappingProxyType({
    "6690-2": "leukocytes",           # Leukocytes [#/volume] in Blood
    "751-8": "neutrophils",           # Neutrophils [#/volume] in Blood by Automated count
    "753-4": "neutrophils",           # Neutrophils [#/volume] in Blood
    "764-1": "band_neutrophils",      # Neutrophils.band form [#/volume] in Blood
    "711-2": "band_neutrophils",      # Neutrophils.band form [#/volume] in Blood (alternative)
    "35332-6": "band_neutrophils_pct",  # Neutrophils.band form/100 leukocytes in Blood
})

# Normalized unit spelling -> factor to cells/uL.
# See normalize_unit() for how spellings are folded before lookup.
UNIT_MULTIPLIERS = MappingProxyType({
    "10*3/ul": Decimal(1000),
    "10^3/ul": Decimal(1000),
    "x10^3/ul": Decimal(1000),
    "x10*3/ul": Decimal(1000),
    "k/ul": Decimal(1000),
    "10*9/l": Decimal(1000),
    "10^9/l": Decimal(1000),
    "x10^9/l": Decimal(1000),
    "/ul": Decimal(1),
    "cells/ul": Decimal(1),
    "{cells}/ul": Decimal(1),
})


def normalize_unit(unit: Optional[str]) -> Optional[str]:
    """Fold the many spellings of count units into one lookup key."""
    if unit is None:
        return None
    folded = unit.strip().lower().replace(" ", "")
    for micro in ("µ", "μ"):
        folded = folded.replace(micro, "u")
    folded = folded.replace("×", "x").replace("³", "^3").replace("⁹", "^9")
    folded = folded.replace("mm3", "ul").replace("mm^3", "ul")
    return folded


@dataclass(frozen=True)
class ThresholdRule:
    """Raises `flag` when `parameter` is above `above` or below `below`."""
    parameter: str
    flag: ClinicalFlag
    above: Optional[Decimal] = None
    below: Optional[Decimal] = None

    def matches(self, value: Decimal) -> bool:
        if self.above is not None and value > self.above:
            return True
        if self.below is not None and value < self.below:
            return True
        return False


@dataclass(frozen=True)
class CompositeRule:
    """Raises `flag` when every flag in `requires` is present."""
    flag: ClinicalFlag
    requires: Tuple[ClinicalFlag, ...]

    def matches(self, present) -> bool:
        return all(required in present for required in self.requires)


@dataclass(frozen=True)
class RuleSet:
    code_map: Mapping[str, str]
    unit_multipliers: Mapping[str, Decimal]
    thresholds: Tuple[ThresholdRule, ...]
    composites: Tuple[CompositeRule, ...]


DEFAULT_THRESHOLDS = (
    ThresholdRule("leukocytes", ClinicalFlag.LAB_LEUKOCYTOSIS, above=Decimal(11000)),
    ThresholdRule("leukocytes", ClinicalFlag.LAB_LEUKOPENIA, below=Decimal(4000)),
    ThresholdRule("neutrophils", ClinicalFlag.LAB_NEUTROPHILIA, above=Decimal(7500)),
    ThresholdRule("neutrophils", ClinicalFlag.LAB_NEUTROPENIA, below=Decimal(2000)),
    ThresholdRule("band_neutrophils", ClinicalFlag.LAB_LEFT_SHIFT, above=Decimal(500)),
    ThresholdRule("band_neutrophils_pct", ClinicalFlag.LAB_LEFT_SHIFT, above=Decimal(10)),
)

DEFAULT_COMPOSITES = (
    CompositeRule(
        ClinicalFlag.BIS_SUSPECTED,
        requires=(ClinicalFlag.LAB_LEUKOCYTOSIS, ClinicalFlag.LAB_NEUTROPHILIA),
    ),
    CompositeRule(
        ClinicalFlag.BIS_SEVERE,
        requires=(ClinicalFlag.LAB_NEUTROPHILIA, ClinicalFlag.LAB_LEFT_SHIFT),
    ),
)

DEFAULT_RULES = RuleSet(
    code_map=LOINC_CODE_MAP,
    unit_multipliers=UNIT_MULTIPLIERS,
    thresholds=DEFAULT_THRESHOLDS,
    composites=DEFAULT_COMPOSITES,
)
