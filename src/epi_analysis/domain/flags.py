"""
Clinical flag vocabulary.

Flags come in two kinds:

- LABORATORY flags are direct alterations in a single lab parameter
  (e.g. leukocytosis). They are kept on the observation for traceability
  but are not aggregated into daily case counts.
- CLINICAL flags are composite, syndrome-level findings inferred from
  several laboratory flags. These are aggregated and monitored by the
  Shewhart detector.

Each flag belongs to a syndrome series. The severe variant of a syndrome
and the laboratory flags that feed it all fold into the syndrome's suspect
series, which is the only series stored for it.
"""
from enum import Enum
from typing import Optional


class FlagKind(Enum):
    LABORATORY = "laboratory"
    CLINICAL = "clinical"


class ClinicalFlag(Enum):
    """Closed set of flag tokens produced by the rule engine."""

    # token, kind, canonical series token (None: the flag is its own series)
    LAB_LEUKOCYTOSIS = ("LAB_LEUKOCYTOSIS", FlagKind.LABORATORY, "BIS_SUSPECTED")    # > 11,000/uL
    LAB_LEUKOPENIA = ("LAB_LEUKOPENIA", FlagKind.LABORATORY, None)                   # < 4,000/uL
    LAB_NEUTROPHILIA = ("LAB_NEUTROPHILIA", FlagKind.LABORATORY, "BIS_SUSPECTED")    # > 7,500/uL
    LAB_NEUTROPENIA = ("LAB_NEUTROPENIA", FlagKind.LABORATORY, None)                 # < 2,000/uL
    LAB_LEFT_SHIFT = ("LAB_LEFT_SHIFT", FlagKind.LABORATORY, "BIS_SUSPECTED")        # bands > 500/uL or > 10%

    # Bacterial infection syndrome
    BIS_SUSPECTED = ("BIS_SUSPECTED", FlagKind.CLINICAL, None)    # leukocytosis + neutrophilia
    BIS_SEVERE = ("BIS_SEVERE", FlagKind.CLINICAL, "BIS_SUSPECTED")  # neutrophilia + left shift

    def __init__(self, token, kind, series):
        self.token = token
        self.kind = kind
        self._series = series

    def __str__(self):
        return self.token

    @property
    def is_clinical(self) -> bool:
        return self.kind is FlagKind.CLINICAL

    @property
    def is_laboratory(self) -> bool:
        return self.kind is FlagKind.LABORATORY

    @property
    def canonical(self) -> "ClinicalFlag":
        """The series this flag is counted under."""
        if self._series is None:
            return self
        return ClinicalFlag.from_token(self._series)

    @property
    def is_severe_variant(self) -> bool:
        return self.is_clinical and self.canonical is not self

    @classmethod
    def from_token(cls, token: str) -> "ClinicalFlag":
        """Resolve a token (case-insensitive, legacy aliases accepted)."""
        normalized = token.strip().upper()
        normalized = _ALIASES.get(normalized, normalized)
        for flag in cls:
            if flag.token == normalized:
                return flag
        raise KeyError(token)

    @classmethod
    def parse(cls, token: str) -> Optional["ClinicalFlag"]:
        try:
            return cls.from_token(token)
        except KeyError:
            return None


# Bare laboratory names used by older scan configurations
_ALIASES = {
    "LEUKOCYTOSIS": "LAB_LEUKOCYTOSIS",
    "LEUKOPENIA": "LAB_LEUKOPENIA",
    "NEUTROPHILIA": "LAB_NEUTROPHILIA",
    "NEUTROPENIA": "LAB_NEUTROPENIA",
    "LEFT_SHIFT": "LAB_LEFT_SHIFT",
}


def canonical_series(token: str) -> str:
    """
    Map any flag token to the series name used for aggregation and lookup.

    Severe syndrome variants and the laboratory flags feeding a syndrome fold
    into the syndrome's suspect series. Tokens outside the known vocabulary
    are returned stripped but otherwise unchanged, so series written by other
    producers can still be analyzed.
    """
    flag = ClinicalFlag.parse(token)
    if flag is None:
        return token.strip()
    return flag.canonical.token


def clinical_flags():
    return [flag for flag in ClinicalFlag if flag.is_clinical]


def laboratory_flags():
    return [flag for flag in ClinicalFlag if flag.is_laboratory]
