"""Clinical Rule Engine - derive flags and normalized values from a lab panel."""

import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import Dict, Optional, Set

from epi_analysis.domain.exceptions import ValidationError
from epi_analysis.domain.flags import ClinicalFlag
from epi_analysis.domain.model import LabPanel, ObservationSummary, to_utc
from epi_analysis.domain.rules import DEFAULT_RULES, RuleSet, normalize_unit

logger = logging.getLogger(__name__)

ACCEPTED_RESOURCE_TYPES = frozenset({"Observation"})


class ClinicalRuleEngine:
    """Apply a RuleSet to lab panels. Holds no state besides the rule tables."""

    def __init__(self, rules: RuleSet = DEFAULT_RULES, region_code_length: int = 7):
        self.rules = rules
        self.region_code_length = region_code_length

    def analyze(self, panel: LabPanel) -> ObservationSummary:
        """
        Analyze one lab panel.

        Flow:
        1. Validate the resource marker
        2. Map parameter codes and normalize units (last value wins)
        3. Apply threshold rules, then composite rules

        Args:
            panel: Decoded lab panel

        Returns:
            ObservationSummary with flags and normalized lab values

        Raises:
            ValidationError: If the panel is not an observation, has no
                usable parameters or carries a non-finite value
        """
        if not panel.resource_type or panel.resource_type not in ACCEPTED_RESOURCE_TYPES:
            raise ValidationError(f"Unsupported resource type: {panel.resource_type!r}")

        lab_values = self.extract_lab_values(panel)
        if not lab_values:
            raise ValidationError("Panel contains no recognized lab parameters")

        flags = self.apply_rules(lab_values)
        observation_id = panel.observation_id or f"Observation/{uuid.uuid4()}"

        summary = ObservationSummary(
            observation_id=observation_id,
            collected_at=to_utc(panel.collected_at),
            region_code=self._clean_region_code(panel.region_code, observation_id),
            flags=frozenset(flag.token for flag in flags),
            lab_values=lab_values,
        )
        logger.info(f"Analyzed {observation_id}: {len(summary.flags)} flags {sorted(summary.flags)}")
        return summary

    def extract_lab_values(self, panel: LabPanel) -> Dict[str, Decimal]:
        lab_values = {}
        for measurement in panel.measurements:
            parameter = self.rules.code_map.get(measurement.code)
            if parameter is None:
                logger.debug(f"Ignoring unmapped code {measurement.code}")
                continue
            lab_values[parameter] = self.normalize_value(measurement.value, measurement.unit)
        return lab_values

    def normalize_value(self, value, unit: Optional[str]) -> Decimal:
        """Rescale multiplier units to absolute counts per microliter."""
        try:
            value = Decimal(str(value))
        except InvalidOperation as e:
            raise ValidationError(f"Lab value is not a number: {value!r}") from e
        if not value.is_finite():
            raise ValidationError(f"Lab value must be finite, got {value}")
        multiplier = self.rules.unit_multipliers.get(normalize_unit(unit))
        if multiplier is None:
            return value
        return value * multiplier

    def apply_rules(self, lab_values: Dict[str, Decimal]) -> Set[ClinicalFlag]:
        flags = set()
        for rule in self.rules.thresholds:
            value = lab_values.get(rule.parameter)
            if value is not None and rule.matches(value):
                flags.add(rule.flag)

        # Composite flags only look at laboratory flags from this panel
        atomic = frozenset(flags)
        for rule in self.rules.composites:
            if rule.matches(atomic):
                flags.add(rule.flag)
        return flags

    def _clean_region_code(self, region_code: Optional[str], observation_id: str) -> Optional[str]:
        if region_code is None:
            return None
        region_code = region_code.strip()
        if not region_code:
            return None
        if not is_valid_region_code(region_code, self.region_code_length):
            logger.warning(
                f"Dropping malformed region code {region_code!r} on {observation_id}; "
                f"expected {self.region_code_length} digits"
            )
            return None
        return region_code


def is_valid_region_code(region_code: Optional[str], length: int = 7) -> bool:
    return (
        bool(region_code)
        and len(region_code) == length
        and region_code.isascii()
        and region_code.isdigit()
    )
