"""Per-family flagging threshold resolution.

Resolution order:
1. Category override for the family
2. Family sensitivity level (sensitive 60, balanced 75, relaxed 90)
3. Default 75

The result is advisory: the always-flag floor is enforced by the decision
engine before this resolver is consulted.
"""
from typing import Optional

from .config import DEFAULT_THRESHOLD, LEVEL_THRESHOLDS
from .config_repository import CalibrationRepository


class ThresholdResolver:
    """Resolves the confidence a candidate needs to become a flag."""

    def __init__(self, repository: Optional[CalibrationRepository] = None):
        self.repository = repository or CalibrationRepository()

    def effective_threshold(self, family_id: str, category: str) -> int:
        """Threshold in [50, 95] for this family and category.

        A family with no stored configuration gets the default. Lookup
        errors propagate; the decision engine discards on them.
        """
        config = self.repository.get_sensitivity(family_id)
        if config is None:
            return DEFAULT_THRESHOLD

        override = config.category_overrides.get(category)
        if override is not None:
            return override

        return LEVEL_THRESHOLDS.get(config.level, DEFAULT_THRESHOLD)
