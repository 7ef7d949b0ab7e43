"""Decision Service configuration and calibration constants.

Thresholds are on the 0-100 confidence scale produced by the classifier.
"""
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional

from hearthguard.shared.models import ApprovalStatus, SensitivityLevel

# Candidates at or above this confidence always become a flag. Applied after
# bias adjustment and before any family threshold; no configuration can move it.
ALWAYS_FLAG_THRESHOLD: int = 95

DEFAULT_THRESHOLD: int = 75

LEVEL_THRESHOLDS: Dict[SensitivityLevel, int] = {
    SensitivityLevel.SENSITIVE: 60,
    SensitivityLevel.BALANCED: 75,
    SensitivityLevel.RELAXED: 90,
}

# A bias profile is noise until the family has corrected this many flags
MIN_CORRECTIONS_FOR_BIAS: int = 5

APPROVAL_ADJUSTMENTS: Dict[ApprovalStatus, int] = {
    ApprovalStatus.APPROVED: -20,
    ApprovalStatus.DISAPPROVED: 15,
    ApprovalStatus.NEUTRAL: 0,
}

MIN_CONFIDENCE: int = 0
MAX_CONFIDENCE: int = 100


class ThrottleLevel(Enum):
    """How many non-critical alerts a family receives per subject per day."""
    MINIMAL = "minimal"
    STANDARD = "standard"
    DETAILED = "detailed"
    ALL = "all"


# None means unlimited
THROTTLE_LIMITS: Dict[ThrottleLevel, Optional[int]] = {
    ThrottleLevel.MINIMAL: 1,
    ThrottleLevel.STANDARD: 3,
    ThrottleLevel.DETAILED: 5,
    ThrottleLevel.ALL: None,
}

# Categories whose discard records carry no metadata beyond the outcome
SENSITIVE_CATEGORIES: FrozenSet[str] = frozenset({
    "self_harm",
    "suicide",
    "sexual_content",
    "abuse",
    "eating_disorder",
})


@dataclass(frozen=True)
class DecisionConfig:
    """Runtime switches for the decision pipeline."""

    # Log discarded candidates (category and confidence only, never context)
    log_discard_details: bool = True

    sensitive_categories: FrozenSet[str] = field(default=SENSITIVE_CATEGORIES)

    default_throttle_level: ThrottleLevel = ThrottleLevel.STANDARD

    throttle_enabled: bool = True

    @classmethod
    def from_env(cls) -> "DecisionConfig":
        """Create config from environment variables.

        Environment variables:
            LOG_DISCARD_DETAILS: "true" to log discard metadata (default true)
            SENSITIVE_CATEGORIES: Comma-separated override of the sensitive set
            DEFAULT_THROTTLE_LEVEL: minimal|standard|detailed|all
            THROTTLE_ENABLED: "false" to route every created flag
        """
        raw_categories = os.getenv("SENSITIVE_CATEGORIES")
        categories = SENSITIVE_CATEGORIES
        if raw_categories:
            categories = frozenset(
                c.strip() for c in raw_categories.split(",") if c.strip()
            )
        return cls(
            log_discard_details=os.getenv("LOG_DISCARD_DETAILS", "true").lower() == "true",
            sensitive_categories=categories,
            default_throttle_level=ThrottleLevel(
                os.getenv("DEFAULT_THROTTLE_LEVEL", ThrottleLevel.STANDARD.value)
            ),
            throttle_enabled=os.getenv("THROTTLE_ENABLED", "true").lower() == "true",
        )
