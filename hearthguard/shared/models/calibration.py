"""Family calibration models: sensitivity, app approvals, bias profiles.

These are owned by external account/settings collaborators and are read-only
from the decision engine's perspective. Validation happens here, at the
boundary, so use-sites never have to infer shape.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

# Category overrides are bounded so a family can never configure a bar
# above the always-flag floor.
MIN_CATEGORY_THRESHOLD = 50
MAX_CATEGORY_THRESHOLD = 95

MIN_BIAS_ADJUSTMENT = -50
MAX_BIAS_ADJUSTMENT = 20


class SensitivityLevel(Enum):
    """Family-wide sensitivity presets."""
    SENSITIVE = "sensitive"
    BALANCED = "balanced"
    RELAXED = "relaxed"


class ApprovalStatus(Enum):
    """Guardian decision about an app for a monitored subject."""
    APPROVED = "approved"
    DISAPPROVED = "disapproved"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class FamilySensitivityConfig:
    """Per-family flagging sensitivity.

    Applies only to candidates evaluated after the change.
    """
    family_id: str
    level: SensitivityLevel = SensitivityLevel.BALANCED
    category_overrides: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        for category, threshold in self.category_overrides.items():
            if not MIN_CATEGORY_THRESHOLD <= threshold <= MAX_CATEGORY_THRESHOLD:
                raise ValueError(
                    f"Override for {category!r} must be "
                    f"{MIN_CATEGORY_THRESHOLD}-{MAX_CATEGORY_THRESHOLD}, got {threshold}"
                )

    @classmethod
    def from_dict(cls, family_id: str, data: dict) -> "FamilySensitivityConfig":
        return cls(
            family_id=family_id,
            level=SensitivityLevel(data.get("level", SensitivityLevel.BALANCED.value)),
            category_overrides={
                category: int(value)
                for category, value in (data.get("category_overrides") or {}).items()
            },
        )


@dataclass(frozen=True)
class AppApprovalRecord:
    """Guardian approval state for one (subject, app, category)."""
    subject_id: str
    app_identifier: str
    category: str
    status: ApprovalStatus = ApprovalStatus.NEUTRAL


@dataclass(frozen=True)
class FamilyBiasProfile:
    """Accumulated correction history for one (family, category)."""
    family_id: str
    category: str
    adjustment: int
    correction_count: int = 0

    def __post_init__(self):
        if not MIN_BIAS_ADJUSTMENT <= self.adjustment <= MAX_BIAS_ADJUSTMENT:
            raise ValueError(
                f"Bias adjustment must be {MIN_BIAS_ADJUSTMENT}..{MAX_BIAS_ADJUSTMENT}, "
                f"got {self.adjustment}"
            )
        if self.correction_count < 0:
            raise ValueError("Correction count cannot be negative")
