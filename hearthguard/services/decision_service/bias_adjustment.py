"""Confidence adjustment from family feedback.

Two additive steps, each clamped to [0, 100]:
1. Family bias profile for the category, once it has enough corrections
2. App approval for the subject (approved -20, disapproved +15)

There is no per-category floor. A family that keeps marking a
category as noise can push it below any threshold except the always-flag
floor, which the decision engine applies to the adjusted value.
"""
from typing import Optional

from hearthguard.shared.models import ApprovalStatus
from .config import (
    APPROVAL_ADJUSTMENTS,
    MAX_CONFIDENCE,
    MIN_CONFIDENCE,
    MIN_CORRECTIONS_FOR_BIAS,
)
from .config_repository import CalibrationRepository


def clamp_confidence(value: int) -> int:
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, value))


class BiasAdjustmentEngine:
    """Applies family bias and app approval to a raw confidence."""

    def __init__(self, repository: Optional[CalibrationRepository] = None):
        self.repository = repository or CalibrationRepository()

    def adjust(
        self,
        raw_confidence: int,
        family_id: str,
        subject_id: str,
        app_identifier: Optional[str],
        category: str,
    ) -> int:
        """Adjusted confidence in [0, 100].

        Repository errors propagate; the decision engine fails closed on them.
        """
        adjusted = clamp_confidence(raw_confidence)

        profile = self.repository.get_bias_profile(family_id, category)
        if profile is not None and profile.correction_count >= MIN_CORRECTIONS_FOR_BIAS:
            adjusted = clamp_confidence(adjusted + profile.adjustment)

        if app_identifier:
            record = self.repository.get_app_approval(subject_id, app_identifier, category)
            status = record.status if record is not None else ApprovalStatus.NEUTRAL
            adjusted = clamp_confidence(adjusted + APPROVAL_ADJUSTMENTS[status])

        return adjusted
