"""Shared domain models for the HearthGuard engine."""
from .calibration import (
    ApprovalStatus,
    AppApprovalRecord,
    FamilyBiasProfile,
    FamilySensitivityConfig,
    SensitivityLevel,
)
from .concern import (
    ConcernCandidate,
    DecisionOutcome,
    Flag,
    FlagDecision,
    Severity,
    utcnow,
)
from .notification import (
    DeliveryOutcome,
    DeliveryStatus,
    DigestQueueItem,
    DigestType,
    GuardianNotificationPreference,
    MediumMode,
    NotificationHistoryEntry,
    NotificationPayload,
    PendingDelivery,
)

__all__ = [
    "ApprovalStatus",
    "AppApprovalRecord",
    "FamilyBiasProfile",
    "FamilySensitivityConfig",
    "SensitivityLevel",
    "ConcernCandidate",
    "DecisionOutcome",
    "Flag",
    "FlagDecision",
    "Severity",
    "utcnow",
    "DeliveryOutcome",
    "DeliveryStatus",
    "DigestQueueItem",
    "DigestType",
    "GuardianNotificationPreference",
    "MediumMode",
    "NotificationHistoryEntry",
    "NotificationPayload",
    "PendingDelivery",
]
