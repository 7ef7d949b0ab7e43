"""Notification routing models.

GuardianNotificationPreference is strictly per guardian: nothing in the
routing path may read one guardian's preference while computing another
guardian's outcome.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
import uuid

from .concern import Severity, utcnow

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_clock_time(value: str) -> int:
    """Parse an ``HH:MM`` string into minutes after midnight.

    Raises:
        ValueError: If the value is not a valid 24h time
    """
    match = _TIME_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Time must be in HH:MM format, got {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


class MediumMode(Enum):
    """Delivery mode for medium-severity flags."""
    IMMEDIATE = "immediate"
    DIGEST = "digest"
    OFF = "off"


class DigestType(Enum):
    HOURLY = "hourly"
    DAILY = "daily"


class DeliveryStatus(Enum):
    SENT = "sent"
    FAILED = "failed"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class GuardianNotificationPreference:
    """One guardian's notification preferences.

    Quiet hours are active only when both start and end are set. Weekend
    windows override weekday ones on Saturday and Sunday when set.
    """
    guardian_id: str
    critical_enabled: bool = True
    medium_mode: MediumMode = MediumMode.DIGEST
    low_enabled: bool = False
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    quiet_hours_weekend_start: Optional[str] = None
    quiet_hours_weekend_end: Optional[str] = None
    timezone: str = "UTC"

    def __post_init__(self):
        if not self.guardian_id:
            raise ValueError("guardian_id is required")
        for name in (
            "quiet_hours_start",
            "quiet_hours_end",
            "quiet_hours_weekend_start",
            "quiet_hours_weekend_end",
        ):
            value = getattr(self, name)
            if value is not None:
                parse_clock_time(value)
        if (self.quiet_hours_start is None) != (self.quiet_hours_end is None):
            raise ValueError("Quiet hours need both start and end")
        if (self.quiet_hours_weekend_start is None) != (self.quiet_hours_weekend_end is None):
            raise ValueError("Weekend quiet hours need both start and end")

    @classmethod
    def notify_nothing(cls, guardian_id: str) -> "GuardianNotificationPreference":
        """Default used when a guardian has no stored preference."""
        return cls(
            guardian_id=guardian_id,
            critical_enabled=False,
            medium_mode=MediumMode.OFF,
            low_enabled=False,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GuardianNotificationPreference":
        return cls(
            guardian_id=data.get("guardian_id", ""),
            critical_enabled=bool(data.get("critical_enabled", True)),
            medium_mode=MediumMode(data.get("medium_mode", MediumMode.DIGEST.value)),
            low_enabled=bool(data.get("low_enabled", False)),
            quiet_hours_start=data.get("quiet_hours_start"),
            quiet_hours_end=data.get("quiet_hours_end"),
            quiet_hours_weekend_start=data.get("quiet_hours_weekend_start"),
            quiet_hours_weekend_end=data.get("quiet_hours_weekend_end"),
            timezone=data.get("timezone") or "UTC",
        )


@dataclass(frozen=True)
class NotificationPayload:
    """Transport-agnostic notification content."""
    title: str
    body: str
    deep_link_target: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "title": self.title,
            "body": self.body,
            "deep_link_target": self.deep_link_target,
        }


@dataclass(frozen=True)
class DeliveryOutcome:
    """Explicit result of a delivery attempt: sent, failed or deferred."""
    status: DeliveryStatus
    reason: Optional[str] = None
    deferred_until: Optional[datetime] = None

    @classmethod
    def sent(cls) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.SENT)

    @classmethod
    def failed(cls, reason: str) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.FAILED, reason=reason)

    @classmethod
    def deferred(cls, until: datetime) -> "DeliveryOutcome":
        return cls(status=DeliveryStatus.DEFERRED, deferred_until=until)

    @property
    def ok(self) -> bool:
        return self.status == DeliveryStatus.SENT


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


@dataclass(frozen=True)
class DigestQueueItem:
    """A flag waiting for a scheduled digest flush."""
    guardian_id: str
    subject_id: str
    flag_id: str
    severity: Severity
    digest_type: DigestType
    queued_at: datetime = field(default_factory=utcnow)
    content_event_id: Optional[str] = None
    id: str = field(default_factory=lambda: _new_id("dq"))
    processed_at: Optional[datetime] = None

    @property
    def dedup_key(self) -> str:
        """Key identifying the underlying content event."""
        return self.content_event_id or self.flag_id


@dataclass(frozen=True)
class PendingDelivery:
    """An immediate delivery held back by quiet hours."""
    guardian_id: str
    subject_id: str
    flag_id: str
    severity: Severity
    payload: NotificationPayload
    deliver_at: datetime
    id: str = field(default_factory=lambda: _new_id("pd"))
    delivered_at: Optional[datetime] = None


@dataclass(frozen=True)
class NotificationHistoryEntry:
    """Append-only delivery audit record."""
    guardian_id: str
    delivery_status: DeliveryStatus
    flag_id: Optional[str] = None
    sent_at: datetime = field(default_factory=utcnow)
    reason: Optional[str] = None
    id: str = field(default_factory=lambda: _new_id("nh"))
