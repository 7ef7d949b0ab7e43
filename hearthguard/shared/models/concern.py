"""Concern candidate and flag domain models.

A ConcernCandidate is the transient signal produced by the external
classifier. A Flag is the persisted, guardian-visible alert created when a
candidate passes decision gating. Neither model carries any field that could
describe why a candidate was suppressed.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class Severity(Enum):
    """Closed set of flag severities, assigned upstream by the classifier."""
    CRITICAL = "critical"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Ordering used for digests and throttling (higher is more severe)."""
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.CRITICAL: 3,
}


def _parse_confidence(value: Any) -> int:
    """Whole-number confidence from JSON; fractions and booleans are rejected."""
    if isinstance(value, bool):
        raise ValueError("Raw confidence must be a number, got a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise ValueError(f"Raw confidence must be a whole number, got {value!r}")


@dataclass(frozen=True)
class ConcernCandidate:
    """A single AI-flagged signal about monitored content.

    Consumed exactly once by the decision engine.
    """
    category: str
    raw_confidence: int
    severity: Severity
    family_id: str
    subject_id: str
    context_domain: Optional[str] = None
    context_text: Optional[str] = None
    app_identifier: Optional[str] = None
    content_event_id: Optional[str] = None

    def __post_init__(self):
        if not self.category:
            raise ValueError("Candidate category is required")
        if not self.family_id or not self.subject_id:
            raise ValueError("Candidate family_id and subject_id are required")
        if isinstance(self.raw_confidence, bool) or not isinstance(self.raw_confidence, int):
            raise ValueError(f"Raw confidence must be an integer, got {self.raw_confidence!r}")
        if not 0 <= self.raw_confidence <= 100:
            raise ValueError(
                f"Raw confidence must be 0-100, got {self.raw_confidence}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "ConcernCandidate":
        """Build a candidate from an upstream JSON payload."""
        return cls(
            category=data.get("category", ""),
            raw_confidence=_parse_confidence(data.get("raw_confidence")),
            severity=Severity(data.get("severity", "")),
            family_id=data.get("family_id", ""),
            subject_id=data.get("subject_id", ""),
            context_domain=data.get("context_domain"),
            context_text=data.get("context_text"),
            app_identifier=data.get("app_identifier"),
            content_event_id=data.get("content_event_id"),
        )


def generate_flag_id() -> str:
    return f"flag_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class Flag:
    """Immutable guardian-visible alert.

    Created exactly once per qualifying candidate.
    """
    id: str
    family_id: str
    subject_id: str
    category: str
    severity: Severity
    confidence: int
    created_at: datetime = field(default_factory=utcnow)
    content_event_id: Optional[str] = None

    def __post_init__(self):
        if not 0 <= self.confidence <= 100:
            raise ValueError(f"Confidence must be 0-100, got {self.confidence}")

    @classmethod
    def from_candidate(
        cls,
        candidate: ConcernCandidate,
        confidence: int,
        created_at: Optional[datetime] = None,
    ) -> "Flag":
        return cls(
            id=generate_flag_id(),
            family_id=candidate.family_id,
            subject_id=candidate.subject_id,
            category=candidate.category,
            severity=candidate.severity,
            confidence=confidence,
            created_at=created_at or utcnow(),
            content_event_id=candidate.content_event_id,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "family_id": self.family_id,
            "subject_id": self.subject_id,
            "category": self.category,
            "severity": self.severity.value,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat(),
            "content_event_id": self.content_event_id,
        }


class DecisionOutcome(Enum):
    """Result of gating a candidate."""
    CREATED = "created"
    DISCARDED = "discarded"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True)
class FlagDecision:
    """Outcome of FlagDecisionEngine.decide.

    Only CREATED decisions carry a flag. SUPPRESSED decisions carry nothing
    else by construction.
    """
    outcome: DecisionOutcome
    flag: Optional[Flag] = None

    def __post_init__(self):
        if (self.outcome == DecisionOutcome.CREATED) != (self.flag is not None):
            raise ValueError("Only CREATED decisions carry a flag")

    @classmethod
    def created(cls, flag: Flag) -> "FlagDecision":
        return cls(outcome=DecisionOutcome.CREATED, flag=flag)

    @classmethod
    def discarded(cls) -> "FlagDecision":
        return cls(outcome=DecisionOutcome.DISCARDED)

    @classmethod
    def suppressed(cls) -> "FlagDecision":
        return cls(outcome=DecisionOutcome.SUPPRESSED)

    @property
    def is_created(self) -> bool:
        return self.outcome == DecisionOutcome.CREATED
