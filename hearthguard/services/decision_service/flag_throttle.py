"""Daily alert throttling per monitored subject.

Throttling limits how many flags are routed to guardians, never how many are
created: a throttled flag is persisted and visible in the dashboard, it just
does not notify. Critical flags are never throttled.

At the daily cap, a more severe flag may still alert by bumping one alert of
lower severity sent earlier that day.

Counts are kept in-process and approximate under concurrency. A race can let
one extra alert through.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, Optional, Set, Tuple

from hearthguard.shared.models import Flag, Severity, utcnow
from hearthguard.shared.utils import hash_pii
from .config import THROTTLE_LIMITS, ThrottleLevel
from .config_repository import CalibrationRepository

logger = logging.getLogger(__name__)


@dataclass
class ThrottleState:
    """Alerts sent for one (family, subject) on one UTC day."""
    family_id: str
    subject_id: str
    day: date
    alerts_sent: int = 0
    throttled: int = 0
    alerted_flag_ids: Set[str] = field(default_factory=set)
    severity_counts: Dict[Severity, int] = field(
        default_factory=lambda: {severity: 0 for severity in Severity}
    )

    def lower_severity_alerted(self, severity: Severity) -> Optional[Severity]:
        """Least severe alerted severity below ``severity``, if any."""
        candidates = [
            s for s, count in self.severity_counts.items()
            if count > 0 and s.rank < severity.rank
        ]
        return min(candidates, key=lambda s: s.rank) if candidates else None


class FlagThrottle:
    """Decides whether a created flag is routed to guardians."""

    def __init__(
        self,
        repository: Optional[CalibrationRepository] = None,
        default_level: ThrottleLevel = ThrottleLevel.STANDARD,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repository = repository or CalibrationRepository()
        self.default_level = default_level
        self._clock = clock
        self._lock = threading.Lock()
        self._states: Dict[Tuple[str, str], ThrottleState] = {}
        self._current_day: Optional[date] = None

    def level_for(self, family_id: str) -> ThrottleLevel:
        try:
            level = self.repository.get_throttle_level(family_id)
        except Exception as e:
            logger.warning(
                "THROTTLE_LEVEL_LOOKUP_FAILED",
                extra={"family_id_hash": hash_pii(family_id), "error_type": type(e).__name__}
            )
            return self.default_level
        return level or self.default_level

    def state_for(self, family_id: str, subject_id: str) -> ThrottleState:
        """Today's state for a subject, created on first use."""
        today = self._roll_day()
        key = (family_id, subject_id)
        state = self._states.get(key)
        if state is None:
            state = ThrottleState(family_id=family_id, subject_id=subject_id, day=today)
            self._states[key] = state
        return state

    def tracked_subjects(self) -> int:
        with self._lock:
            return len(self._states)

    def should_alert(self, flag: Flag) -> bool:
        """Read-only decision for a flag; see ``admit`` to also record it."""
        level = self.level_for(flag.family_id)
        with self._lock:
            today = self._roll_day()
            state = self._states.get((flag.family_id, flag.subject_id)) or ThrottleState(
                family_id=flag.family_id, subject_id=flag.subject_id, day=today,
            )
            return self._decide(flag, level, state)[0]

    def admit(self, flag: Flag) -> bool:
        """Decide and record in one step.

        Returns:
            True if the flag should be routed to guardians
        """
        level = self.level_for(flag.family_id)
        with self._lock:
            state = self.state_for(flag.family_id, flag.subject_id)
            allowed, bumped = self._decide(flag, level, state)
            if not allowed:
                if flag.id not in state.alerted_flag_ids:
                    state.throttled += 1
                    logger.info(
                        "FLAG_THROTTLED",
                        extra={
                            "flag_id": flag.id,
                            "severity": flag.severity.value,
                            "throttle_level": level.value,
                            "throttled_today": state.throttled,
                        }
                    )
                return False

            state.alerted_flag_ids.add(flag.id)
            state.severity_counts[flag.severity] += 1
            if bumped is not None:
                state.severity_counts[bumped] -= 1
                logger.info(
                    "FLAG_THROTTLE_BUMPED",
                    extra={
                        "flag_id": flag.id,
                        "severity": flag.severity.value,
                        "bumped_severity": bumped.value,
                    }
                )
            else:
                state.alerts_sent += 1
            return True

    def throttled_count(self, family_id: str, subject_id: str) -> int:
        with self._lock:
            self._roll_day()
            state = self._states.get((family_id, subject_id))
            return state.throttled if state else 0

    def _roll_day(self) -> date:
        """Drop every subject's state once the UTC day changes."""
        today = self._clock().date()
        if today != self._current_day:
            if self._states:
                logger.info("THROTTLE_STATE_RESET", extra={"subjects": len(self._states)})
            self._states = {key: s for key, s in self._states.items() if s.day == today}
            self._current_day = today
        return today

    def _decide(
        self,
        flag: Flag,
        level: ThrottleLevel,
        state: ThrottleState,
    ) -> Tuple[bool, Optional[Severity]]:
        if flag.id in state.alerted_flag_ids:
            return False, None
        if flag.severity == Severity.CRITICAL:
            return True, None

        limit = THROTTLE_LIMITS[level]
        if limit is None or state.alerts_sent < limit:
            return True, None

        bumped = state.lower_severity_alerted(flag.severity)
        if bumped is not None:
            return True, bumped
        return False, None
