"""Per-guardian routing of a created flag.

Routing table (by severity, exhaustively):
- critical: immediate if ``critical_enabled``, bypassing quiet hours; else skip
- medium: ``immediate`` -> immediate subject to quiet hours,
          ``digest`` -> hourly digest, ``off`` -> skip
- low: daily digest if ``low_enabled``; else skip

Each guardian is planned from their own preference only. A failure while
routing one guardian is recorded in history and never affects another
guardian or propagates to the caller.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from hearthguard.shared.models import (
    DeliveryOutcome,
    DigestQueueItem,
    DigestType,
    Flag,
    GuardianNotificationPreference,
    MediumMode,
    NotificationHistoryEntry,
    PendingDelivery,
    Severity,
    utcnow,
)
from hearthguard.shared.utils import hash_pii
from .delivery import NotificationSender, build_flag_payload
from .quiet_hours import QuietHoursEvaluator
from .repositories import (
    DigestQueueRepository,
    NotificationHistoryRepository,
    PendingDeliveryRepository,
    PreferenceRepository,
)

logger = logging.getLogger(__name__)


class RoutingAction(Enum):
    IMMEDIATE = "immediate"
    DEFERRED = "deferred"
    DIGEST_HOURLY = "digest_hourly"
    DIGEST_DAILY = "digest_daily"
    SKIP = "skip"


@dataclass(frozen=True)
class DeliveryPlan:
    """What to do for one guardian; ``deliver_at`` is set only when deferred."""
    action: RoutingAction
    deliver_at: Optional[datetime] = None


@dataclass(frozen=True)
class RoutingResult:
    """Per-guardian routing outcome.

    ``action`` is None when routing failed before a plan was made.
    """
    guardian_id: str
    action: Optional[RoutingAction]
    outcome: Optional[DeliveryOutcome] = None


_quiet_hours = QuietHoursEvaluator()


def plan_delivery(
    flag: Flag,
    preference: GuardianNotificationPreference,
    now: datetime,
    quiet_hours: QuietHoursEvaluator = _quiet_hours,
) -> DeliveryPlan:
    """Plan delivery of one flag to one guardian. Pure function of its inputs."""
    if flag.severity == Severity.CRITICAL:
        if preference.critical_enabled:
            return DeliveryPlan(RoutingAction.IMMEDIATE)
        return DeliveryPlan(RoutingAction.SKIP)

    if flag.severity == Severity.MEDIUM:
        if preference.medium_mode == MediumMode.IMMEDIATE:
            if quiet_hours.is_quiet(preference, now, flag.severity):
                return DeliveryPlan(
                    RoutingAction.DEFERRED,
                    deliver_at=quiet_hours.window_end(preference, now),
                )
            return DeliveryPlan(RoutingAction.IMMEDIATE)
        if preference.medium_mode == MediumMode.DIGEST:
            return DeliveryPlan(RoutingAction.DIGEST_HOURLY)
        return DeliveryPlan(RoutingAction.SKIP)

    if flag.severity == Severity.LOW:
        if preference.low_enabled:
            return DeliveryPlan(RoutingAction.DIGEST_DAILY)
        return DeliveryPlan(RoutingAction.SKIP)

    raise ValueError(f"Unhandled severity: {flag.severity}")


class NotificationRoutingOrchestrator:
    """Routes each created flag to every guardian of the family."""

    def __init__(
        self,
        sender: NotificationSender,
        preferences: Optional[PreferenceRepository] = None,
        digest_queue: Optional[DigestQueueRepository] = None,
        pending: Optional[PendingDeliveryRepository] = None,
        history: Optional[NotificationHistoryRepository] = None,
        quiet_hours: Optional[QuietHoursEvaluator] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sender = sender
        self.preferences = preferences or PreferenceRepository()
        self.digest_queue = digest_queue or DigestQueueRepository()
        self.pending = pending or PendingDeliveryRepository()
        self.history = history or NotificationHistoryRepository()
        self.quiet_hours = quiet_hours or QuietHoursEvaluator()
        self._clock = clock

    def route_for_family(self, flag: Flag) -> Dict[str, RoutingResult]:
        """Route a flag to every guardian registered for its family.

        A guardian without a stored preference is notified of nothing. A
        guardian whose preference cannot be read gets a failed result; the
        others are still routed.
        """
        try:
            guardian_ids = self.preferences.guardians_for_family(flag.family_id)
        except Exception as e:
            logger.error(
                "GUARDIAN_LOOKUP_FAILED",
                extra={
                    "flag_id": flag.id,
                    "family_id_hash": hash_pii(flag.family_id),
                    "error_type": type(e).__name__,
                }
            )
            return {}

        preferences = []
        failed: Dict[str, RoutingResult] = {}
        for guardian_id in guardian_ids:
            try:
                preference = self.preferences.get(guardian_id)
            except Exception as e:
                failed[guardian_id] = self._fail(flag, guardian_id, e)
                continue
            preferences.append(
                preference or GuardianNotificationPreference.notify_nothing(guardian_id)
            )

        results = self.route(flag, preferences)
        results.update(failed)
        return results

    def route(
        self,
        flag: Flag,
        guardians: Iterable[GuardianNotificationPreference],
    ) -> Dict[str, RoutingResult]:
        """Route one flag to each guardian independently. Never raises."""
        now = self._clock()
        results: Dict[str, RoutingResult] = {}
        for preference in guardians:
            guardian_id = preference.guardian_id
            try:
                results[guardian_id] = self._route_one(flag, preference, now)
            except Exception as e:
                results[guardian_id] = self._fail(flag, guardian_id, e)

        logger.info(
            "FLAG_ROUTED",
            extra={
                "flag_id": flag.id,
                "severity": flag.severity.value,
                "guardian_count": len(results),
            }
        )
        return results

    def _fail(self, flag: Flag, guardian_id: str, error: Exception) -> RoutingResult:
        logger.error(
            "NOTIFICATION_ROUTING_FAILED",
            extra={
                "flag_id": flag.id,
                "guardian_id_hash": hash_pii(guardian_id),
                "error_type": type(error).__name__,
            }
        )
        outcome = DeliveryOutcome.failed(f"routing_error: {type(error).__name__}")
        self._record(guardian_id, flag.id, outcome)
        return RoutingResult(guardian_id, action=None, outcome=outcome)

    def _route_one(
        self,
        flag: Flag,
        preference: GuardianNotificationPreference,
        now: datetime,
    ) -> RoutingResult:
        guardian_id = preference.guardian_id
        plan = plan_delivery(flag, preference, now, self.quiet_hours)

        if plan.action == RoutingAction.SKIP:
            return RoutingResult(guardian_id, plan.action)

        if plan.action in (RoutingAction.DIGEST_HOURLY, RoutingAction.DIGEST_DAILY):
            digest_type = (
                DigestType.HOURLY if plan.action == RoutingAction.DIGEST_HOURLY
                else DigestType.DAILY
            )
            self.digest_queue.enqueue(DigestQueueItem(
                guardian_id=guardian_id,
                subject_id=flag.subject_id,
                flag_id=flag.id,
                severity=flag.severity,
                digest_type=digest_type,
                queued_at=now,
                content_event_id=flag.content_event_id,
            ))
            return RoutingResult(guardian_id, plan.action)

        payload = build_flag_payload(flag)

        if plan.action == RoutingAction.DEFERRED:
            self.pending.add(PendingDelivery(
                guardian_id=guardian_id,
                subject_id=flag.subject_id,
                flag_id=flag.id,
                severity=flag.severity,
                payload=payload,
                deliver_at=plan.deliver_at,
            ))
            outcome = DeliveryOutcome.deferred(plan.deliver_at)
            self._record(guardian_id, flag.id, outcome)
            logger.info(
                "NOTIFICATION_DEFERRED",
                extra={
                    "flag_id": flag.id,
                    "guardian_id_hash": hash_pii(guardian_id),
                    "deliver_at": plan.deliver_at.isoformat(),
                }
            )
            return RoutingResult(guardian_id, plan.action, outcome)

        outcome = self.sender.send(guardian_id, payload)
        self._record(guardian_id, flag.id, outcome)
        if not outcome.ok:
            logger.warning(
                "NOTIFICATION_DELIVERY_FAILED",
                extra={
                    "flag_id": flag.id,
                    "guardian_id_hash": hash_pii(guardian_id),
                    "reason": outcome.reason,
                }
            )
        return RoutingResult(guardian_id, plan.action, outcome)

    def _record(self, guardian_id: str, flag_id: str, outcome: DeliveryOutcome) -> None:
        try:
            self.history.append(NotificationHistoryEntry(
                guardian_id=guardian_id,
                flag_id=flag_id,
                delivery_status=outcome.status,
                sent_at=self._clock(),
                reason=outcome.reason,
            ))
        except Exception as e:
            logger.error(
                "NOTIFICATION_HISTORY_WRITE_FAILED",
                extra={
                    "flag_id": flag_id,
                    "guardian_id_hash": hash_pii(guardian_id),
                    "status": outcome.status.value,
                    "error_type": type(e).__name__,
                }
            )
