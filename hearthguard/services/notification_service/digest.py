"""Scheduled digest flushes and release of quiet-hours deferrals.

These jobs read only the persisted queue tables, so they can run in any
process and be re-run safely:
- queue items are marked processed only after a successful send
- an item whose flag was already sent to the guardian is dropped, not resent
- a failed group stays queued for the next run
"""
import logging
from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from hearthguard.shared.models import (
    DeliveryOutcome,
    DigestQueueItem,
    DigestType,
    NotificationHistoryEntry,
    utcnow,
)
from hearthguard.shared.database import ConnectionManager
from hearthguard.shared.utils import hash_pii
from .config import NotificationConfig
from .delivery import NotificationSender, SnsPushSender, build_digest_payload
from .repositories import (
    DigestQueueRepository,
    NotificationHistoryRepository,
    PendingDeliveryRepository,
)

logger = logging.getLogger(__name__)


@dataclass
class FlushReport:
    groups_sent: int = 0
    groups_failed: int = 0
    items_processed: int = 0
    duplicates_dropped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class ReleaseReport:
    delivered: int = 0
    failed: int = 0
    already_sent: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class DigestQueueManager:
    """Consolidates queued flags into one notification per guardian and subject."""

    def __init__(
        self,
        sender: NotificationSender,
        digest_queue: Optional[DigestQueueRepository] = None,
        history: Optional[NotificationHistoryRepository] = None,
        pending: Optional[PendingDeliveryRepository] = None,
        batch_limit: int = 500,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sender = sender
        self.digest_queue = digest_queue or DigestQueueRepository()
        self.history = history or NotificationHistoryRepository()
        self.pending = pending or PendingDeliveryRepository()
        self.batch_limit = batch_limit
        self._clock = clock

    @classmethod
    def from_config(
        cls,
        config: NotificationConfig,
        connection_manager: Optional[ConnectionManager] = None,
    ) -> "DigestQueueManager":
        return cls(
            sender=SnsPushSender(
                topic_arn=config.sns_topic_arn,
                enabled=config.push_enabled,
                region=config.region,
            ),
            digest_queue=DigestQueueRepository(connection_manager),
            history=NotificationHistoryRepository(connection_manager),
            pending=PendingDeliveryRepository(connection_manager),
            batch_limit=config.digest_batch_limit,
        )

    def flush_hourly(self) -> FlushReport:
        return self._flush((DigestType.HOURLY,), job="hourly")

    def flush_daily(self) -> FlushReport:
        """Daily flush; also sweeps hourly items a missed hourly run left behind."""
        return self._flush((DigestType.DAILY, DigestType.HOURLY), job="daily")

    def release_deferred(self, now: Optional[datetime] = None) -> ReleaseReport:
        """Send immediate notifications whose quiet window has ended."""
        now = now or self._clock()
        report = ReleaseReport()

        for delivery in self.pending.due(now):
            try:
                if self.history.has_sent(delivery.guardian_id, delivery.flag_id):
                    self.pending.mark_delivered(delivery.id, now)
                    report.already_sent += 1
                    continue

                outcome = self.sender.send(delivery.guardian_id, delivery.payload)
                self._record(delivery.guardian_id, delivery.flag_id, outcome)
                if outcome.ok:
                    self.pending.mark_delivered(delivery.id, now)
                    report.delivered += 1
                else:
                    report.failed += 1
            except Exception as e:
                logger.error(
                    "DEFERRED_DELIVERY_FAILED",
                    extra={
                        "delivery_id": delivery.id,
                        "guardian_id_hash": hash_pii(delivery.guardian_id),
                        "error_type": type(e).__name__,
                    }
                )
                report.failed += 1

        logger.info("DEFERRED_DELIVERIES_RELEASED", extra=report.to_dict())
        return report

    def _flush(self, digest_types: Iterable[DigestType], job: str) -> FlushReport:
        report = FlushReport()
        items = self.digest_queue.pending(digest_types, limit=self.batch_limit)

        for (guardian_id, subject_id), group in self._group(items).items():
            try:
                self._flush_group(guardian_id, subject_id, group, report)
            except Exception as e:
                logger.error(
                    "DIGEST_GROUP_FAILED",
                    extra={
                        "job": job,
                        "guardian_id_hash": hash_pii(guardian_id),
                        "item_count": len(group),
                        "error_type": type(e).__name__,
                    }
                )
                report.groups_failed += 1

        logger.info("DIGEST_FLUSHED", extra={"job": job, **report.to_dict()})
        return report

    def _flush_group(
        self,
        guardian_id: str,
        subject_id: str,
        group: List[DigestQueueItem],
        report: FlushReport,
    ) -> None:
        now = self._clock()
        unique: "OrderedDict[str, DigestQueueItem]" = OrderedDict()
        covered: List[str] = []
        for item in group:
            if self.history.has_sent(guardian_id, item.flag_id):
                report.duplicates_dropped += 1
                continue
            covered.append(item.flag_id)
            if item.dedup_key in unique:
                report.duplicates_dropped += 1
                continue
            unique[item.dedup_key] = item

        item_ids = [item.id for item in group]
        if not unique:
            report.items_processed += self.digest_queue.mark_processed(item_ids, now)
            return

        payload = build_digest_payload(subject_id, [item.severity for item in unique.values()])
        outcome = self.sender.send(guardian_id, payload)

        if not outcome.ok:
            self._record(guardian_id, None, outcome)
            report.groups_failed += 1
            logger.warning(
                "DIGEST_DELIVERY_FAILED",
                extra={
                    "guardian_id_hash": hash_pii(guardian_id),
                    "item_count": len(group),
                    "reason": outcome.reason,
                }
            )
            return

        # History first: a rerun after a failed mark_processed must see these as sent
        for flag_id in dict.fromkeys(covered):
            self._record(guardian_id, flag_id, outcome)
        report.groups_sent += 1
        try:
            report.items_processed += self.digest_queue.mark_processed(item_ids, now)
        except Exception as e:
            # Items stay queued; the next run drops them via has_sent
            logger.error(
                "DIGEST_MARK_PROCESSED_FAILED",
                extra={
                    "guardian_id_hash": hash_pii(guardian_id),
                    "item_count": len(group),
                    "error_type": type(e).__name__,
                }
            )

    @staticmethod
    def _group(items: Iterable[DigestQueueItem]) -> "OrderedDict[Tuple[str, str], List[DigestQueueItem]]":
        groups: "OrderedDict[Tuple[str, str], List[DigestQueueItem]]" = OrderedDict()
        for item in items:
            groups.setdefault((item.guardian_id, item.subject_id), []).append(item)
        return groups

    def _record(self, guardian_id: str, flag_id: Optional[str], outcome: DeliveryOutcome) -> None:
        self.history.append(NotificationHistoryEntry(
            guardian_id=guardian_id,
            flag_id=flag_id,
            delivery_status=outcome.status,
            sent_at=self._clock(),
            reason=outcome.reason,
        ))
