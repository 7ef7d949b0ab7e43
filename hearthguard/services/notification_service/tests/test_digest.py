"""Tests for DigestQueueManager.

Covers consolidation per guardian and subject, idempotent re-runs,
partial failure and release of quiet-hours deferrals.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from hearthguard.shared.models import (
    DeliveryOutcome,
    DeliveryStatus,
    DigestQueueItem,
    DigestType,
    NotificationHistoryEntry,
    NotificationPayload,
    PendingDelivery,
    Severity,
)
from hearthguard.shared.database import RepositoryError
from hearthguard.shared.utils import configure_pii_salt
from hearthguard.services.notification_service.config import NotificationConfig
from hearthguard.services.notification_service.delivery import NotificationSender, SnsPushSender
from hearthguard.services.notification_service.digest import DigestQueueManager
from hearthguard.services.notification_service.repositories import (
    DigestQueueRepository,
    NotificationHistoryRepository,
    PendingDeliveryRepository,
)

NOW = datetime(2026, 3, 2, 13, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def sender():
    sender = MagicMock(spec=NotificationSender)
    sender.send.return_value = DeliveryOutcome.sent()
    return sender


@pytest.fixture
def queue():
    return DigestQueueRepository()


@pytest.fixture
def history():
    return NotificationHistoryRepository()


@pytest.fixture
def pending():
    return PendingDeliveryRepository()


@pytest.fixture
def manager(sender, queue, history, pending):
    return DigestQueueManager(
        sender=sender,
        digest_queue=queue,
        history=history,
        pending=pending,
        clock=lambda: NOW,
    )


def _enqueue(queue, flag_id, guardian_id="guardian_a", subject_id="child_1",
             severity=Severity.MEDIUM, digest_type=DigestType.HOURLY,
             content_event_id=None, minutes_ago=30):
    return queue.enqueue(DigestQueueItem(
        guardian_id=guardian_id,
        subject_id=subject_id,
        flag_id=flag_id,
        severity=severity,
        digest_type=digest_type,
        queued_at=NOW - timedelta(minutes=minutes_ago),
        content_event_id=content_event_id,
    ))


class TestHourlyFlush:

    def test_consolidates_group_into_one_notification(self, manager, queue, sender, history):
        _enqueue(queue, "flag_1", severity=Severity.LOW)
        _enqueue(queue, "flag_2", severity=Severity.MEDIUM)
        _enqueue(queue, "flag_3", severity=Severity.LOW)

        report = manager.flush_hourly()

        assert report.groups_sent == 1
        assert report.items_processed == 3
        sender.send.assert_called_once()
        recipient, payload = sender.send.call_args[0]
        assert recipient == "guardian_a"
        assert payload.title == "Concern digest"
        assert payload.body == "3 new flags, highest: medium"
        assert payload.deep_link_target == "/flags?subject=child_1"
        for flag_id in ("flag_1", "flag_2", "flag_3"):
            assert history.has_sent("guardian_a", flag_id)

    def test_groups_by_guardian_and_subject(self, manager, queue, sender):
        _enqueue(queue, "flag_1", guardian_id="guardian_a", subject_id="child_1")
        _enqueue(queue, "flag_2", guardian_id="guardian_a", subject_id="child_2")
        _enqueue(queue, "flag_3", guardian_id="guardian_b", subject_id="child_1")

        report = manager.flush_hourly()

        assert report.groups_sent == 3
        assert sender.send.call_count == 3

    def test_single_flag_body(self, manager, queue, sender):
        _enqueue(queue, "flag_1")
        manager.flush_hourly()
        assert sender.send.call_args[0][1].body == "1 new flag, highest: medium"

    def test_hourly_ignores_daily_items(self, manager, queue, sender):
        _enqueue(queue, "flag_1", digest_type=DigestType.DAILY)

        report = manager.flush_hourly()

        assert report.groups_sent == 0
        sender.send.assert_not_called()
        assert len(queue.pending([DigestType.DAILY])) == 1

    def test_empty_queue(self, manager, sender):
        report = manager.flush_hourly()
        assert report.to_dict() == {
            "groups_sent": 0,
            "groups_failed": 0,
            "items_processed": 0,
            "duplicates_dropped": 0,
        }
        sender.send.assert_not_called()


class TestDailyFlush:

    def test_daily_sweeps_leftover_hourly_items(self, manager, queue, sender):
        _enqueue(queue, "flag_1", severity=Severity.LOW, digest_type=DigestType.DAILY)
        _enqueue(queue, "flag_2", severity=Severity.MEDIUM, digest_type=DigestType.HOURLY)

        report = manager.flush_daily()

        assert report.groups_sent == 1
        assert report.items_processed == 2
        assert sender.send.call_args[0][1].body == "2 new flags, highest: medium"
        assert queue.pending([DigestType.HOURLY, DigestType.DAILY]) == []


class TestIdempotence:
    """Re-running a flush never sends the same flag twice."""

    def test_second_run_sends_nothing(self, manager, queue, sender):
        _enqueue(queue, "flag_1")
        _enqueue(queue, "flag_2")

        manager.flush_hourly()
        second = manager.flush_hourly()

        assert sender.send.call_count == 1
        assert second.groups_sent == 0
        assert second.items_processed == 0

    def test_item_for_already_sent_flag_is_dropped(self, manager, queue, sender, history):
        history.append(NotificationHistoryEntry(
            guardian_id="guardian_a",
            flag_id="flag_1",
            delivery_status=DeliveryStatus.SENT,
        ))
        _enqueue(queue, "flag_1")

        report = manager.flush_hourly()

        sender.send.assert_not_called()
        assert report.duplicates_dropped == 1
        assert report.items_processed == 1
        assert queue.pending([DigestType.HOURLY]) == []

    def test_same_content_event_counted_once(self, manager, queue, sender):
        _enqueue(queue, "flag_1", content_event_id="cap_1")
        _enqueue(queue, "flag_2", content_event_id="cap_1")
        _enqueue(queue, "flag_3", content_event_id="cap_2")

        report = manager.flush_hourly()

        assert report.duplicates_dropped == 1
        assert report.items_processed == 3
        assert sender.send.call_args[0][1].body == "2 new flags, highest: medium"

    def test_rerun_after_mark_processed_failure_sends_nothing(self, manager, queue, sender):
        _enqueue(queue, "flag_1")
        _enqueue(queue, "flag_2")
        mark_processed = queue.mark_processed
        calls = []

        def fail_once(item_ids, processed_at):
            calls.append(item_ids)
            if len(calls) == 1:
                raise RepositoryError("connection reset")
            return mark_processed(item_ids, processed_at)

        with patch.object(queue, "mark_processed", side_effect=fail_once):
            first = manager.flush_hourly()
            second = manager.flush_hourly()

        assert sender.send.call_count == 1
        assert first.groups_sent == 1
        assert first.groups_failed == 0
        assert second.groups_sent == 0
        assert second.duplicates_dropped == 2
        assert queue.pending([DigestType.HOURLY]) == []

    def test_rerun_covers_merged_content_event(self, manager, queue, sender, history):
        _enqueue(queue, "flag_1", content_event_id="cap_1")
        _enqueue(queue, "flag_2", content_event_id="cap_1")

        with patch.object(queue, "mark_processed", side_effect=RepositoryError("db down")):
            manager.flush_hourly()
        manager.flush_hourly()

        assert sender.send.call_count == 1
        assert history.has_sent("guardian_a", "flag_2")


class TestPartialFailure:
    """A failed group stays queued; other groups still complete."""

    def test_failed_send_keeps_items_queued(self, manager, queue, sender, history):
        _enqueue(queue, "flag_1", guardian_id="guardian_a")
        _enqueue(queue, "flag_2", guardian_id="guardian_b")

        def send(recipient_id, payload):
            if recipient_id == "guardian_a":
                return DeliveryOutcome.failed("EndpointDisabled")
            return DeliveryOutcome.sent()

        sender.send.side_effect = send

        report = manager.flush_hourly()

        assert report.groups_sent == 1
        assert report.groups_failed == 1
        remaining = queue.pending([DigestType.HOURLY])
        assert [item.flag_id for item in remaining] == ["flag_1"]
        failed = history.list_for_guardian("guardian_a")[0]
        assert failed.delivery_status == DeliveryStatus.FAILED
        assert failed.flag_id is None

    def test_failed_group_retried_next_run(self, manager, queue, sender):
        _enqueue(queue, "flag_1")
        sender.send.return_value = DeliveryOutcome.failed("Throttled")
        manager.flush_hourly()

        sender.send.return_value = DeliveryOutcome.sent()
        report = manager.flush_hourly()

        assert report.groups_sent == 1
        assert queue.pending([DigestType.HOURLY]) == []

    def test_exception_in_one_group_isolated(self, manager, queue, sender):
        _enqueue(queue, "flag_1", guardian_id="guardian_a")
        _enqueue(queue, "flag_2", guardian_id="guardian_b")

        def send(recipient_id, payload):
            if recipient_id == "guardian_a":
                raise RuntimeError("unexpected")
            return DeliveryOutcome.sent()

        sender.send.side_effect = send

        report = manager.flush_hourly()

        assert report.groups_failed == 1
        assert report.groups_sent == 1


class TestReleaseDeferred:

    def _defer(self, pending, flag_id="flag_1", deliver_at=NOW):
        return pending.add(PendingDelivery(
            guardian_id="guardian_a",
            subject_id="child_1",
            flag_id=flag_id,
            severity=Severity.MEDIUM,
            payload=NotificationPayload(
                title="New medium concern flagged",
                body="A violence concern was flagged for review.",
                deep_link_target=f"/flags/{flag_id}",
            ),
            deliver_at=deliver_at,
        ))

    def test_due_delivery_sent(self, manager, pending, sender, history):
        self._defer(pending)

        report = manager.release_deferred()

        assert report.delivered == 1
        assert sender.send.call_args[0][1].deep_link_target == "/flags/flag_1"
        assert history.has_sent("guardian_a", "flag_1")
        assert pending.due(NOW) == []

    def test_not_yet_due_is_held(self, manager, pending, sender):
        self._defer(pending, deliver_at=NOW + timedelta(hours=1))

        report = manager.release_deferred()

        assert report.delivered == 0
        sender.send.assert_not_called()

    def test_failed_release_stays_pending(self, manager, pending, sender):
        self._defer(pending)
        sender.send.return_value = DeliveryOutcome.failed("EndpointDisabled")

        report = manager.release_deferred()

        assert report.failed == 1
        assert len(pending.due(NOW)) == 1

    def test_already_sent_is_not_resent(self, manager, pending, sender, history):
        self._defer(pending)
        history.append(NotificationHistoryEntry(
            guardian_id="guardian_a",
            flag_id="flag_1",
            delivery_status=DeliveryStatus.SENT,
        ))

        report = manager.release_deferred()

        assert report.already_sent == 1
        sender.send.assert_not_called()
        assert pending.due(NOW) == []


class TestFromConfig:

    def test_builds_sns_sender(self):
        manager = DigestQueueManager.from_config(NotificationConfig(
            sns_topic_arn="arn:aws:sns:us-east-1:123456789012:push",
            push_enabled=False,
            digest_batch_limit=50,
        ))

        assert isinstance(manager.sender, SnsPushSender)
        assert manager.sender.enabled is False
        assert manager.batch_limit == 50
        assert manager.digest_queue.uses_memory
