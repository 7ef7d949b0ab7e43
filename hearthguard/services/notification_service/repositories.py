"""Notification persistence: digest queue, deferred deliveries, history and
guardian preferences.

The digest queue and pending-delivery tables are the only channel between
real-time routing and the scheduled jobs. History is append-only.
"""
import json
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from hearthguard.shared.database import BaseRepository, ConnectionManager
from hearthguard.shared.models import (
    DeliveryStatus,
    DigestQueueItem,
    DigestType,
    GuardianNotificationPreference,
    MediumMode,
    NotificationHistoryEntry,
    NotificationPayload,
    PendingDelivery,
    Severity,
)


class DigestQueueRepository(BaseRepository[DigestQueueItem]):
    """Flags waiting for an hourly or daily digest."""

    COLUMNS = (
        "id",
        "guardian_id",
        "subject_id",
        "flag_id",
        "severity",
        "digest_type",
        "queued_at",
        "content_event_id",
        "processed_at",
    )

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__("digest_queue", connection_manager)
        self._memory_store: Dict[str, DigestQueueItem] = {}

    def enqueue(self, item: DigestQueueItem) -> DigestQueueItem:
        if self.uses_memory:
            with self._lock:
                self._memory_store[item.id] = item
        else:
            self._insert(item)
        return item

    def pending(self, digest_types: Iterable[DigestType], limit: int = 500) -> List[DigestQueueItem]:
        """Unprocessed items of the given types, oldest first."""
        types = [t.value for t in digest_types]
        if self.uses_memory:
            with self._lock:
                items = [
                    item for item in self._memory_store.values()
                    if item.processed_at is None and item.digest_type.value in types
                ]
            return sorted(items, key=lambda item: item.queued_at)[:limit]
        return self._fetch(
            f"SELECT {', '.join(self.COLUMNS)} FROM digest_queue "
            "WHERE processed_at IS NULL AND digest_type = ANY(%s) "
            "ORDER BY queued_at LIMIT %s",
            (types, limit),
        )

    def mark_processed(self, item_ids: Sequence[str], processed_at: datetime) -> int:
        """Mark items processed. Already-processed items are left untouched."""
        if not item_ids:
            return 0
        if self.uses_memory:
            updated = 0
            with self._lock:
                for item_id in item_ids:
                    item = self._memory_store.get(item_id)
                    if item is not None and item.processed_at is None:
                        self._memory_store[item_id] = replace(item, processed_at=processed_at)
                        updated += 1
            return updated
        return self._execute(
            "UPDATE digest_queue SET processed_at = %s "
            "WHERE id = ANY(%s) AND processed_at IS NULL",
            (processed_at, list(item_ids)),
        )

    def _row_to_entity(self, row: Sequence[Any]) -> DigestQueueItem:
        values = dict(zip(self.COLUMNS, row))
        values["severity"] = Severity(values["severity"])
        values["digest_type"] = DigestType(values["digest_type"])
        return DigestQueueItem(**values)

    def _entity_to_params(self, entity: DigestQueueItem) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "guardian_id": entity.guardian_id,
            "subject_id": entity.subject_id,
            "flag_id": entity.flag_id,
            "severity": entity.severity.value,
            "digest_type": entity.digest_type.value,
            "queued_at": entity.queued_at,
            "content_event_id": entity.content_event_id,
            "processed_at": entity.processed_at,
        }


class PendingDeliveryRepository(BaseRepository[PendingDelivery]):
    """Immediate deliveries held until a guardian's quiet hours end."""

    COLUMNS = (
        "id",
        "guardian_id",
        "subject_id",
        "flag_id",
        "severity",
        "payload",
        "deliver_at",
        "delivered_at",
    )

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__("pending_deliveries", connection_manager)
        self._memory_store: Dict[str, PendingDelivery] = {}

    def add(self, delivery: PendingDelivery) -> PendingDelivery:
        if self.uses_memory:
            with self._lock:
                self._memory_store[delivery.id] = delivery
        else:
            self._insert(delivery)
        return delivery

    def due(self, now: datetime) -> List[PendingDelivery]:
        """Undelivered entries whose window has ended, earliest first."""
        if self.uses_memory:
            with self._lock:
                items = [
                    d for d in self._memory_store.values()
                    if d.delivered_at is None and d.deliver_at <= now
                ]
            return sorted(items, key=lambda d: d.deliver_at)
        return self._fetch(
            f"SELECT {', '.join(self.COLUMNS)} FROM pending_deliveries "
            "WHERE delivered_at IS NULL AND deliver_at <= %s ORDER BY deliver_at",
            (now,),
        )

    def mark_delivered(self, delivery_id: str, delivered_at: datetime) -> bool:
        if self.uses_memory:
            with self._lock:
                delivery = self._memory_store.get(delivery_id)
                if delivery is None or delivery.delivered_at is not None:
                    return False
                self._memory_store[delivery_id] = replace(delivery, delivered_at=delivered_at)
                return True
        return self._execute(
            "UPDATE pending_deliveries SET delivered_at = %s "
            "WHERE id = %s AND delivered_at IS NULL",
            (delivered_at, delivery_id),
        ) > 0

    def _row_to_entity(self, row: Sequence[Any]) -> PendingDelivery:
        values = dict(zip(self.COLUMNS, row))
        payload = values["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        values["payload"] = NotificationPayload(**payload)
        values["severity"] = Severity(values["severity"])
        return PendingDelivery(**values)

    def _entity_to_params(self, entity: PendingDelivery) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "guardian_id": entity.guardian_id,
            "subject_id": entity.subject_id,
            "flag_id": entity.flag_id,
            "severity": entity.severity.value,
            "payload": json.dumps(entity.payload.to_dict()),
            "deliver_at": entity.deliver_at,
            "delivered_at": entity.delivered_at,
        }


class NotificationHistoryRepository(BaseRepository[NotificationHistoryEntry]):
    """Append-only record of every delivery attempt."""

    COLUMNS = ("id", "guardian_id", "flag_id", "sent_at", "delivery_status", "reason")

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__("notification_history", connection_manager)
        self._memory_store: List[NotificationHistoryEntry] = []

    def append(self, entry: NotificationHistoryEntry) -> NotificationHistoryEntry:
        if self.uses_memory:
            with self._lock:
                self._memory_store.append(entry)
        else:
            self._insert(entry)
        return entry

    def has_sent(self, guardian_id: str, flag_id: str) -> bool:
        """True if this guardian was already notified about this flag."""
        if self.uses_memory:
            with self._lock:
                return any(
                    e.guardian_id == guardian_id
                    and e.flag_id == flag_id
                    and e.delivery_status == DeliveryStatus.SENT
                    for e in self._memory_store
                )
        rows = self._fetch(
            f"SELECT {', '.join(self.COLUMNS)} FROM notification_history "
            "WHERE guardian_id = %s AND flag_id = %s AND delivery_status = %s LIMIT 1",
            (guardian_id, flag_id, DeliveryStatus.SENT.value),
        )
        return bool(rows)

    def list_for_guardian(self, guardian_id: str, limit: int = 100) -> List[NotificationHistoryEntry]:
        """Most recent entries first."""
        if self.uses_memory:
            with self._lock:
                entries = [e for e in self._memory_store if e.guardian_id == guardian_id]
            return sorted(entries, key=lambda e: e.sent_at, reverse=True)[:limit]
        return self._fetch(
            f"SELECT {', '.join(self.COLUMNS)} FROM notification_history "
            "WHERE guardian_id = %s ORDER BY sent_at DESC LIMIT %s",
            (guardian_id, limit),
        )

    def _row_to_entity(self, row: Sequence[Any]) -> NotificationHistoryEntry:
        values = dict(zip(self.COLUMNS, row))
        values["delivery_status"] = DeliveryStatus(values["delivery_status"])
        return NotificationHistoryEntry(**values)

    def _entity_to_params(self, entity: NotificationHistoryEntry) -> Dict[str, Any]:
        return {
            "id": entity.id,
            "guardian_id": entity.guardian_id,
            "flag_id": entity.flag_id,
            "sent_at": entity.sent_at,
            "delivery_status": entity.delivery_status.value,
            "reason": entity.reason,
        }


class PreferenceRepository(BaseRepository[GuardianNotificationPreference]):
    """Guardian preferences and family membership, read-only to routing."""

    COLUMNS = (
        "guardian_id",
        "critical_enabled",
        "medium_mode",
        "low_enabled",
        "quiet_hours_start",
        "quiet_hours_end",
        "quiet_hours_weekend_start",
        "quiet_hours_weekend_end",
        "timezone",
    )

    def __init__(self, connection_manager: Optional[ConnectionManager] = None):
        super().__init__("guardian_preferences", connection_manager)
        self._memory_store: Dict[str, GuardianNotificationPreference] = {}
        self._family_guardians: Dict[str, List[str]] = {}

    def get(self, guardian_id: str) -> Optional[GuardianNotificationPreference]:
        if self.uses_memory:
            return self._memory_store.get(guardian_id)
        rows = self._fetch(
            f"SELECT {', '.join(self.COLUMNS)} FROM guardian_preferences "
            "WHERE guardian_id = %s",
            (guardian_id,),
        )
        return rows[0] if rows else None

    def save(self, preference: GuardianNotificationPreference) -> None:
        if self.uses_memory:
            with self._lock:
                self._memory_store[preference.guardian_id] = preference
            return
        params = self._entity_to_params(preference)
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in self.COLUMNS[1:])
        self._execute(
            f"INSERT INTO guardian_preferences ({', '.join(self.COLUMNS)}) "
            f"VALUES ({', '.join(['%s'] * len(self.COLUMNS))}) "
            f"ON CONFLICT (guardian_id) DO UPDATE SET {updates}",
            [params[c] for c in self.COLUMNS],
        )

    def guardians_for_family(self, family_id: str) -> List[str]:
        if self.uses_memory:
            return list(self._family_guardians.get(family_id, []))
        return self._fetch(
            "SELECT guardian_id FROM family_guardians WHERE family_id = %s ORDER BY guardian_id",
            (family_id,),
            mapper=lambda row: row[0],
        )

    def add_guardian(self, family_id: str, guardian_id: str) -> None:
        if self.uses_memory:
            with self._lock:
                guardians = self._family_guardians.setdefault(family_id, [])
                if guardian_id not in guardians:
                    guardians.append(guardian_id)
            return
        self._execute(
            "INSERT INTO family_guardians (family_id, guardian_id) VALUES (%s, %s) "
            "ON CONFLICT DO NOTHING",
            (family_id, guardian_id),
        )

    def _row_to_entity(self, row: Sequence[Any]) -> GuardianNotificationPreference:
        values = dict(zip(self.COLUMNS, row))
        values["medium_mode"] = MediumMode(values["medium_mode"])
        values["timezone"] = values["timezone"] or "UTC"
        return GuardianNotificationPreference(**values)

    def _entity_to_params(self, entity: GuardianNotificationPreference) -> Dict[str, Any]:
        return {
            "guardian_id": entity.guardian_id,
            "critical_enabled": entity.critical_enabled,
            "medium_mode": entity.medium_mode.value,
            "low_enabled": entity.low_enabled,
            "quiet_hours_start": entity.quiet_hours_start,
            "quiet_hours_end": entity.quiet_hours_end,
            "quiet_hours_weekend_start": entity.quiet_hours_weekend_start,
            "quiet_hours_weekend_end": entity.quiet_hours_weekend_end,
            "timezone": entity.timezone,
        }
