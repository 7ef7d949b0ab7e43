"""Notification Service: routes created flags to guardians.

Components:
- router.py: NotificationRoutingOrchestrator and the pure plan_delivery table
- digest.py: DigestQueueManager (hourly/daily flush, deferred release)
- quiet_hours.py: QuietHoursEvaluator with midnight wraparound and timezones
- delivery.py: Payload builders and the SNS push sender
- repositories.py: Digest queue, pending deliveries, history, preferences
- handler.py: Flask HTTP endpoints for the scheduler
- jobs.py: Command-line entry points for scheduled runs

Usage:
    # As scheduled job
    python -m hearthguard.services.notification_service.jobs hourly

    # Direct import
    orchestrator = NotificationRoutingOrchestrator(sender=SnsPushSender(topic_arn))
    orchestrator.route_for_family(flag)
"""

from .config import NotificationConfig
from .delivery import NotificationSender, SnsPushSender
from .digest import DigestQueueManager, FlushReport, ReleaseReport
from .quiet_hours import QuietHoursEvaluator
from .repositories import (
    DigestQueueRepository,
    NotificationHistoryRepository,
    PendingDeliveryRepository,
    PreferenceRepository,
)
from .router import (
    DeliveryPlan,
    NotificationRoutingOrchestrator,
    RoutingAction,
    RoutingResult,
    plan_delivery,
)

__all__ = [
    "NotificationConfig",
    "NotificationSender",
    "SnsPushSender",
    "DigestQueueManager",
    "FlushReport",
    "ReleaseReport",
    "QuietHoursEvaluator",
    "DigestQueueRepository",
    "NotificationHistoryRepository",
    "PendingDeliveryRepository",
    "PreferenceRepository",
    "DeliveryPlan",
    "NotificationRoutingOrchestrator",
    "RoutingAction",
    "RoutingResult",
    "plan_delivery",
]
