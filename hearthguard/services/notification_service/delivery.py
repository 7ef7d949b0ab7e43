"""Notification delivery: payload construction and the push sender.

Payloads carry severity, category and a deep link only. Context domains and
text from the underlying content never leave the decision service.

Senders return a DeliveryOutcome instead of raising; callers record the
outcome in history and move on.
"""
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from hearthguard.shared.models import DeliveryOutcome, Flag, NotificationPayload, Severity
from hearthguard.shared.utils import hash_pii

logger = logging.getLogger(__name__)


def build_flag_payload(flag: Flag) -> NotificationPayload:
    """Payload for an immediate single-flag notification."""
    return NotificationPayload(
        title=f"New {flag.severity.value} concern flagged",
        body=f"A {flag.category.replace('_', ' ')} concern was flagged for review.",
        deep_link_target=f"/flags/{flag.id}",
    )


def build_digest_payload(subject_id: str, severities: Iterable[Severity]) -> NotificationPayload:
    """Consolidated payload for one subject's digest group."""
    severities = list(severities)
    count = len(severities)
    highest = max(severities, key=lambda s: s.rank)
    noun = "flag" if count == 1 else "flags"
    return NotificationPayload(
        title="Concern digest",
        body=f"{count} new {noun}, highest: {highest.value}",
        deep_link_target=f"/flags?subject={subject_id}",
    )


class NotificationSender(ABC):
    """Transport contract: deliver one payload to one guardian."""

    @abstractmethod
    def send(self, recipient_id: str, payload: NotificationPayload) -> DeliveryOutcome:
        """Deliver a payload.

        Must not raise; transport errors are returned as failed outcomes.
        """
        pass


class SnsPushSender(NotificationSender):
    """Publishes guardian push notifications to an SNS topic.

    The topic fans out to the guardian's registered devices, filtered on the
    ``recipient_id`` message attribute.
    """

    def __init__(
        self,
        topic_arn: str,
        enabled: bool = True,
        region: Optional[str] = None,
    ):
        """Initialize sender.

        Args:
            topic_arn: SNS topic for guardian push fan-out
            enabled: Whether delivery is enabled (disable for local dev)
            region: AWS region (defaults to AWS_REGION env var)
        """
        self.topic_arn = topic_arn
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self._sns_client = None

        logger.info(
            "PUSH_SENDER_INITIALIZED",
            extra={"topic_arn": topic_arn, "enabled": enabled, "region": self.region}
        )

    @property
    def sns_client(self):
        """Lazy initialization of SNS client."""
        if self._sns_client is None and self.enabled:
            try:
                import boto3
                self._sns_client = boto3.client("sns", region_name=self.region)
            except Exception as e:
                logger.error("SNS_CLIENT_INIT_FAILED", extra={"error": str(e)})
        return self._sns_client

    def send(self, recipient_id: str, payload: NotificationPayload) -> DeliveryOutcome:
        if not self.enabled:
            return DeliveryOutcome.failed("sender_disabled")

        client = self.sns_client
        if client is None:
            return DeliveryOutcome.failed("sns_client_unavailable")

        try:
            response = client.publish(
                TopicArn=self.topic_arn,
                Message=json.dumps(payload.to_dict()),
                MessageAttributes={
                    "recipient_id": {"DataType": "String", "StringValue": recipient_id},
                },
            )
        except Exception as e:
            logger.error(
                "PUSH_SEND_FAILED",
                extra={
                    "guardian_id_hash": hash_pii(recipient_id),
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return DeliveryOutcome.failed(type(e).__name__)

        logger.info(
            "PUSH_SENT",
            extra={
                "guardian_id_hash": hash_pii(recipient_id),
                "message_id": response.get("MessageId"),
            }
        )
        return DeliveryOutcome.sent()
