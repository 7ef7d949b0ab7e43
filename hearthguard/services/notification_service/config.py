"""Notification Service configuration."""
import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class NotificationConfig:
    """Delivery and digest settings."""

    # SNS topic fanned out to the guardian's registered devices
    sns_topic_arn: str = "arn:aws:sns:us-east-1:000000000000:hearthguard-guardian-push"

    # Disable for local development; sends then fail with reason "sender_disabled"
    push_enabled: bool = True

    region: Optional[str] = None

    # Upper bound on items read per digest flush
    digest_batch_limit: int = 500

    @classmethod
    def from_env(cls) -> "NotificationConfig":
        """Create config from environment variables.

        Environment variables:
            SNS_TOPIC_ARN: Push fan-out topic
            PUSH_ENABLED: "false" to disable delivery
            AWS_REGION: Region for the SNS client
            DIGEST_BATCH_LIMIT: Max queue items per flush (default 500)
        """
        return cls(
            sns_topic_arn=os.getenv("SNS_TOPIC_ARN", cls.sns_topic_arn),
            push_enabled=os.getenv("PUSH_ENABLED", "true").lower() == "true",
            region=os.getenv("AWS_REGION"),
            digest_batch_limit=int(os.getenv("DIGEST_BATCH_LIMIT", "500")),
        )
