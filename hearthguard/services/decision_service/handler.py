"""Decision Service HTTP handler.

Every concern candidate enters through /evaluate. The response says only
whether a flag was created: a crisis-suppressed candidate and a discarded
one produce byte-identical responses.

No candidate context (domain, text) is ever logged from this module.
"""
import logging
import os

from flask import Flask, jsonify, request

from hearthguard.shared.database import get_connection_manager
from hearthguard.shared.models import ConcernCandidate
from hearthguard.shared.utils import configure_pii_salt_from_env
from hearthguard.services.crisis_guard import (
    AllowlistCache,
    AllowlistSyncConfig,
    CrisisSuppressionGuard,
)
from hearthguard.services.notification_service import (
    NotificationConfig,
    NotificationRoutingOrchestrator,
    SnsPushSender,
)
from hearthguard.services.notification_service.repositories import (
    DigestQueueRepository,
    NotificationHistoryRepository,
    PendingDeliveryRepository,
    PreferenceRepository,
)
from .bias_adjustment import BiasAdjustmentEngine
from .config import DecisionConfig
from .config_repository import CalibrationRepository
from .decision_engine import FlagDecisionEngine
from .flag_repository import FlagRepository
from .flag_throttle import FlagThrottle
from .pipeline import FlagPipeline
from .threshold_resolver import ThresholdResolver

logger = logging.getLogger(__name__)

SERVICE_NAME = "decision-service"

# Initialize Flask app
app = Flask(__name__)

configure_pii_salt_from_env()

config = DecisionConfig.from_env()
notification_config = NotificationConfig.from_env()
connection_manager = get_connection_manager()

allowlist = AllowlistCache.from_config(AllowlistSyncConfig.from_env())
allowlist.load()
guard = CrisisSuppressionGuard(allowlist)

calibration = CalibrationRepository(connection_manager)
engine = FlagDecisionEngine(
    guard=guard,
    bias_engine=BiasAdjustmentEngine(calibration),
    resolver=ThresholdResolver(calibration),
    config=config,
)

router = NotificationRoutingOrchestrator(
    sender=SnsPushSender(
        topic_arn=notification_config.sns_topic_arn,
        enabled=notification_config.push_enabled,
        region=notification_config.region,
    ),
    preferences=PreferenceRepository(connection_manager),
    digest_queue=DigestQueueRepository(connection_manager),
    pending=PendingDeliveryRepository(connection_manager),
    history=NotificationHistoryRepository(connection_manager),
)

pipeline = FlagPipeline(
    engine=engine,
    flag_repository=FlagRepository(connection_manager),
    router=router,
    throttle=(
        FlagThrottle(calibration, default_level=config.default_throttle_level)
        if config.throttle_enabled else None
    ),
)


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for ECS/ALB."""
    return jsonify({
        "status": "healthy",
        "service": SERVICE_NAME,
        "allowlist_version": allowlist.current().version,
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check - verifies the pipeline and database are usable.

    Returns:
        200 if ready, 503 if not
    """
    if pipeline is None:
        return jsonify({"status": "not_ready", "reason": "pipeline_not_initialized"}), 503
    if connection_manager is not None and connection_manager.initialized:
        db = connection_manager.health_check()
        if not db["healthy"]:
            return jsonify({"status": "not_ready", "reason": "database_unavailable"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/evaluate", methods=["POST"])
def evaluate():
    """Evaluate one concern candidate.

    Request Body:
        {
            "category": "violence",
            "raw_confidence": 0-100,
            "severity": "critical" | "medium" | "low",
            "family_id": "fam_123",
            "subject_id": "child_456",
            "context_domain": "example.org" (optional),
            "context_text": "..." (optional),
            "app_identifier": "com.example.app" (optional),
            "content_event_id": "cap_789" (optional)
        }

    Response:
        {"flag_created": true, "flag_id": "flag_..."} or {"flag_created": false}

    Error Handling:
        Invalid input returns 400. Any other error fails closed to
        {"flag_created": false}.
    """
    data = request.get_json(silent=True)
    if not data:
        logger.warning("EVALUATE_REQUEST_INVALID", extra={"reason": "empty_body"})
        return jsonify({"error": "Request body required"}), 400

    try:
        candidate = ConcernCandidate.from_dict(data)
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning(
            "EVALUATE_REQUEST_INVALID",
            extra={"reason": "invalid_candidate", "error_type": type(e).__name__}
        )
        return jsonify({"error": "Invalid candidate"}), 400

    try:
        result = pipeline.process(candidate)
    except Exception as e:
        logger.error(
            "EVALUATE_ERROR",
            extra={"error_type": type(e).__name__, "action": "NO_FLAG_CREATED"}
        )
        return jsonify({"flag_created": False}), 200

    if result.flag_created:
        return jsonify({"flag_created": True, "flag_id": result.decision.flag.id}), 200
    return jsonify({"flag_created": False}), 200


@app.route("/allowlist/status", methods=["GET"])
def allowlist_status():
    """Version, source and sync time of the crisis allowlist in use."""
    return jsonify(allowlist.status()), 200


@app.route("/allowlist/refresh", methods=["POST"])
def allowlist_refresh():
    """Out-of-cycle allowlist refresh.

    Request Body (optional):
        {"emergency": true, "version": "1.4.0-emergency-abc"}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}
    emergency = bool(data.get("emergency", False))
    version = data.get("version")

    if version:
        result = allowlist.handle_version_notice(str(version), emergency=emergency)
    else:
        result = allowlist.refresh(force_emergency=emergency)

    status = allowlist.status()
    status["refreshed"] = result is not None
    if result is not None:
        status["fallback_reason"] = result.fallback_reason
    return jsonify(status), 200


@app.route("/allowlist/sync", methods=["POST"])
def allowlist_sync():
    """Scheduled sync; refreshes only once the current TTL has elapsed."""
    result = allowlist.sync_if_due()
    status = allowlist.status()
    status["refreshed"] = result is not None
    return jsonify(status), 200


if __name__ == "__main__":
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Run development server
    port = int(os.getenv("PORT", "8010"))
    app.run(host="0.0.0.0", port=port, debug=False)
