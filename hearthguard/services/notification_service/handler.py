"""Notification Service HTTP handler.

Scheduler-facing endpoints for digest flushes and quiet-hours releases.
Real-time routing happens in the decision service right after a flag is
stored; this service only drains the queue tables.
"""
import logging
import os

from flask import Flask, jsonify

from hearthguard.shared.database import get_connection_manager
from hearthguard.shared.utils import configure_pii_salt_from_env
from .config import NotificationConfig
from .digest import DigestQueueManager

logger = logging.getLogger(__name__)

SERVICE_NAME = "notification-service"

# Initialize Flask app
app = Flask(__name__)

configure_pii_salt_from_env()

config = NotificationConfig.from_env()
connection_manager = get_connection_manager()
digest_manager = DigestQueueManager.from_config(config, connection_manager)


@app.route("/health", methods=["GET"])
def health():
    """Health check endpoint for ECS/ALB."""
    return jsonify({
        "status": "healthy",
        "service": SERVICE_NAME,
        "push_enabled": config.push_enabled,
    }), 200


@app.route("/ready", methods=["GET"])
def ready():
    """Readiness check.

    Returns:
        200 if ready, 503 if not
    """
    if digest_manager is None:
        return jsonify({"status": "not_ready", "reason": "digest_manager_not_initialized"}), 503
    if connection_manager is not None and connection_manager.initialized:
        if not connection_manager.health_check()["healthy"]:
            return jsonify({"status": "not_ready", "reason": "database_unavailable"}), 503
    return jsonify({"status": "ready"}), 200


@app.route("/flush/hourly", methods=["POST"])
def flush_hourly():
    return _run_job("hourly", digest_manager.flush_hourly)


@app.route("/flush/daily", methods=["POST"])
def flush_daily():
    return _run_job("daily", digest_manager.flush_daily)


@app.route("/deliveries/release", methods=["POST"])
def release_deliveries():
    """Send deferred notifications whose quiet window has ended."""
    return _run_job("deferred", digest_manager.release_deferred)


def _run_job(job: str, run):
    """Run a scheduled job and report its counts.

    Per-group failures are already isolated inside the job; anything that
    escapes (e.g. the queue table is unreachable) is reported as 500 so
    the scheduler retries.
    """
    try:
        report = run()
    except Exception as e:
        logger.error(
            "SCHEDULED_JOB_FAILED",
            extra={"job": job, "error": str(e), "error_type": type(e).__name__}
        )
        return jsonify({"job": job, "status": "error", "error_type": type(e).__name__}), 500
    return jsonify({"job": job, "status": "ok", **report.to_dict()}), 200


if __name__ == "__main__":
    # Configure logging
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Run development server
    port = int(os.getenv("PORT", "8011"))
    app.run(host="0.0.0.0", port=port, debug=False)
