"""Command-line entry points for scheduled jobs.

Usage:
    python -m hearthguard.services.notification_service.jobs --help
    python -m hearthguard.services.notification_service.jobs hourly
    python -m hearthguard.services.notification_service.jobs daily
    python -m hearthguard.services.notification_service.jobs deferred
    python -m hearthguard.services.notification_service.jobs allowlist-sync --force
"""
import argparse
import json
import logging
import sys
from typing import List, Optional

from hearthguard.shared.database import get_connection_manager
from hearthguard.shared.utils import configure_pii_salt_from_env
from hearthguard.services.crisis_guard import AllowlistCache, AllowlistSyncConfig
from .config import NotificationConfig
from .digest import DigestQueueManager

logger = logging.getLogger(__name__)


def setup_parser() -> argparse.ArgumentParser:
    """Set up argument parser."""
    parser = argparse.ArgumentParser(
        description="HearthGuard scheduled jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Jobs")

    subparsers.add_parser("hourly", help="Flush hourly digests")
    subparsers.add_parser("daily", help="Flush daily digests (sweeps hourly leftovers)")
    subparsers.add_parser("deferred", help="Release quiet-hours deferrals that are due")

    sync_parser = subparsers.add_parser(
        "allowlist-sync",
        help="Refresh the on-disk crisis allowlist cache",
    )
    sync_parser.add_argument(
        "--force", action="store_true",
        help="Refresh even if the cached dataset is still fresh"
    )
    sync_parser.add_argument(
        "--emergency", action="store_true",
        help="Skip conditional requests and accept any server version"
    )

    return parser


def cmd_digest(args) -> int:
    """Run a digest or release job."""
    manager = DigestQueueManager.from_config(
        NotificationConfig.from_env(),
        get_connection_manager(),
    )
    jobs = {
        "hourly": manager.flush_hourly,
        "daily": manager.flush_daily,
        "deferred": manager.release_deferred,
    }
    report = jobs[args.command]()
    print(json.dumps({"job": args.command, **report.to_dict()}))
    return 0


def cmd_allowlist_sync(args) -> int:
    """Refresh the crisis allowlist cache file."""
    cache = AllowlistCache.from_config(AllowlistSyncConfig.from_env())
    if args.force or args.emergency:
        result = cache.refresh(force_emergency=args.emergency)
    else:
        result = cache.load()

    print(json.dumps({
        "job": "allowlist-sync",
        "version": result.dataset.version,
        "source": result.source.value,
        "fallback_reason": result.fallback_reason,
    }))
    return 0 if result.fallback_reason is None else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    parser = setup_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_pii_salt_from_env()

    commands = {
        "hourly": cmd_digest,
        "daily": cmd_digest,
        "deferred": cmd_digest,
        "allowlist-sync": cmd_allowlist_sync,
    }
    try:
        return commands[args.command](args)
    except Exception as e:
        logger.error(
            "SCHEDULED_JOB_FAILED",
            extra={"job": args.command, "error": str(e), "error_type": type(e).__name__}
        )
        return 2


if __name__ == "__main__":
    sys.exit(main())
