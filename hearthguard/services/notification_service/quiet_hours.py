"""Quiet-hours evaluation in the guardian's local time.

Windows may wrap midnight (22:00-07:00). Weekend windows replace the weekday
window on Saturday and Sunday when the guardian sets them; the day is taken
from the window's start, so Friday 23:00 falls in Friday's weekday window.
Critical severity is never quiet.
"""
import logging
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from hearthguard.shared.models import GuardianNotificationPreference, Severity
from hearthguard.shared.models.notification import parse_clock_time
from hearthguard.shared.utils import hash_pii

logger = logging.getLogger(__name__)

_SATURDAY = 5


def guardian_timezone(preference: GuardianNotificationPreference) -> tzinfo:
    """The guardian's timezone; unknown names fall back to UTC."""
    if not preference.timezone or preference.timezone.upper() == "UTC":
        return timezone.utc
    try:
        return ZoneInfo(preference.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(
            "GUARDIAN_TIMEZONE_INVALID",
            extra={"guardian_id_hash": hash_pii(preference.guardian_id), "fallback": "UTC"}
        )
        return timezone.utc


class QuietHoursEvaluator:
    """Answers whether a guardian is inside a quiet window."""

    def window_for(
        self,
        preference: GuardianNotificationPreference,
        local_day: datetime,
    ) -> Optional[Tuple[int, int]]:
        """(start, end) minutes for windows starting on ``local_day``.

        None when no window applies; start == end means no window.
        """
        start, end = preference.quiet_hours_start, preference.quiet_hours_end
        if local_day.weekday() >= _SATURDAY and preference.quiet_hours_weekend_start:
            start, end = preference.quiet_hours_weekend_start, preference.quiet_hours_weekend_end
        if start is None or end is None:
            return None
        start_minutes, end_minutes = parse_clock_time(start), parse_clock_time(end)
        if start_minutes == end_minutes:
            return None
        return start_minutes, end_minutes

    def active_window(
        self,
        preference: GuardianNotificationPreference,
        now: datetime,
    ) -> Optional[Tuple[datetime, datetime]]:
        """Local (start, end) of the window containing ``now``, if any."""
        local_now = now.astimezone(guardian_timezone(preference))
        midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)

        # A window containing now started either today or yesterday
        for day_offset in (0, -1):
            day = midnight + timedelta(days=day_offset)
            window = self.window_for(preference, day)
            if window is None:
                continue
            start_minutes, end_minutes = window
            start = day + timedelta(minutes=start_minutes)
            end = day + timedelta(minutes=end_minutes)
            if end_minutes < start_minutes:
                end += timedelta(days=1)
            if start <= local_now < end:
                return start, end
        return None

    def is_quiet(
        self,
        preference: GuardianNotificationPreference,
        now: datetime,
        severity: Optional[Severity] = None,
    ) -> bool:
        """True if non-critical notifications must wait."""
        if severity == Severity.CRITICAL:
            return False
        return self.active_window(preference, now) is not None

    def window_end(self, preference: GuardianNotificationPreference, now: datetime) -> datetime:
        """End of the current quiet window as an aware UTC instant.

        Returns ``now`` when no window is active.
        """
        window = self.active_window(preference, now)
        if window is None:
            return now
        end = window[1]
        # Wall-clock arithmetic can land on a DST gap; normalize via UTC.
        return end.astimezone(timezone.utc)
