"""
Per-recipient alert preferences: which alerts a care circle member wants, on
which channels, and when they do not want to be disturbed.
"""

from datetime import datetime
from typing import Optional

from carecircle.logger import log_error
from carecircle.models import (
    HealthAlert,
    NotificationChannel,
    QuietHours,
    Severity,
    UserRecord,
)

ALL_CHANNELS = [NotificationChannel.PUSH, NotificationChannel.SMS, NotificationChannel.EMAIL]


def channels_for_severity(severity: Severity) -> list[NotificationChannel]:
    if severity in (Severity.CRITICAL, Severity.HIGH):
        return list(ALL_CHANNELS)
    if severity == Severity.MEDIUM:
        return [NotificationChannel.PUSH, NotificationChannel.EMAIL]
    return [NotificationChannel.PUSH]


def is_within_quiet_hours(quiet_hours: Optional[QuietHours], now: Optional[datetime] = None) -> bool:
    """True when `now` falls inside the window. Windows may span midnight."""
    if quiet_hours is None:
        return False
    current = (now or datetime.now()).strftime("%H:%M")
    start, end = quiet_hours.start, quiet_hours.end
    if start > end:
        return current >= start or current <= end
    return start <= current <= end


def should_send_alert(user: Optional[UserRecord], alert: HealthAlert, now: Optional[datetime] = None) -> bool:
    if user is None or user.alert_preferences is None:
        return True
    preferences = user.alert_preferences

    type_pref = preferences.alert_types.get(alert.type)
    if type_pref is not None:
        if not type_pref.enabled:
            return False
        if type_pref.urgency_levels is not None and alert.severity not in type_pref.urgency_levels:
            return False

    # Critical alerts always go through, quiet hours or not.
    if alert.severity == Severity.CRITICAL:
        return True
    return not is_within_quiet_hours(preferences.quiet_hours, now)


def channels_for_recipient(user: Optional[UserRecord], alert: HealthAlert) -> list[NotificationChannel]:
    """Severity channels narrowed to the recipient's preferred ones."""
    channels = channels_for_severity(alert.severity)
    if alert.severity == Severity.CRITICAL:
        return channels
    if user is None or user.alert_preferences is None or not user.alert_preferences.channels:
        return channels
    preferred = set(user.alert_preferences.channels)
    return [c for c in channels if c in preferred]


class PreferenceFilter:
    def __init__(self, user_store):
        self._users = user_store

    async def route_care_circle(
        self, user_ids: list[str], alert: HealthAlert, now: Optional[datetime] = None
    ) -> dict[tuple[NotificationChannel, ...], list[str]]:
        """Group the members who should get this alert by the channels they get it on.

        A failed profile lookup errs on the side of sending on the severity channels.
        """
        routes: dict[tuple[NotificationChannel, ...], list[str]] = {}
        for user_id in user_ids:
            try:
                user = await self._users.get_user(user_id)
            except Exception as e:
                log_error("alert_preferences_lookup_failed", error_code="USER_LOOKUP_ERROR", user_id=user_id, reason=str(e))
                user = None
            if not should_send_alert(user, alert, now):
                continue
            channels = tuple(channels_for_recipient(user, alert))
            if channels:
                routes.setdefault(channels, []).append(user_id)
        return routes

    async def filter_care_circle(self, user_ids: list[str], alert: HealthAlert, now: Optional[datetime] = None) -> list[str]:
        routes = await self.route_care_circle(user_ids, alert, now)
        selected = {user_id for members in routes.values() for user_id in members}
        return [user_id for user_id in user_ids if user_id in selected]
