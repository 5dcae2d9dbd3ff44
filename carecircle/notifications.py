"""
Multi-channel alert delivery.

One alert goes to one recipient over the requested channels at once, under a
single delivery deadline. Every attempt is written to the notification table,
and failed channels get one more attempt within the same call. Later retries
happen when a scheduled job calls in again for the same alert.
"""

import asyncio
from functools import partial
from typing import Optional

from pydantic import BaseModel, Field

from carecircle.channels import ChannelSender
from carecircle.config import NOTIFICATION_TIMEOUT_SECONDS
from carecircle.logger import log_error, log_info, log_warning, Timer
from carecircle.models import (
    HealthAlert,
    NotificationChannel,
    NotificationResult,
    Priority,
    Severity,
    UserRecord,
)
from carecircle.retry import RetryPolicy

SEVERITY_MARKERS = {
    Severity.LOW: "ℹ️",
    Severity.MEDIUM: "⚠️",
    Severity.HIGH: "🚨",
    Severity.CRITICAL: "🆘",
}

# Contact attribute each channel needs on the recipient's profile.
CHANNEL_CONTACT_FIELD = {
    NotificationChannel.PUSH: "phone",
    NotificationChannel.SMS: "phone",
    NotificationChannel.EMAIL: "email",
}


class NotificationTimeoutError(Exception):
    """Raised when the channel sends for one recipient miss the delivery deadline."""


class NotificationRequest(BaseModel):
    recipient: str = Field(min_length=1, description="userId of the recipient")
    alert: HealthAlert
    channels: list[NotificationChannel]
    priority: Priority = Priority.NORMAL


def format_message(alert: HealthAlert) -> str:
    return f"{SEVERITY_MARKERS[alert.severity]} {alert.message}"


def email_subject(alert: HealthAlert) -> str:
    return f"Health Alert: {alert.type.replace('_', ' ')}"


def care_circle_priority(alert: HealthAlert) -> Priority:
    return Priority.URGENT if alert.severity == Severity.CRITICAL else Priority.HIGH


class NotificationDispatcher:
    def __init__(
        self,
        user_store,
        notification_store,
        senders: dict[NotificationChannel, ChannelSender],
        retry_policy: Optional[RetryPolicy] = None,
        timeout_seconds: float = NOTIFICATION_TIMEOUT_SECONDS,
    ):
        self._users = user_store
        self._store = notification_store
        self._senders = senders
        self._retry = retry_policy or RetryPolicy()
        self._timeout = timeout_seconds

    async def send_notification(self, request: NotificationRequest) -> list[NotificationResult]:
        """Deliver one alert to one user.

        Returns one result per channel attempted. An unknown recipient yields an
        empty list. Raises NotificationTimeoutError when the sends do not finish
        within the deadline; sends still in flight are left to run.
        """
        user = await self._resolve_recipient(request.recipient)
        if user is None:
            return []

        alert = request.alert
        message = format_message(alert)
        subject = email_subject(alert)

        attempts = []
        for channel in request.channels:
            sender = self._senders.get(channel)
            address = getattr(user.profile, CHANNEL_CONTACT_FIELD[channel])
            if sender is None or not address:
                continue
            attempts.append(partial(sender.send, address, message, alert.id, subject))

        with Timer() as t:
            results = await self._send_all(attempts, request)

        await self._persist_all(results)

        for i, result in enumerate(results):
            if self._retry.should_retry(result):
                retried = await self._retry.retry(result, attempts[i])
                await self._persist(retried)
                results[i] = retried

        log_info(
            "notification_dispatched",
            alert_id=alert.id,
            recipient=request.recipient,
            priority=request.priority.value,
            attempted=len(results),
            failed=sum(1 for r in results if r.failed),
            execution_time_ms=t.duration_ms,
        )
        return results

    async def send_notification_to_care_circle(
        self,
        user_ids: list[str],
        alert: HealthAlert,
        channels: list[NotificationChannel],
    ) -> list[NotificationResult]:
        """Fan one alert out to several users concurrently and flatten the results.

        A delivery timeout for any recipient fails the whole fan-out.
        """
        priority = care_circle_priority(alert)
        per_user = await asyncio.gather(*(
            self.send_notification(
                NotificationRequest(recipient=user_id, alert=alert, channels=channels, priority=priority)
            )
            for user_id in user_ids
        ))
        return [result for results in per_user for result in results]

    async def _resolve_recipient(self, user_id: str) -> Optional[UserRecord]:
        try:
            user = await self._users.get_user(user_id)
        except Exception as e:
            log_error("notification_recipient_lookup_failed", error_code="USER_LOOKUP_ERROR", recipient=user_id, reason=str(e))
            return None
        if user is None:
            log_warning("notification_recipient_not_found", recipient=user_id)
        return user

    async def _send_all(self, attempts, request: NotificationRequest) -> list[NotificationResult]:
        if not attempts:
            return []

        tasks = [asyncio.ensure_future(attempt()) for attempt in attempts]
        # Tasks still pending at the deadline are not cancelled; they are just no longer awaited.
        done, pending = await asyncio.wait(tasks, timeout=self._timeout)
        if pending:
            log_error(
                "notification_timeout",
                error_code="NOTIFICATION_TIMEOUT",
                alert_id=request.alert.id,
                recipient=request.recipient,
                pending=len(pending),
                timeout_seconds=self._timeout,
            )
            raise NotificationTimeoutError(
                f"Notification timeout after {self._timeout}s for alert {request.alert.id}"
            )
        return [task.result() for task in tasks]

    async def _persist_all(self, results: list[NotificationResult]) -> None:
        await asyncio.gather(*(self._persist(result) for result in results))

    async def _persist(self, result: NotificationResult) -> None:
        try:
            await self._store.put_result(result)
        except Exception as e:
            log_error(
                "notification_store_failed",
                error_code="DB_ERROR",
                notification_id=result.notification_id,
                reason=str(e),
            )
