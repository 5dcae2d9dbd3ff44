"""
Channel senders. Each wraps exactly one delivery API call and normalizes the
outcome into a NotificationResult; none of them raise or retry.
"""

import asyncio
import random
import string
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from html import escape
from typing import Optional

from carecircle.logger import log_error
from carecircle.models import NotificationChannel, NotificationResult, NotificationStatus

SMS_ATTRIBUTES = {
    "AWS.SNS.SMS.SMSType": {"DataType": "String", "StringValue": "Transactional"},
}

EMAIL_HTML_TEMPLATE = """
<html>
  <body style="font-family: Arial, sans-serif; padding: 20px;">
    <h2 style="color: #d32f2f;">{subject}</h2>
    <p style="font-size: 16px;">{message}</p>
    <hr style="margin: 20px 0;">
    <p style="font-size: 12px; color: #666;">
      This is an automated notification from Healthcare Monitoring App.
    </p>
  </body>
</html>
"""


def new_notification_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"notif-{int(time.time() * 1000)}-{suffix}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChannelSender(ABC):
    """Base sender: subclasses implement `_deliver` for one external API."""

    channel: NotificationChannel

    async def send(self, address: str, message: str, alert_id: str, subject: Optional[str] = None) -> NotificationResult:
        notification_id = new_notification_id()
        sent_at = _now()
        try:
            await self._deliver(address, message, subject)
        except Exception as e:
            log_error(
                "notification_send_failed",
                error_code="CHANNEL_ERROR",
                channel=self.channel.value,
                notification_id=notification_id,
                alert_id=alert_id,
                reason=str(e),
            )
            return NotificationResult(
                notification_id=notification_id,
                alert_id=alert_id,
                recipient=address,
                channel=self.channel,
                status=NotificationStatus.FAILED,
                sent_at=sent_at,
                failure_reason=str(e) or type(e).__name__,
            )

        return NotificationResult(
            notification_id=notification_id,
            alert_id=alert_id,
            recipient=address,
            channel=self.channel,
            status=NotificationStatus.SENT,
            sent_at=sent_at,
            delivered_at=_now(),
        )

    @abstractmethod
    async def _deliver(self, address: str, message: str, subject: Optional[str]) -> None:
        """Make the one API call for this channel; raise on failure."""


class SmsSender(ChannelSender):
    channel = NotificationChannel.SMS

    def __init__(self, sns_client):
        self._sns = sns_client

    async def _deliver(self, address, message, subject):
        await asyncio.to_thread(
            self._sns.publish,
            PhoneNumber=address,
            Message=message,
            MessageAttributes=SMS_ATTRIBUTES,
        )


class PushSender(SmsSender):
    """Push delivery. There is no platform application yet, so this rides the SMS transport."""

    channel = NotificationChannel.PUSH


class EmailSender(ChannelSender):
    channel = NotificationChannel.EMAIL

    def __init__(self, ses_client, from_email: str):
        self._ses = ses_client
        self._from_email = from_email

    async def _deliver(self, address, message, subject):
        subject = subject or "Health Alert"
        await asyncio.to_thread(
            self._ses.send_email,
            Source=self._from_email,
            Destination={"ToAddresses": [address]},
            Message={
                "Subject": {"Data": subject},
                "Body": {
                    "Text": {"Data": message},
                    "Html": {"Data": EMAIL_HTML_TEMPLATE.format(subject=escape(subject), message=escape(message))},
                },
            },
        )
