# tests/test_notifications.py
#
# Unit tests for the alert dispatcher in `carecircle/notifications.py`. The
# senders are the real ones, wired to MagicMock SNS/SES clients.

import asyncio
from unittest.mock import MagicMock

import pytest

from carecircle.channels import ChannelSender, EmailSender, PushSender, SmsSender
from carecircle.models import NotificationChannel, NotificationStatus, Priority
from carecircle.notifications import (
    NotificationDispatcher,
    NotificationRequest,
    NotificationTimeoutError,
    email_subject,
    format_message,
)
from carecircle.retry import RetryPolicy

ALL_CHANNELS = ["push", "sms", "email"]


@pytest.fixture
def sns():
    return MagicMock()


@pytest.fixture
def ses():
    return MagicMock()


@pytest.fixture
def dispatcher(user_store, notification_store, sns, ses):
    senders = {
        NotificationChannel.PUSH: PushSender(sns),
        NotificationChannel.SMS: SmsSender(sns),
        NotificationChannel.EMAIL: EmailSender(ses, "alerts@example.com"),
    }
    return NotificationDispatcher(user_store, notification_store, senders, RetryPolicy())


class SlowSender(ChannelSender):
    channel = NotificationChannel.PUSH

    async def _deliver(self, address, message, subject):
        await asyncio.sleep(1)


def test_message_and_subject_formatting(make_alert):
    alert = make_alert(severity="high", alert_type="missed_medication")

    assert format_message(alert) == "🚨 Heart rate above 140 bpm"
    assert email_subject(alert) == "Health Alert: missed medication"


@pytest.mark.asyncio
async def test_sends_one_result_per_channel(dispatcher, user_store, notification_store, sns, ses, make_user, make_alert):
    """Phone and email on file, three channels requested: three results, distinct ids."""
    # Arrange
    user_store.get_user.return_value = make_user()
    request = NotificationRequest(recipient="u1", alert=make_alert(), channels=ALL_CHANNELS)

    # Act
    results = await dispatcher.send_notification(request)

    # Assert
    assert [r.channel for r in results] == [NotificationChannel.PUSH, NotificationChannel.SMS, NotificationChannel.EMAIL]
    assert all(r.status == NotificationStatus.SENT for r in results)
    assert len({r.notification_id for r in results}) == 3
    assert notification_store.put_result.await_count == 3
    assert sns.publish.call_count == 2
    sns.publish.assert_called_with(
        PhoneNumber="+15551234567",
        Message="🆘 Heart rate above 140 bpm",
        MessageAttributes={"AWS.SNS.SMS.SMSType": {"DataType": "String", "StringValue": "Transactional"}},
    )
    email_kwargs = ses.send_email.call_args.kwargs
    assert email_kwargs["Destination"] == {"ToAddresses": ["a@b.com"]}
    assert email_kwargs["Message"]["Subject"] == {"Data": "Health Alert: vital signs"}


@pytest.mark.asyncio
async def test_channels_without_contact_details_are_skipped(dispatcher, user_store, notification_store, make_user, make_alert):
    user_store.get_user.return_value = make_user(phone=None, email=None)

    results = await dispatcher.send_notification(
        NotificationRequest(recipient="u1", alert=make_alert(), channels=ALL_CHANNELS)
    )

    assert results == []
    notification_store.put_result.assert_not_called()


@pytest.mark.asyncio
async def test_only_email_when_no_phone(dispatcher, user_store, sns, make_user, make_alert):
    user_store.get_user.return_value = make_user(phone=None)

    results = await dispatcher.send_notification(
        NotificationRequest(recipient="u1", alert=make_alert(), channels=ALL_CHANNELS)
    )

    assert [r.channel for r in results] == [NotificationChannel.EMAIL]
    sns.publish.assert_not_called()


@pytest.mark.asyncio
async def test_unknown_recipient_returns_empty(dispatcher, user_store, notification_store, sns, make_alert):
    user_store.get_user.return_value = None

    results = await dispatcher.send_notification(
        NotificationRequest(recipient="ghost", alert=make_alert(), channels=ALL_CHANNELS)
    )

    assert results == []
    sns.publish.assert_not_called()
    notification_store.put_result.assert_not_called()


@pytest.mark.asyncio
async def test_recipient_lookup_error_returns_empty(dispatcher, user_store, make_alert):
    user_store.get_user.side_effect = RuntimeError("users table unavailable")

    results = await dispatcher.send_notification(
        NotificationRequest(recipient="u1", alert=make_alert(), channels=ALL_CHANNELS)
    )

    assert results == []


@pytest.mark.asyncio
async def test_failing_channel_is_retried_once(dispatcher, user_store, notification_store, sns, make_user, make_alert):
    """A sender that always throws ends failed with retryCount 1, within the budget."""
    # Arrange
    user_store.get_user.return_value = make_user(email=None)
    sns.publish.side_effect = RuntimeError("Throttling")

    # Act
    results = await dispatcher.send_notification(
        NotificationRequest(recipient="u1", alert=make_alert(), channels=["sms"])
    )

    # Assert
    assert len(results) == 1
    assert results[0].status == NotificationStatus.FAILED
    assert results[0].retry_count == 1
    assert results[0].failure_reason == "Throttling"
    assert sns.publish.call_count == 2
    # First attempt and the retry are both persisted.
    assert notification_store.put_result.await_count == 2


@pytest.mark.asyncio
async def test_successful_retry_replaces_failed_result(dispatcher, user_store, sns, make_user, make_alert):
    user_store.get_user.return_value = make_user(email=None)
    sns.publish.side_effect = [RuntimeError("Throttling"), {"MessageId": "m-1"}]

    results = await dispatcher.send_notification(
        NotificationRequest(recipient="u1", alert=make_alert(), channels=["sms"])
    )

    assert len(results) == 1
    assert results[0].status == NotificationStatus.SENT
    assert results[0].retry_count == 1


@pytest.mark.asyncio
async def test_no_retry_when_budget_is_spent(user_store, notification_store, sns, make_user, make_alert):
    user_store.get_user.return_value = make_user(email=None)
    sns.publish.side_effect = RuntimeError("Throttling")
    dispatcher = NotificationDispatcher(
        user_store, notification_store, {NotificationChannel.SMS: SmsSender(sns)}, RetryPolicy(max_retries=0)
    )

    results = await dispatcher.send_notification(
        NotificationRequest(recipient="u1", alert=make_alert(), channels=["sms"])
    )

    assert results[0].retry_count == 0
    assert sns.publish.call_count == 1


@pytest.mark.asyncio
async def test_store_failure_does_not_raise(dispatcher, user_store, notification_store, make_user, make_alert):
    user_store.get_user.return_value = make_user()
    notification_store.put_result.side_effect = RuntimeError("write throttled")

    results = await dispatcher.send_notification(
        NotificationRequest(recipient="u1", alert=make_alert(), channels=ALL_CHANNELS)
    )

    assert len(results) == 3


@pytest.mark.asyncio
async def test_timeout_raises(user_store, notification_store, make_user, make_alert):
    """The deadline covers all channels at once and surfaces as an exception."""
    user_store.get_user.return_value = make_user()
    dispatcher = NotificationDispatcher(
        user_store, notification_store, {NotificationChannel.PUSH: SlowSender()}, timeout_seconds=0.05
    )

    with pytest.raises(NotificationTimeoutError):
        await dispatcher.send_notification(
            NotificationRequest(recipient="u1", alert=make_alert(), channels=["push"])
        )
    notification_store.put_result.assert_not_called()


@pytest.mark.asyncio
async def test_care_circle_skips_unresolved_recipients(dispatcher, user_store, make_user, make_alert):
    """u1 resolves, u2's lookup fails: one result, none for u2."""
    # Arrange
    async def get_user(user_id):
        if user_id == "u2":
            raise RuntimeError("lookup failed")
        return make_user(user_id=user_id)

    user_store.get_user.side_effect = get_user

    # Act
    results = await dispatcher.send_notification_to_care_circle(["u1", "u2"], make_alert(), ["push"])

    # Assert
    assert len(results) == 1
    assert results[0].recipient == "+15551234567"


@pytest.mark.asyncio
@pytest.mark.parametrize("severity, priority", [("critical", Priority.URGENT), ("medium", Priority.HIGH)])
async def test_care_circle_priority_follows_severity(dispatcher, user_store, make_user, make_alert, mocker, severity, priority):
    user_store.get_user.return_value = make_user()
    spy = mocker.spy(dispatcher, "send_notification")

    await dispatcher.send_notification_to_care_circle(["u1", "u2"], make_alert(severity=severity), ["email"])

    assert spy.call_count == 2
    assert {call.args[-1].priority for call in spy.call_args_list} == {priority}
    assert {call.args[-1].recipient for call in spy.call_args_list} == {"u1", "u2"}


@pytest.mark.asyncio
async def test_care_circle_timeout_fails_whole_fan_out(user_store, notification_store, make_user, make_alert):
    user_store.get_user.return_value = make_user()
    dispatcher = NotificationDispatcher(
        user_store, notification_store, {NotificationChannel.PUSH: SlowSender()}, timeout_seconds=0.05
    )

    with pytest.raises(NotificationTimeoutError):
        await dispatcher.send_notification_to_care_circle(["u1", "u2"], make_alert(), ["push"])


def test_request_rejects_unknown_channel(make_alert):
    with pytest.raises(ValueError):
        NotificationRequest(recipient="u1", alert=make_alert(), channels=["pager"])
