"""Service handles shared by every invocation of a warm Lambda container."""

from functools import lru_cache

from carecircle.access_control import AccessControl
from carecircle.audit import AuditLogger
from carecircle.aws import get_client, get_resource
from carecircle.channels import EmailSender, PushSender, SmsSender
from carecircle.config import get_settings
from carecircle.db import CareCircleStore, NotificationStore, UserStore
from carecircle.models import NotificationChannel
from carecircle.notifications import NotificationDispatcher
from carecircle.preferences import PreferenceFilter
from carecircle.retry import RetryPolicy


@lru_cache
def _dynamodb():
    return get_resource("dynamodb")


@lru_cache
def get_care_circle_store() -> CareCircleStore:
    return CareCircleStore(_dynamodb().Table(get_settings().care_circle_table))


@lru_cache
def get_user_store() -> UserStore:
    return UserStore(_dynamodb().Table(get_settings().users_table))


@lru_cache
def get_audit_logger() -> AuditLogger:
    settings = get_settings()
    table = _dynamodb().Table(settings.audit_logs_table) if settings.audit_logs_table else None
    return AuditLogger(table, environment=settings.env)


@lru_cache
def get_access_control() -> AccessControl:
    return AccessControl(get_care_circle_store(), get_audit_logger())


@lru_cache
def get_preference_filter() -> PreferenceFilter:
    return PreferenceFilter(get_user_store())


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    settings = get_settings()
    sns = get_client("sns")
    senders = {
        NotificationChannel.PUSH: PushSender(sns),
        NotificationChannel.SMS: SmsSender(sns),
        NotificationChannel.EMAIL: EmailSender(get_client("ses"), settings.ses_from_email),
    }
    return NotificationDispatcher(
        get_user_store(),
        NotificationStore(_dynamodb().Table(settings.notifications_table)),
        senders,
        RetryPolicy(),
    )
