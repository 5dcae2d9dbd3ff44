# tests/conftest.py
#
# Shared fixtures. AWS-facing collaborators are replaced with mocks that are
# handed to the services through their constructors.

import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

os.environ.setdefault("ENV", "test")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

from carecircle.access_control import DEFAULT_PERMISSIONS
from carecircle.models import CareCircleMembership, ContactProfile, HealthAlert, UserRecord


@pytest.fixture
def make_alert():
    def _make(severity="critical", alert_type="vital_signs", **overrides):
        fields = {
            "id": "alert-1",
            "user_id": "primary-123",
            "type": alert_type,
            "severity": severity,
            "message": "Heart rate above 140 bpm",
            "timestamp": datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return HealthAlert(**fields)

    return _make


@pytest.fixture
def make_member():
    def _make(secondary_user_id="secondary-456", permissions=DEFAULT_PERMISSIONS, relationship="child"):
        return CareCircleMembership(
            primary_user_id="primary-123",
            secondary_user_id=secondary_user_id,
            relationship=relationship,
            permissions=permissions,
        )

    return _make


@pytest.fixture
def make_user():
    def _make(user_id="u1", phone="+15551234567", email="a@b.com", alert_preferences=None):
        return UserRecord(
            user_id=user_id,
            profile=ContactProfile(phone=phone, email=email),
            alert_preferences=alert_preferences,
        )

    return _make


@pytest.fixture
def audit():
    """Stand-in for AuditLogger; every log_* method is an AsyncMock."""
    mock = MagicMock()
    mock.log_data_access = AsyncMock()
    mock.log_care_circle_access = AsyncMock()
    mock.log_permission_change = AsyncMock()
    return mock


@pytest.fixture
def membership_store():
    mock = MagicMock()
    mock.get_member = AsyncMock(return_value=None)
    mock.list_members = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def user_store():
    mock = MagicMock()
    mock.get_user = AsyncMock(return_value=None)
    return mock


@pytest.fixture
def notification_store():
    mock = MagicMock()
    mock.put_result = AsyncMock()
    return mock
