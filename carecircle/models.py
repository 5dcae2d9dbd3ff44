"""
Domain models shared by the access-control and notification layers.

Field names are snake_case in Python and camelCase on the wire, matching the
attribute names stored in the DynamoDB tables.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from carecircle.config import MAX_RETRY_COUNT


class DataType(str, Enum):
    """Categories of a primary user's data that a care circle member may see."""

    VITALS = "vitals"
    MEDICATIONS = "medications"
    APPOINTMENTS = "appointments"
    HEALTH_RECORDS = "healthRecords"
    ALERTS = "alerts"
    MESSAGES = "messages"
    DEVICES = "devices"


class PermissionKey(str, Enum):
    CAN_VIEW_VITALS = "canViewVitals"
    CAN_VIEW_MEDICATIONS = "canViewMedications"
    CAN_VIEW_APPOINTMENTS = "canViewAppointments"
    CAN_VIEW_HEALTH_RECORDS = "canViewHealthRecords"
    CAN_RECEIVE_ALERTS = "canReceiveAlerts"
    CAN_SEND_MESSAGES = "canSendMessages"
    CAN_MANAGE_DEVICES = "canManageDevices"


class UserType(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class AccessAction(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class NotificationChannel(str, Enum):
    PUSH = "push"
    SMS = "sms"
    EMAIL = "email"


class NotificationStatus(str, Enum):
    SENT = "sent"
    DELIVERED = "delivered"
    FAILED = "failed"


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PermissionSet(CamelModel):
    """Capabilities granted to one care circle member."""

    model_config = ConfigDict(frozen=True)

    can_view_vitals: bool = False
    can_view_medications: bool = False
    can_view_appointments: bool = False
    can_view_health_records: bool = False
    can_receive_alerts: bool = False
    can_send_messages: bool = False
    can_manage_devices: bool = False

    def get(self, key: PermissionKey) -> bool:
        return self.model_dump(by_alias=True)[key.value]

    def to_dict(self) -> dict[str, bool]:
        return self.model_dump(by_alias=True)


class CareCircleMembership(CamelModel):
    model_config = ConfigDict(frozen=True)

    primary_user_id: str
    secondary_user_id: str
    relationship: str = "other"
    permissions: PermissionSet
    joined_at: Optional[str] = None
    last_active: Optional[str] = None


class HealthAlert(CamelModel):
    """A notification-worthy event. Never modified once created."""

    model_config = ConfigDict(frozen=True)

    id: str
    user_id: str
    type: str
    severity: Severity
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    acknowledged: bool = False
    escalated: bool = False
    related_data: Optional[dict[str, Any]] = None


class NotificationResult(CamelModel):
    """Outcome of one send attempt on one channel to one recipient."""

    notification_id: str
    alert_id: str
    recipient: str
    channel: NotificationChannel
    status: NotificationStatus
    sent_at: datetime
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    retry_count: int = Field(default=0, ge=0, le=MAX_RETRY_COUNT)

    @property
    def failed(self) -> bool:
        return self.status == NotificationStatus.FAILED

    def to_item(self) -> dict[str, Any]:
        """Render as a DynamoDB item: ISO timestamps, unset attributes dropped."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class ContactProfile(CamelModel):
    phone: Optional[str] = None
    email: Optional[str] = None


class AlertTypePreference(CamelModel):
    enabled: bool = True
    urgency_levels: Optional[list[Severity]] = None


class QuietHours(BaseModel):
    start: str = Field(pattern=r"^\d{2}:\d{2}$")
    end: str = Field(pattern=r"^\d{2}:\d{2}$")


class AlertPreferences(CamelModel):
    channels: Optional[list[NotificationChannel]] = None
    alert_types: dict[str, AlertTypePreference] = Field(default_factory=dict)
    quiet_hours: Optional[QuietHours] = None


class UserRecord(CamelModel):
    user_id: str
    profile: ContactProfile = Field(default_factory=ContactProfile)
    alert_preferences: Optional[AlertPreferences] = None
