"""
Care circle access control.

A primary user owns their data. A secondary user (family member, caregiver)
sees a category of that data only when their care circle membership grants the
single permission key the category maps to. Every decision is audited, and any
failure while deciding is a denial.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from carecircle.logger import log_error
from carecircle.models import (
    AccessAction,
    DataType,
    PermissionKey,
    PermissionSet,
    UserType,
)

PERMISSION_MATRIX: dict[DataType, PermissionKey] = {
    DataType.VITALS: PermissionKey.CAN_VIEW_VITALS,
    DataType.MEDICATIONS: PermissionKey.CAN_VIEW_MEDICATIONS,
    DataType.APPOINTMENTS: PermissionKey.CAN_VIEW_APPOINTMENTS,
    DataType.HEALTH_RECORDS: PermissionKey.CAN_VIEW_HEALTH_RECORDS,
    DataType.ALERTS: PermissionKey.CAN_RECEIVE_ALERTS,
    DataType.MESSAGES: PermissionKey.CAN_SEND_MESSAGES,
    DataType.DEVICES: PermissionKey.CAN_MANAGE_DEVICES,
}

_unmapped = set(DataType) - set(PERMISSION_MATRIX)
if _unmapped:
    raise RuntimeError(f"Data types without a permission mapping: {sorted(t.value for t in _unmapped)}")
if len(set(PERMISSION_MATRIX.values())) != len(PERMISSION_MATRIX):
    raise RuntimeError("Each data type must map to its own permission key")

# Presets offered when a primary user invites someone to their care circle.
FULL_ACCESS_PERMISSIONS = PermissionSet(
    can_view_vitals=True,
    can_view_medications=True,
    can_view_appointments=True,
    can_view_health_records=True,
    can_receive_alerts=True,
    can_send_messages=True,
    can_manage_devices=True,
)

DEFAULT_PERMISSIONS = PermissionSet(
    can_view_vitals=True,
    can_view_medications=True,
    can_view_appointments=True,
    can_view_health_records=False,  # sensitive, opt-in
    can_receive_alerts=True,
    can_send_messages=True,
    can_manage_devices=False,
)

LIMITED_ACCESS_PERMISSIONS = PermissionSet(
    can_view_vitals=False,
    can_view_medications=False,
    can_view_appointments=True,
    can_view_health_records=False,
    can_receive_alerts=False,
    can_send_messages=True,
    can_manage_devices=False,
)

REASON_SELF_ACCESS = "self-access"
REASON_MEMBERSHIP = "care-circle-membership"
REASON_CROSS_USER = "cross-user-access"
REASON_ERROR = "error"
REASON_SELF_WRITE = "self-write"
REASON_WRITE_ACCESS = "write-access"


def required_permission(data_type: Union[DataType, str]) -> PermissionKey:
    """The one permission key that gates a data category."""
    return PERMISSION_MATRIX[DataType(data_type)]


def _value(v) -> str:
    return getattr(v, "value", v)


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    permissions_checked: list[str]
    metadata: dict[str, Any] = field(default_factory=dict)


class AccessControl:
    """Resolves care circle permissions against the membership store."""

    def __init__(self, membership_store, audit):
        self._members = membership_store
        self._audit = audit

    async def check_permission(
        self,
        requesting_user_id: str,
        requesting_user_type: Union[UserType, str],
        target_user_id: str,
        data_type: Union[DataType, str],
        action: Union[AccessAction, str] = AccessAction.READ,
    ) -> bool:
        """Return whether the requester may perform `action` on `data_type` of the target user."""
        try:
            decision = await self._resolve(requesting_user_id, requesting_user_type, target_user_id, data_type)
        except Exception as e:
            log_error(
                "permission_check_failed",
                error_code="PERMISSION_CHECK_ERROR",
                requesting_user_id=requesting_user_id,
                target_user_id=target_user_id,
                data_type=_value(data_type),
                reason=str(e),
            )
            decision = PermissionDecision(False, [REASON_ERROR], {"error": str(e) or type(e).__name__})

        await self._record(
            self._audit.log_data_access(
                requesting_user_id,
                _value(requesting_user_type),
                target_user_id,
                _value(data_type),
                _value(action),
                decision.allowed,
                decision.permissions_checked,
                decision.metadata,
            )
        )
        return decision.allowed

    async def _resolve(self, requesting_user_id, requesting_user_type, target_user_id, data_type) -> PermissionDecision:
        user_type = UserType(requesting_user_type)
        permission_key = required_permission(data_type)

        if user_type == UserType.PRIMARY and requesting_user_id == target_user_id:
            return PermissionDecision(True, [REASON_SELF_ACCESS], {"reason": "Primary user accessing own data"})

        if user_type == UserType.SECONDARY:
            member = await self._members.get_member(target_user_id, requesting_user_id)
            if member is None:
                return PermissionDecision(False, [REASON_MEMBERSHIP], {"reason": "Not a care circle member"})
            return PermissionDecision(
                member.permissions.get(permission_key),
                [permission_key.value],
                {"relationship": member.relationship, "allPermissions": member.permissions.to_dict()},
            )

        # Primary accounts are peers; one never reads another's data.
        return PermissionDecision(
            False, [REASON_CROSS_USER], {"reason": "Primary user attempting to access another user's data"}
        )

    async def check_multiple_permissions(
        self,
        requesting_user_id: str,
        requesting_user_type: Union[UserType, str],
        target_user_id: str,
        data_types: list[Union[DataType, str]],
        action: Union[AccessAction, str] = AccessAction.READ,
    ) -> dict[str, bool]:
        """Check each data type independently and concurrently, keyed in input order."""
        decisions = await asyncio.gather(*(
            self.check_permission(requesting_user_id, requesting_user_type, target_user_id, data_type, action)
            for data_type in data_types
        ))
        return {_value(data_type): allowed for data_type, allowed in zip(data_types, decisions)}

    async def verify_care_circle_membership(self, secondary_user_id: str, primary_user_id: str) -> bool:
        try:
            member = await self._members.get_member(primary_user_id, secondary_user_id)
        except Exception as e:
            log_error("membership_verification_failed", error_code="MEMBERSHIP_LOOKUP_ERROR", reason=str(e))
            await self._record(
                self._audit.log_care_circle_access(
                    secondary_user_id, primary_user_id, "verify-membership", False, [REASON_ERROR], {"error": str(e)}
                )
            )
            return False

        is_member = member is not None
        await self._record(
            self._audit.log_care_circle_access(
                secondary_user_id,
                primary_user_id,
                "verify-membership",
                is_member,
                [REASON_MEMBERSHIP],
                {"isMember": is_member},
            )
        )
        return is_member

    async def get_effective_permissions(self, secondary_user_id: str, primary_user_id: str) -> Optional[PermissionSet]:
        """Full permission set of a verified member, or None when not a member."""
        try:
            member = await self._members.get_member(primary_user_id, secondary_user_id)
        except Exception as e:
            log_error("get_permissions_failed", error_code="MEMBERSHIP_LOOKUP_ERROR", reason=str(e))
            await self._record(
                self._audit.log_care_circle_access(
                    secondary_user_id, primary_user_id, "get-permissions", False, [REASON_ERROR], {"error": str(e)}
                )
            )
            return None

        if member is None:
            await self._record(
                self._audit.log_care_circle_access(
                    secondary_user_id,
                    primary_user_id,
                    "get-permissions",
                    False,
                    [REASON_MEMBERSHIP],
                    {"reason": "Not a care circle member"},
                )
            )
            return None

        permissions = member.permissions.to_dict()
        await self._record(
            self._audit.log_care_circle_access(
                secondary_user_id,
                primary_user_id,
                "get-permissions",
                True,
                list(permissions),
                {"permissions": permissions},
            )
        )
        return member.permissions

    async def check_write_access(
        self,
        requesting_user_id: str,
        requesting_user_type: Union[UserType, str],
        target_user_id: str,
        data_type: Union[DataType, str],
    ) -> bool:
        """Only a primary user writes their own data; care circle access is read-only."""
        allowed = _value(requesting_user_type) == UserType.PRIMARY.value and requesting_user_id == target_user_id
        if allowed:
            checked, metadata = [REASON_SELF_WRITE], {"reason": "Primary user writing own data"}
        else:
            checked, metadata = [REASON_WRITE_ACCESS], {"reason": "Write access denied"}

        await self._record(
            self._audit.log_data_access(
                requesting_user_id,
                _value(requesting_user_type),
                target_user_id,
                _value(data_type),
                AccessAction.WRITE.value,
                allowed,
                checked,
                metadata,
            )
        )
        return allowed

    async def _record(self, audit_call) -> None:
        try:
            await audit_call
        except Exception as e:
            log_error("audit_call_failed", error_code="AUDIT_ERROR", reason=str(e))


def filter_data_by_permissions(
    data: Mapping[str, Any],
    permissions: PermissionSet,
    data_type_map: Mapping[str, Union[DataType, str]],
) -> dict[str, Any]:
    """Project `data` down to the fields `permissions` allow.

    Fields without a data type mapping are passed through. This only shapes a
    payload; the caller is responsible for resolving `permissions` correctly.
    """
    filtered = {}
    for key, value in data.items():
        data_type = data_type_map.get(key)
        if data_type is None or permissions.get(required_permission(data_type)):
            filtered[key] = value
    return filtered
