"""
Audit trail for access decisions.

Every event goes to the structured log and, when an audit table is configured,
to DynamoDB with a seven year TTL. Audit failures are logged and swallowed so
that recording a decision can never change the decision itself.
"""

import asyncio
import random
import string
import time
from datetime import datetime, timezone
from typing import Optional

from carecircle.logger import log_error, log_info

AUDIT_RETENTION_SECONDS = 7 * 365 * 24 * 60 * 60

EVENT_DATA_ACCESS = "DATA_ACCESS"
EVENT_CARE_CIRCLE_ACCESS = "CARE_CIRCLE_ACCESS"
EVENT_PERMISSION_CHANGE = "PERMISSION_CHANGE"


def _random_suffix(length: int = 9) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


class AuditLogger:
    def __init__(self, table=None, environment: str = "unknown"):
        self._table = table
        self._environment = environment

    async def log_event(self, event: dict) -> None:
        now_ms = int(time.time() * 1000)
        enriched = {
            **event,
            "eventId": f"{event['userId']}-{now_ms}-{_random_suffix()}",
            "timestamp": event.get("timestamp") or datetime.now(timezone.utc).isoformat(),
            "ttl": now_ms // 1000 + AUDIT_RETENTION_SECONDS,
            "environment": self._environment,
        }

        log_info(
            "audit_event",
            event_type=enriched["eventType"],
            event_id=enriched["eventId"],
            user_id=enriched["userId"],
            target_user_id=enriched.get("targetUserId"),
            success=enriched["success"],
            permissions_checked=enriched.get("permissionsChecked"),
        )

        if self._table is None:
            return
        try:
            await asyncio.to_thread(self._table.put_item, Item=enriched)
        except Exception as e:
            log_error(
                "audit_write_failed",
                error_code="AUDIT_ERROR",
                event_type=enriched["eventType"],
                event_id=enriched["eventId"],
                reason=str(e),
            )

    async def log_data_access(
        self,
        user_id: str,
        user_type: str,
        target_user_id: str,
        data_type: str,
        action: str,
        success: bool,
        permissions_checked: list[str],
        metadata: Optional[dict] = None,
    ) -> None:
        await self.log_event({
            **(metadata or {}),
            "eventType": EVENT_DATA_ACCESS,
            "userId": user_id,
            "userType": user_type,
            "targetUserId": target_user_id,
            "dataType": data_type,
            "action": action,
            "success": success,
            "permissionsChecked": permissions_checked,
        })

    async def log_care_circle_access(
        self,
        secondary_user_id: str,
        primary_user_id: str,
        action: str,
        success: bool,
        permissions_checked: list[str],
        metadata: Optional[dict] = None,
    ) -> None:
        await self.log_event({
            "eventType": EVENT_CARE_CIRCLE_ACCESS,
            "userId": secondary_user_id,
            "userType": "secondary",
            "targetUserId": primary_user_id,
            "action": action,
            "success": success,
            "permissionsChecked": permissions_checked,
            "metadata": metadata or {},
        })

    async def log_permission_change(
        self,
        user_id: str,
        user_type: str,
        target_user_id: str,
        primary_user_id: str,
        old_permissions: dict,
        new_permissions: dict,
    ) -> None:
        await self.log_event({
            "eventType": EVENT_PERMISSION_CHANGE,
            "userId": user_id,
            "userType": user_type,
            "targetUserId": target_user_id,
            "primaryUserId": primary_user_id,
            "success": True,
            "oldPermissions": old_permissions,
            "newPermissions": new_permissions,
        })
