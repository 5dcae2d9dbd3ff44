"""
Lambda: GET /users/{userId}/permissions
A primary user sees the permission matrix of their whole care circle; a care
circle member sees the permissions they hold for that primary user.
"""

import asyncio
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))

from pydantic import ValidationError
from carecircle.access_control import REASON_SELF_ACCESS
from carecircle.logger import bind_request, log_info, log_error, Timer
from carecircle.models import UserType
from carecircle.responses import success, error, unauthorized, forbidden
from carecircle.services import get_access_control, get_audit_logger, get_care_circle_store
from carecircle.validators import AuthorizerContext


async def _permission_matrix(user_id: str) -> dict:
    members = await get_care_circle_store().list_members(user_id)
    matrix = {
        m.secondary_user_id: {
            "permissions": m.permissions.to_dict(),
            "relationship": m.relationship,
            "joinedAt": m.joined_at,
            "lastActive": m.last_active,
        }
        for m in members
    }
    await get_audit_logger().log_care_circle_access(
        user_id, user_id, "view-permission-matrix", True, [REASON_SELF_ACCESS], {"memberCount": len(members)}
    )
    return {"userId": user_id, "permissionMatrix": matrix, "memberCount": len(members)}


def handler(event, context):
    bind_request(context)
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    try:
        caller = AuthorizerContext.model_validate(authorizer)
    except ValidationError:
        return unauthorized()

    path_params = event.get("pathParameters") or {}
    target_user_id = path_params.get("userId")
    if not target_user_id:
        return error("VALIDATION_ERROR", "userId is required")

    with Timer() as t:
        try:
            if caller.user_type == UserType.PRIMARY and caller.principal_id == target_user_id:
                data = asyncio.run(_permission_matrix(target_user_id))
            elif caller.user_type == UserType.SECONDARY:
                permissions = asyncio.run(
                    get_access_control().get_effective_permissions(caller.principal_id, target_user_id)
                )
                if permissions is None:
                    return forbidden("Not a care circle member")
                data = {
                    "primaryUserId": target_user_id,
                    "secondaryUserId": caller.principal_id,
                    "permissions": permissions.to_dict(),
                }
            else:
                return forbidden("Cannot view other users' permissions")
        except Exception:
            log_error("permissions_fetch_failed", user_id=caller.principal_id, error_code="DB_ERROR")
            return error("DB_ERROR", "Failed to fetch permissions", status_code=500)

    log_info(
        "permissions_fetched",
        user_id=caller.principal_id,
        user_type=caller.user_type.value,
        target_user_id=target_user_id,
        execution_time_ms=t.duration_ms,
    )
    return success(data)
