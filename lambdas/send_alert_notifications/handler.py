"""
Lambda: EventBridge AlertCreated
Notifies a primary user's care circle about a new health alert.
"""

import asyncio
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))

from pydantic import ValidationError
from carecircle.logger import bind_request, log_info, log_warning, log_error, Timer
from carecircle.models import DataType, UserType
from carecircle.services import (
    get_access_control,
    get_care_circle_store,
    get_dispatcher,
    get_preference_filter,
)
from carecircle.validators import AlertCreatedDetail


def _summary(alert_id, results):
    failed = [r for r in results if r.failed]
    return {
        "alertId": alert_id,
        "total": len(results),
        "successful": len(results) - len(failed),
        "failed": len(failed),
    }


async def _notify_care_circle(detail: AlertCreatedDetail) -> dict:
    alert = detail.alert
    access = get_access_control()

    members = await get_care_circle_store().list_members(detail.user_id)
    recipients = []
    for member in members:
        if await access.check_permission(
            member.secondary_user_id, UserType.SECONDARY, detail.user_id, DataType.ALERTS
        ):
            recipients.append(member.secondary_user_id)

    if not recipients:
        log_info("alert_notifications_skipped", alert_id=alert.id, member_count=len(members))
        return _summary(alert.id, [])

    routes = await get_preference_filter().route_care_circle(recipients, alert)
    dispatcher = get_dispatcher()
    batches = await asyncio.gather(*(
        dispatcher.send_notification_to_care_circle(user_ids, alert, list(channels))
        for channels, user_ids in routes.items()
    ))
    results = [result for batch in batches for result in batch]

    summary = _summary(alert.id, results)
    if summary["failed"]:
        log_warning(
            "alert_notifications_partially_failed",
            alert_id=alert.id,
            failed_channels=sorted({r.channel.value for r in results if r.failed}),
            failed=summary["failed"],
        )
    return summary


def handler(event, context):
    bind_request(context)
    try:
        detail = AlertCreatedDetail.model_validate(event.get("detail") or {})
    except ValidationError as e:
        # A malformed event will not get better on redelivery.
        log_error("alert_notifications_failed", error_code="VALIDATION_ERROR", errors=e.error_count())
        return {"status": "rejected", "reason": "VALIDATION_ERROR"}

    log_info(
        "alert_notifications_started",
        alert_id=detail.alert.id,
        user_id=detail.user_id,
        type=detail.alert.type,
        severity=detail.alert.severity.value,
    )

    with Timer() as t:
        try:
            summary = asyncio.run(_notify_care_circle(detail))
        except Exception:
            log_error(
                "alert_notifications_failed",
                alert_id=detail.alert.id,
                error_code="NOTIFICATION_ERROR",
            )
            raise

    log_info("alert_notifications_sent", **summary, execution_time_ms=t.duration_ms)
    return {"status": "ok", **summary}
