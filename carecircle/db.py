"""
DynamoDB access for the tables the permission and notification layers read
and write. Each store wraps one boto3 ``Table`` resource; boto3 is blocking, so
calls are pushed onto a worker thread and the stores expose coroutines.
"""

import asyncio
from typing import Optional

from boto3.dynamodb.conditions import Key

from carecircle.models import CareCircleMembership, NotificationResult, UserRecord


class CareCircleStore:
    """Care circle table keyed by (primaryUserId, secondaryUserId)."""

    def __init__(self, table):
        self._table = table

    async def get_member(self, primary_user_id: str, secondary_user_id: str) -> Optional[CareCircleMembership]:
        response = await asyncio.to_thread(
            self._table.get_item,
            Key={"primaryUserId": primary_user_id, "secondaryUserId": secondary_user_id},
        )
        item = response.get("Item")
        if not item:
            return None
        return CareCircleMembership.model_validate(item)

    async def list_members(self, primary_user_id: str) -> list[CareCircleMembership]:
        members = []
        query_args = {"KeyConditionExpression": Key("primaryUserId").eq(primary_user_id)}
        while True:
            response = await asyncio.to_thread(self._table.query, **query_args)
            members.extend(CareCircleMembership.model_validate(item) for item in response.get("Items", []))
            last_key = response.get("LastEvaluatedKey")
            if not last_key:
                return members
            query_args["ExclusiveStartKey"] = last_key


class UserStore:
    def __init__(self, table):
        self._table = table

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        response = await asyncio.to_thread(self._table.get_item, Key={"userId": user_id})
        item = response.get("Item")
        if not item:
            return None
        return UserRecord.model_validate(item)


class NotificationStore:
    """Notification results table. Writes overwrite by notificationId."""

    def __init__(self, table):
        self._table = table

    async def put_result(self, result: NotificationResult) -> None:
        await asyncio.to_thread(self._table.put_item, Item=result.to_item())
