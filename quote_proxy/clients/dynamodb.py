"""
DynamoDB-backed credential store shared by every proxy instance.

Expiry uses the table's TTL attribute ``expires_at`` (epoch seconds). DynamoDB
removes expired items lazily, so reads filter them out as well.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from quote_proxy.core.config import AWSSettings
from quote_proxy.core.errors import StoreUnavailableError

_SORT_KEY = "credential"


class DynamoDBClient:
    """Credential persistence on a table keyed by (pk, sk)."""

    supports_conditional_put = True

    def __init__(
        self,
        settings: AWSSettings,
        *,
        key_prefix: str = "",
        table: Any = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if table is None:
            if not settings.dynamodb_table_name:
                raise ValueError("DYNAMODB_TABLE_NAME must be set for the dynamodb backend.")
            resource = boto3.resource("dynamodb", region_name=settings.region_name)
            table = resource.Table(settings.dynamodb_table_name)
        self._table = table
        self._prefix = key_prefix
        self._clock = clock

    def _key(self, key: str) -> Dict[str, str]:
        return {"pk": self._prefix + key, "sk": _SORT_KEY}

    def _item(self, key: str, value: str, ttl_seconds: Optional[int]) -> Dict[str, Any]:
        item: Dict[str, Any] = {**self._key(key), "value": value}
        if ttl_seconds is not None:
            item["expires_at"] = int(self._clock()) + ttl_seconds
        return item

    def _get(self, key: str) -> Optional[str]:
        response = self._table.get_item(Key=self._key(key), ConsistentRead=True)
        item = response.get("Item")
        if not item:
            return None
        expires_at = item.get("expires_at")
        if expires_at is not None and int(expires_at) <= self._clock():
            return None
        return item.get("value")

    def _put(self, key: str, value: str, ttl_seconds: Optional[int]) -> None:
        self._table.put_item(Item=self._item(key, value, ttl_seconds))

    def _delete(self, key: str) -> None:
        self._table.delete_item(Key=self._key(key))

    def _put_if_absent(self, key: str, value: str, ttl_seconds: Optional[int]) -> bool:
        try:
            self._table.put_item(
                Item=self._item(key, value, ttl_seconds),
                ConditionExpression="attribute_not_exists(pk) OR expires_at <= :now",
                ExpressionAttributeValues={":now": int(self._clock())},
            )
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            raise
        return True

    async def _run(self, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except (BotoCoreError, ClientError) as exc:
            raise StoreUnavailableError(f"DynamoDB credential store failed: {exc}") from exc

    async def get(self, key: str) -> Optional[str]:
        return await self._run(self._get, key)

    async def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        await self._run(self._put, key, value, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._run(self._delete, key)

    async def put_if_absent(
        self, key: str, value: str, ttl_seconds: Optional[int] = None
    ) -> bool:
        return await self._run(self._put_if_absent, key, value, ttl_seconds)


__all__ = ["DynamoDBClient"]
