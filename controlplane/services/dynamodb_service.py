from __future__ import annotations

import logging
from typing import Any, Optional

import aioboto3
from boto3.dynamodb.conditions import Attr, Key
from botocore.exceptions import ClientError

from controlplane.services.config import AwsConfig
from controlplane.services.interfaces import Item

logger = logging.getLogger(__name__)


class DynamoDBServiceError(RuntimeError):
    pass


class ConditionalWriteError(DynamoDBServiceError):
    """An `if_not_exists` put found the key already present."""


def _client_error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class DynamoDBService:
    """Single-table access for the control-plane entity graph.

    Items are addressed by (`PK`, `SK`). Secondary indexes follow the `<Index>PK`
    naming used by the table template (`GSI1PK`, `GSI2PK`), so `query_index` only
    needs the index name and the partition value.
    """

    def __init__(self, config: AwsConfig, *, table_name: str) -> None:
        self._config = config
        self._table_name = table_name
        self._session = aioboto3.Session()

    @property
    def table_name(self) -> str:
        return self._table_name

    def _resource(self) -> Any:
        return self._session.resource(
            "dynamodb",
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    def _client(self) -> Any:
        return self._session.client(
            "dynamodb",
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    async def get_item(self, pk: str, sk: str) -> Optional[Item]:
        try:
            resource: Any = self._resource()
            async with resource as dynamo:
                table = await dynamo.Table(self._table_name)
                response = await table.get_item(Key={"PK": pk, "SK": sk})
            return response.get("Item")
        except Exception as exc:
            logger.exception("DynamoDB get_item failed")
            raise DynamoDBServiceError(f"Failed to read item (PK={pk}, SK={sk})") from exc

    async def put_item(self, item: Item, *, if_not_exists: bool = False) -> None:
        kwargs: dict[str, Any] = {"Item": item}
        if if_not_exists:
            kwargs["ConditionExpression"] = "attribute_not_exists(PK)"

        try:
            resource: Any = self._resource()
            async with resource as dynamo:
                table = await dynamo.Table(self._table_name)
                await table.put_item(**kwargs)
        except ClientError as exc:
            if _client_error_code(exc) == "ConditionalCheckFailedException":
                raise ConditionalWriteError(f"Item already exists (PK={item.get('PK')}, SK={item.get('SK')})") from exc
            logger.exception("DynamoDB put_item failed")
            raise DynamoDBServiceError(f"Failed to write item (PK={item.get('PK')}, SK={item.get('SK')})") from exc
        except Exception as exc:
            logger.exception("DynamoDB put_item failed")
            raise DynamoDBServiceError(f"Failed to write item (PK={item.get('PK')}, SK={item.get('SK')})") from exc

    async def update_item(self, pk: str, sk: str, fields: dict[str, Any]) -> None:
        if not fields:
            return

        names: dict[str, str] = {}
        values: dict[str, Any] = {}
        assignments: list[str] = []
        for index, (name, value) in enumerate(fields.items()):
            names[f"#f{index}"] = name
            values[f":v{index}"] = value
            assignments.append(f"#f{index} = :v{index}")

        try:
            resource: Any = self._resource()
            async with resource as dynamo:
                table = await dynamo.Table(self._table_name)
                await table.update_item(
                    Key={"PK": pk, "SK": sk},
                    UpdateExpression="SET " + ", ".join(assignments),
                    ExpressionAttributeNames=names,
                    ExpressionAttributeValues=values,
                )
        except Exception as exc:
            logger.exception("DynamoDB update_item failed")
            raise DynamoDBServiceError(f"Failed to update item (PK={pk}, SK={sk})") from exc

    async def delete_item(self, pk: str, sk: str) -> None:
        try:
            resource: Any = self._resource()
            async with resource as dynamo:
                table = await dynamo.Table(self._table_name)
                await table.delete_item(Key={"PK": pk, "SK": sk})
        except Exception as exc:
            logger.exception("DynamoDB delete_item failed")
            raise DynamoDBServiceError(f"Failed to delete item (PK={pk}, SK={sk})") from exc

    async def query_partition(self, pk: str, *, sk_prefix: Optional[str] = None) -> list[Item]:
        condition = Key("PK").eq(pk)
        if sk_prefix:
            condition = condition & Key("SK").begins_with(sk_prefix)
        return await self._query({"KeyConditionExpression": condition}, description=f"PK={pk}")

    async def query_index(
        self, index_name: str, partition_value: str, *, filters: Optional[dict[str, Any]] = None
    ) -> list[Item]:
        kwargs: dict[str, Any] = {
            "IndexName": index_name,
            "KeyConditionExpression": Key(f"{index_name}PK").eq(partition_value),
        }
        if filters:
            expression = None
            for name, value in filters.items():
                clause = Attr(name).eq(value)
                expression = clause if expression is None else expression & clause
            kwargs["FilterExpression"] = expression
        return await self._query(kwargs, description=f"{index_name}={partition_value}")

    async def _query(self, kwargs: dict[str, Any], *, description: str) -> list[Item]:
        items: list[Item] = []
        try:
            resource: Any = self._resource()
            async with resource as dynamo:
                table = await dynamo.Table(self._table_name)
                while True:
                    response = await table.query(**kwargs)
                    items.extend(response.get("Items", []))
                    last_key = response.get("LastEvaluatedKey")
                    if not last_key:
                        break
                    kwargs["ExclusiveStartKey"] = last_key
            return items
        except Exception as exc:
            logger.exception("DynamoDB query failed")
            raise DynamoDBServiceError(f"Failed to query items ({description})") from exc

    async def describe_table(self, table_name: Optional[str] = None) -> Optional[str]:
        """Return the live table status (e.g. ``ACTIVE``), or None when the table does not exist."""

        name = table_name or self._table_name
        try:
            client: Any = self._client()
            async with client as dynamo:
                response = await dynamo.describe_table(TableName=name)
            return response.get("Table", {}).get("TableStatus")
        except ClientError as exc:
            if _client_error_code(exc) == "ResourceNotFoundException":
                return None
            logger.exception("DynamoDB describe_table failed")
            raise DynamoDBServiceError(f"Failed to describe table: {name}") from exc
        except Exception as exc:
            logger.exception("DynamoDB describe_table failed")
            raise DynamoDBServiceError(f"Failed to describe table: {name}") from exc
