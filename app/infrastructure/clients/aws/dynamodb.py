"""DynamoDB client for AWS operations.

Provides access to the DynamoDB operations the stores need (get_item,
put_item, update_item, query, scan) with consistent error handling and
OperationResult return types. Items cross this boundary in plain Python
form; conversion to and from the typed attribute format is done here with
boto3's serializers.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

from infrastructure.clients.aws.client import call_with_retries
from infrastructure.clients.aws.session_provider import SessionProvider
from infrastructure.operations.result import OperationResult


_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def _to_dynamo_value(value: Any) -> Any:
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo_value(v) for v in value]
    return value


def _from_dynamo_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo_value(v) for v in value]
    return value


def serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a plain dict into DynamoDB attribute-value format."""
    return {
        key: _serializer.serialize(_to_dynamo_value(value))
        for key, value in item.items()
    }


def deserialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Convert a DynamoDB attribute-value map into a plain dict."""
    return {
        key: _from_dynamo_value(_deserializer.deserialize(value))
        for key, value in item.items()
    }


def serialize_values(values: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize ExpressionAttributeValues."""
    return serialize_item(values)


class DynamoDBClient:
    """Client for DynamoDB operations.

    All methods return OperationResult for consistent error handling and
    downstream processing.

    Args:
        session_provider: SessionProvider instance for region/endpoint config
    """

    def __init__(self, session_provider: SessionProvider) -> None:
        self._session_provider = session_provider
        self._service_name = "dynamodb"

    def _call(self, method: str, max_retries: int = 3, **kwargs) -> OperationResult:
        return call_with_retries(
            self._session_provider.client(self._service_name),
            method,
            max_retries=max_retries,
            **kwargs,
        )

    def get_item(
        self, table_name: str, Key: Dict[str, Any], **kwargs
    ) -> OperationResult:
        """Get an item from DynamoDB.

        Args:
            table_name: Name of the DynamoDB table
            Key: Primary key of the item in plain form (e.g., {"id": "123"})
            **kwargs: Additional DynamoDB get_item parameters

        Returns:
            OperationResult whose data is the plain item, or None if absent
        """
        result = self._call(
            "get_item", TableName=table_name, Key=serialize_item(Key), **kwargs
        )
        if not result.is_success:
            return result
        item = (result.data or {}).get("Item")
        return OperationResult.success(data=deserialize_item(item) if item else None)

    def put_item(
        self,
        table_name: str,
        Item: Dict[str, Any],
        ExpressionAttributeValues: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> OperationResult:
        """Put an item into DynamoDB.

        Args:
            table_name: Name of the DynamoDB table
            Item: Item to store in plain form
            **kwargs: Additional put_item parameters (ConditionExpression, etc.)

        Returns:
            OperationResult with status
        """
        if ExpressionAttributeValues:
            kwargs["ExpressionAttributeValues"] = serialize_values(
                ExpressionAttributeValues
            )
        return self._call(
            "put_item", TableName=table_name, Item=serialize_item(Item), **kwargs
        )

    def update_item(
        self,
        table_name: str,
        Key: Dict[str, Any],
        ExpressionAttributeValues: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> OperationResult:
        """Update an item in DynamoDB.

        Args:
            table_name: Name of the DynamoDB table
            Key: Primary key of the item in plain form
            ExpressionAttributeValues: Plain expression values
            **kwargs: Additional update_item parameters (UpdateExpression, etc.)

        Returns:
            OperationResult whose data holds the plain Attributes, if returned
        """
        if ExpressionAttributeValues:
            kwargs["ExpressionAttributeValues"] = serialize_values(
                ExpressionAttributeValues
            )
        result = self._call(
            "update_item", TableName=table_name, Key=serialize_item(Key), **kwargs
        )
        if not result.is_success:
            return result
        attributes = (result.data or {}).get("Attributes")
        return OperationResult.success(
            data=deserialize_item(attributes) if attributes else None
        )

    def query(
        self,
        table_name: str,
        KeyConditionExpression: str,
        ExpressionAttributeValues: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> OperationResult:
        """Query one page of items using a key condition.

        Returns:
            OperationResult whose data is {"items": [...], "last_key": ...}
        """
        return self._paged(
            "query",
            TableName=table_name,
            KeyConditionExpression=KeyConditionExpression,
            ExpressionAttributeValues=ExpressionAttributeValues,
            **kwargs,
        )

    def scan(
        self,
        table_name: str,
        ExpressionAttributeValues: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> OperationResult:
        """Scan one page of a DynamoDB table.

        Returns:
            OperationResult whose data is {"items": [...], "last_key": ...}
        """
        return self._paged(
            "scan",
            TableName=table_name,
            ExpressionAttributeValues=ExpressionAttributeValues,
            **kwargs,
        )

    def _paged(
        self,
        method: str,
        ExpressionAttributeValues: Optional[Dict[str, Any]] = None,
        ExclusiveStartKey: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> OperationResult:
        if ExpressionAttributeValues:
            kwargs["ExpressionAttributeValues"] = serialize_values(
                ExpressionAttributeValues
            )
        if ExclusiveStartKey:
            kwargs["ExclusiveStartKey"] = serialize_item(ExclusiveStartKey)
        result = self._call(method, **kwargs)
        if not result.is_success:
            return result
        data = result.data or {}
        last_key = data.get("LastEvaluatedKey")
        return OperationResult.success(
            data={
                "items": [deserialize_item(item) for item in data.get("Items", [])],
                "last_key": deserialize_item(last_key) if last_key else None,
            }
        )

    def healthcheck(self) -> OperationResult:
        """Lightweight health check for DynamoDB.

        Performs a cheap `list_tables` call to verify the service is reachable.
        """
        return self._call("list_tables", max_retries=0, Limit=1)
