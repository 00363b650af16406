"""AWS clients used by the DynamoDB notification store and member directory.

Obtain the shared client through ``infrastructure.services.get_dynamodb_client``;
items cross ``DynamoDBClient`` in plain Python form and every call returns an
``OperationResult``.
"""

from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.clients.aws.session_provider import SessionProvider

__all__ = [
    "DynamoDBClient",
    "SessionProvider",
]
