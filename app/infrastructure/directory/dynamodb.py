"""DynamoDB-backed member directory.

Reads the users table maintained by the member registration service. Only
the attributes the notification engine needs are read; device token cleanup
is the one write.

Table Schema:
    PK: id (String)
    Attributes: name, role, is_active, phone_number, email, device_tokens
"""

from typing import Any, Dict, List, Optional

from infrastructure.clients.aws.dynamodb import DynamoDBClient
from infrastructure.directory.base import endpoints_for
from infrastructure.directory.models import Endpoints, Member
from infrastructure.logging import get_module_logger
from infrastructure.notifications.models import Channel

logger = get_module_logger()


class DynamoDBMemberDirectory:
    """MemberDirectory over the DynamoDB users table.

    Args:
        client: DynamoDBClient used for all calls
        table_name: Users table name
        page_size: Items read per scan page
    """

    def __init__(self, client: DynamoDBClient, table_name: str, page_size: int = 200):
        self.client = client
        self.table_name = table_name
        self.page_size = page_size

    def _get(self, user_id: str) -> Optional[Member]:
        result = self.client.get_item(self.table_name, Key={"id": user_id})
        if not result.is_success:
            logger.error(
                "directory_lookup_failed",
                user_id=user_id,
                error=result.message,
                error_code=result.error_code,
            )
            return None
        return Member.model_validate(result.data) if result.data else None

    def _scan(self, **kwargs: Any) -> List[Member]:
        members: List[Member] = []
        last_key: Optional[Dict[str, Any]] = None
        while True:
            result = self.client.scan(
                self.table_name,
                Limit=self.page_size,
                ExclusiveStartKey=last_key,
                **kwargs,
            )
            if not result.is_success:
                logger.error(
                    "directory_scan_failed",
                    error=result.message,
                    error_code=result.error_code,
                )
                raise RuntimeError(f"Directory scan failed: {result.message}")
            members.extend(Member.model_validate(item) for item in result.data["items"])
            last_key = result.data["last_key"]
            if not last_key:
                return members

    def resolve_endpoints(self, user_id: str, channel: Channel) -> Endpoints:
        return endpoints_for(self._get(user_id), channel)

    def resolve_by_role(self, role: str) -> List[str]:
        members = self._scan(
            FilterExpression="#role = :role AND is_active = :active",
            ExpressionAttributeNames={"#role": "role"},
            ExpressionAttributeValues={":role": role, ":active": True},
        )
        return [m.id for m in members]

    def resolve_all(self, active_only: bool = True) -> List[str]:
        if not active_only:
            return [m.id for m in self._scan()]
        members = self._scan(
            FilterExpression="is_active = :active",
            ExpressionAttributeValues={":active": True},
        )
        return [m.id for m in members]

    def resolve_custom(self, user_ids: List[str]) -> List[str]:
        resolved = []
        for user_id in dict.fromkeys(user_ids):
            member = self._get(user_id)
            if member is not None and member.is_active:
                resolved.append(user_id)
        return resolved

    def remove_device_tokens(self, tokens: List[str]) -> int:
        removed = 0
        for token in dict.fromkeys(tokens):
            holders = self._scan(
                FilterExpression="contains(device_tokens, :token)",
                ExpressionAttributeValues={":token": token},
            )
            for member in holders:
                kept = [t for t in member.device_tokens if t != token]
                result = self.client.update_item(
                    self.table_name,
                    Key={"id": member.id},
                    UpdateExpression="SET device_tokens = :kept",
                    ExpressionAttributeValues={":kept": kept},
                )
                if result.is_success:
                    removed += len(member.device_tokens) - len(kept)
                else:
                    logger.error(
                        "device_token_removal_failed",
                        user_id=member.id,
                        error=result.message,
                    )
        if removed:
            logger.info("device_tokens_removed", tokens_removed=removed)
        return removed
