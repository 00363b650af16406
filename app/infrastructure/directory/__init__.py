"""Member directory used to resolve notification recipients."""

from infrastructure.directory.base import MemberDirectory, endpoints_for
from infrastructure.directory.dynamodb import DynamoDBMemberDirectory
from infrastructure.directory.memory import InMemoryMemberDirectory
from infrastructure.directory.models import Endpoints, Member

__all__ = [
    "MemberDirectory",
    "InMemoryMemberDirectory",
    "DynamoDBMemberDirectory",
    "Endpoints",
    "Member",
    "endpoints_for",
]
