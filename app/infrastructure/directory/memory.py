"""In-memory member directory for development and tests."""

import threading
from typing import Dict, Iterable, List, Optional

from infrastructure.directory.base import endpoints_for
from infrastructure.directory.models import Endpoints, Member
from infrastructure.logging import get_module_logger
from infrastructure.notifications.models import Channel

logger = get_module_logger()


class InMemoryMemberDirectory:
    """Thread-safe MemberDirectory backed by a dict."""

    def __init__(self, members: Optional[Iterable[Member]] = None) -> None:
        self._members: Dict[str, Member] = {}
        self._lock = threading.Lock()
        for member in members or []:
            self.upsert(member)

    def upsert(self, member: Member) -> None:
        with self._lock:
            self._members[member.id] = member.model_copy(deep=True)

    def get(self, user_id: str) -> Optional[Member]:
        with self._lock:
            member = self._members.get(user_id)
            return member.model_copy(deep=True) if member else None

    def resolve_endpoints(self, user_id: str, channel: Channel) -> Endpoints:
        return endpoints_for(self.get(user_id), channel)

    def resolve_by_role(self, role: str) -> List[str]:
        with self._lock:
            return [
                m.id for m in self._members.values() if m.is_active and m.role == role
            ]

    def resolve_all(self, active_only: bool = True) -> List[str]:
        with self._lock:
            return [
                m.id for m in self._members.values() if m.is_active or not active_only
            ]

    def resolve_custom(self, user_ids: List[str]) -> List[str]:
        with self._lock:
            return [
                user_id
                for user_id in dict.fromkeys(user_ids)
                if user_id in self._members and self._members[user_id].is_active
            ]

    def remove_device_tokens(self, tokens: List[str]) -> int:
        dead = set(tokens)
        removed = 0
        with self._lock:
            for member in self._members.values():
                kept = [t for t in member.device_tokens if t not in dead]
                removed += len(member.device_tokens) - len(kept)
                member.device_tokens = kept
        if removed:
            logger.info("device_tokens_removed", tokens_removed=removed)
        return removed
