"""Member directory contract.

The notification engine never owns member data. It asks a directory for
contact endpoints when dispatching, for member ids when expanding a bulk
selector, and tells it when device tokens turn out to be dead.
"""

from typing import List, Optional, Protocol

from infrastructure.directory.models import Endpoints, Member
from infrastructure.notifications.models import Channel


def endpoints_for(member: Optional[Member], channel: Channel) -> Endpoints:
    """Pick the endpoints of ``member`` that ``channel`` can use."""
    if member is None or not member.is_active:
        return Endpoints()
    if channel == Channel.PUSH:
        return Endpoints(device_tokens=list(dict.fromkeys(member.device_tokens)))
    if channel == Channel.SMS:
        return Endpoints(phone_number=member.phone_number or None)
    if channel == Channel.EMAIL:
        return Endpoints(email=member.email or None)
    return Endpoints()


class MemberDirectory(Protocol):
    """Lookup interface used by the dispatcher, bulk fan-out and token hygiene."""

    def resolve_endpoints(self, user_id: str, channel: Channel) -> Endpoints:
        """Return the endpoints ``channel`` can use for ``user_id``.

        Unknown or inactive members resolve to empty endpoints.
        """
        ...

    def resolve_by_role(self, role: str) -> List[str]:
        """Ids of active members holding ``role``."""
        ...

    def resolve_all(self, active_only: bool = True) -> List[str]:
        """Ids of all members, by default only active ones."""
        ...

    def resolve_custom(self, user_ids: List[str]) -> List[str]:
        """The subset of ``user_ids`` that exist and are active, order kept."""
        ...

    def remove_device_tokens(self, tokens: List[str]) -> int:
        """Remove ``tokens`` from every member holding them; return how many went."""
        ...
