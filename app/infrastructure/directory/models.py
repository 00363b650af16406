"""Member directory models."""

from dataclasses import dataclass, field
from typing import List, Optional

from pydantic import BaseModel, Field


class Member(BaseModel):
    """A chama member as seen by the notification engine.

    Attributes:
        id: Member id (the recipient id on notification records)
        name: Display name
        role: Role within the chama (member, treasurer, secretary, chairperson, admin)
        is_active: Inactive members are skipped by bulk selectors
        phone_number: Phone number as entered; normalised when SMS is sent
        email: Email address
        device_tokens: FCM registration tokens for the member's devices
    """

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    role: str = "member"
    is_active: bool = True
    phone_number: Optional[str] = None
    email: Optional[str] = None
    device_tokens: List[str] = Field(default_factory=list)


@dataclass
class Endpoints:
    """Contact points for one member.

    Only the fields relevant to the requested channel are filled in.
    """

    phone_number: Optional[str] = None
    device_tokens: List[str] = field(default_factory=list)
    email: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.phone_number or self.device_tokens or self.email)
