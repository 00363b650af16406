"""Errors for the notifications module."""

from typing import Optional


class NotificationError(Exception):
    """Base class for notification domain errors."""


class NotificationNotFoundError(NotificationError):
    """Raised when a notification record does not exist.

    Attributes:
        record_id: id that was looked up
    """

    def __init__(self, record_id: str):
        super().__init__(f"Notification not found: {record_id}")
        self.record_id = record_id


class ChannelNotEnabledError(NotificationError):
    """Raised when a delivery update targets a channel the record did not request."""

    def __init__(self, record_id: Optional[str], channel: str):
        super().__init__(f"Channel '{channel}' is not enabled for notification {record_id}")
        self.record_id = record_id
        self.channel = channel


class NoRecipientsError(NotificationError):
    """Raised when a bulk selector expands to zero recipients."""

    def __init__(self, selector: str):
        super().__init__(f"No recipients found for selector '{selector}'")
        self.selector = selector


class InvalidSelectorError(NotificationError):
    """Raised when a bulk recipient selector cannot be parsed."""


class NotificationAccessError(NotificationError):
    """Raised when a member acts on a notification addressed to someone else."""

    def __init__(self, record_id: str, user_id: str):
        super().__init__(f"User {user_id} cannot access notification {record_id}")
        self.record_id = record_id
        self.user_id = user_id


class ClaimRejectedError(NotificationError):
    """Raised inside a store update when a channel is no longer claimable.

    Another worker claimed or finished the channel between the due query and
    the claim; the caller skips it.
    """


class ConcurrentModificationError(NotificationError):
    """Raised when an optimistic update keeps losing the version race."""

    def __init__(self, record_id: str):
        super().__init__(f"Concurrent modification of notification {record_id}")
        self.record_id = record_id
