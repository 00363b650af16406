"""Outcome categories for store and provider calls."""

from enum import Enum


class OperationStatus(Enum):
    """How a call ended, from the point of view of the retry logic.

    ``TRANSIENT_ERROR`` spends an attempt and is retried, ``PERMANENT_ERROR``
    fails the channel immediately, and ``UNAVAILABLE`` releases the channel
    without spending an attempt. ``UNAUTHORIZED`` and ``NOT_FOUND`` are
    returned by the classifiers for callers that map them further.
    """

    SUCCESS = "success"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
