"""Structlog processors applied to every log entry.

Delivery code logs recipient phone numbers, device tokens and provider
credentials as a matter of course (``sms_batch_sent``, ``push_token_invalid``
...). The processors below keep those values out of the emitted output.
"""

from typing import Any, Callable

EventDict = dict[str, Any]
Processor = Callable[[Any, str, EventDict], EventDict]

# Provider credentials: Notify API key, Africa's Talking key, FCM service account
CREDENTIAL_PATTERNS = frozenset(
    {
        "password",
        "secret",
        "token",
        "api_key",
        "apikey",
        "authorization",
        "credential",
        "private_key",
        "jwt",
        "bearer",
    }
)

# Member contact details resolved from the directory
CONTACT_PATTERNS = frozenset({"phone", "msisdn", "email_address"})

SENSITIVE_PATTERNS = CREDENTIAL_PATTERNS | CONTACT_PATTERNS


def _should_mask(key: str, value: Any, patterns: frozenset[str]) -> bool:
    # ints are counters (tokens_removed, phones_sent), never secrets
    if value is None or isinstance(value, int):
        return False
    lowered = key.lower()
    return any(pattern in lowered for pattern in patterns)


def mask_sensitive_data(
    mask_value: str = "***REDACTED***",
    additional_patterns: frozenset[str] | None = None,
) -> Processor:
    """Build a processor replacing credential and contact values with ``mask_value``.

    Keys are matched case-insensitively on substrings, so ``phone_number`` and
    ``device_token`` are both caught.
    """
    patterns = SENSITIVE_PATTERNS | (additional_patterns or frozenset())

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        return {
            key: mask_value if _should_mask(key, value, patterns) else value
            for key, value in event_dict.items()
        }

    return processor


def truncate_large_values(max_length: int = 500) -> Processor:
    """Build a processor that shortens long strings such as provider error bodies."""

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        oversized = [
            key
            for key, value in event_dict.items()
            if isinstance(value, str) and len(value) > max_length
        ]
        for key in oversized:
            value = event_dict[key]
            event_dict[key] = (
                f"{value[:max_length]}...[truncated, {len(value)} chars total]"
            )
        return event_dict

    return processor


def add_environment_info(environment: str) -> Processor:
    """Build a processor stamping ``environment`` on each entry."""

    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["environment"] = environment
        return event_dict

    return processor
