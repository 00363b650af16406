"""Token hygiene: forget endpoints that providers report as dead."""

from typing import TYPE_CHECKING, Dict, Iterable, List

from infrastructure.logging import get_module_logger
from infrastructure.notifications.models import Channel, DeliveryOutcome

if TYPE_CHECKING:
    from infrastructure.directory.base import MemberDirectory

logger = get_module_logger()


class TokenHygiene:
    """Reacts to invalid-endpoint outcomes reported by the gateways.

    Dead push tokens are removed from the member directory so later sends
    skip them. Invalid phone numbers and email addresses are owned by member
    management, so they are only logged.

    Args:
        directory: MemberDirectory that owns device tokens
    """

    def __init__(self, directory: "MemberDirectory"):
        self._directory = directory

    def process(self, outcomes: Iterable[DeliveryOutcome]) -> Dict[str, int]:
        """Handle every outcome flagged ``invalid_endpoint``.

        Returns:
            Dict with ``tokens_removed`` and ``endpoints_reported`` counts
        """
        dead_tokens: List[str] = []
        reported = 0
        for outcome in outcomes:
            if outcome.success or not outcome.invalid_endpoint:
                continue
            if outcome.channel == Channel.PUSH:
                dead_tokens.append(outcome.endpoint)
            else:
                reported += 1
                logger.warning(
                    "invalid_endpoint_reported",
                    channel=outcome.channel.value,
                    error_code=outcome.error_code,
                    error=outcome.error,
                )

        removed = 0
        if dead_tokens:
            unique = list(dict.fromkeys(dead_tokens))
            removed = self._directory.remove_device_tokens(unique)
            logger.info(
                "dead_device_tokens_pruned",
                tokens_reported=len(unique),
                tokens_removed=removed,
            )
        return {"tokens_removed": removed, "endpoints_reported": reported}
