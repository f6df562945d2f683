"""Cancel stale replies when a conversation speaks again."""

from ..logging_config import get_logger
from .registry import DeliveryRegistry

logger = get_logger(__name__)


class InterruptionController:
    """Drops any pending dispatch for a key on new inbound activity."""

    def __init__(self, registry: DeliveryRegistry):
        self._registry = registry

    def interrupt(self, key: str) -> bool:
        """Cancel the live dispatch for `key`, if any. Must not be awaited."""
        cancelled = self._registry.cancel(key)
        if cancelled:
            logger.info("Interrupted pending reply", extra={"conversation": key})
        return cancelled
