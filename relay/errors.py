"""Exception types shared across the relay components."""


class RelayError(Exception):
    """Base class for relay errors."""


class TransportError(RelayError):
    """The chat transport rejected or failed to deliver an operation."""

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class LLMError(RelayError):
    """Every model in the fallback chain failed or returned nothing."""
