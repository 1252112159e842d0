"""
Exception hierarchy for exactblock.
"""


class ExactBlockError(Exception):
    """Base class for exactblock errors."""

    pass


class InvalidRuleError(ExactBlockError, ValueError):
    """A rule was constructed with fields that break its identity invariants."""

    pass


class StorageError(ExactBlockError):
    """Reading or writing keyed storage failed."""

    pass


class SerializationError(ExactBlockError):
    """The compiled filter list could not be encoded."""

    pass


class ImportSourceError(ExactBlockError):
    """An import source could not be read."""

    pass


class SocketError(ExactBlockError):
    """Socket error with actionable guidance."""

    pass


class PropagationError(ExactBlockError):
    """One or both sinks failed to update.

    The rule data itself is already durable when this is raised; ``result``
    holds the per-sink outcome.
    """

    def __init__(self, message: str, result: object) -> None:
        super().__init__(message)
        self.result = result
