import enum


class ErrorKind(str, enum.Enum):
    """Classification attached to a turn that completed in degraded mode."""

    UPSTREAM = "upstream_unavailable"


class EmptyMessageError(ValueError):
    """Raised before any write when a patient message is blank."""

    def __init__(self) -> None:
        super().__init__("Message must not be empty")


class ReasoningServiceError(RuntimeError):
    """The completion or extraction service failed, timed out or returned garbage."""


class PersistenceError(RuntimeError):
    """The transcript or summary store could not complete a durable write or read."""


__all__ = [
    "ErrorKind",
    "EmptyMessageError",
    "ReasoningServiceError",
    "PersistenceError",
]
