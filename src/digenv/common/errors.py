"""Base error definitions for digenv."""

from typing import Any, Dict


class DigenvError(Exception):
    """Base exception for all digenv errors."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context


class ConfigurationError(DigenvError):
    """Configuration is invalid or missing."""
    pass


class SetupError(DigenvError):
    """Pipeline could not be set up; the whole invocation is aborted."""
    pass


class SystemCallError(SetupError):
    """An OS call made by the supervising process failed."""

    def __init__(self, message: str, operation: str, **context: Any) -> None:
        super().__init__(message, operation=operation, **context)
        self.operation = operation


class ResourceExhaustedError(SystemCallError):
    """The OS ran out of descriptors or processes."""
    pass


class StageExecError(DigenvError):
    """A stage could not load any of its program images.

    Only ever raised inside a child process.
    """
    pass
