"""Common utilities for digenv."""

from .config import ConfigLoader
from .logging import setup_logging, flush_logging, LogContext
from .errors import (
    DigenvError, ConfigurationError, SetupError, SystemCallError,
    ResourceExhaustedError, StageExecError
)

__all__ = [
    'ConfigLoader',
    'setup_logging',
    'flush_logging',
    'LogContext',
    'DigenvError',
    'ConfigurationError',
    'SetupError',
    'SystemCallError',
    'ResourceExhaustedError',
    'StageExecError',
]
