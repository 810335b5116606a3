"""Browse the environment through a printenv | grep | sort | pager pipeline."""

from .config import DigenvConfig, LoggingConfig, PipelineConfig

__version__ = "0.1.0"

__all__ = [
    'DigenvConfig',
    'LoggingConfig',
    'PipelineConfig',
]
