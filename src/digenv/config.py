"""Configuration models for digenv."""

from typing import Any, List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator


def _check_program_name(value: str) -> str:
    if not value or any(ch.isspace() for ch in value):
        raise ValueError(f"invalid program name: {value!r}")
    return value


class LoggingConfig(BaseModel):
    """Where digenv's own diagnostics go and how they look.

    Logs share the terminal with the pager, so only warnings and errors are
    shown unless asked otherwise.
    """
    
    model_config = ConfigDict(extra='forbid')
    
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING",
        description="Lowest level written to stderr"
    )
    format: Literal["simple", "detailed", "json"] = Field(
        default="simple",
        description="Formatter used on stderr"
    )
    file: Optional[str] = Field(
        default=None,
        description="Rotating JSON log file, disabled when unset"
    )
    
    @field_validator('level', mode='before')
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v
    
    @field_validator('format', mode='before')
    @classmethod
    def lower_format(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class PipelineConfig(BaseModel):
    """Programs and policies for the filter pipeline."""
    
    model_config = ConfigDict(extra='forbid')
    
    dump_program: str = Field(
        default="printenv",
        description="Program that writes the environment to stdout"
    )
    filter_program: str = Field(
        default="grep",
        description="Program run with the command line arguments as filter"
    )
    sort_program: str = Field(
        default="sort",
        description="Program that sorts its input lines"
    )
    pager_variable: str = Field(
        default="PAGER",
        description="Environment variable naming the preferred pager"
    )
    fallback_pagers: List[str] = Field(
        default_factory=lambda: ["less", "more"],
        min_length=1,
        description="Pagers tried in order when the preferred one cannot be run"
    )
    terminate_on_abort: bool = Field(
        default=False,
        description="Terminate and reap already spawned stages when setup fails"
    )
    
    @field_validator('dump_program', 'filter_program', 'sort_program', 'pager_variable')
    @classmethod
    def validate_program(cls, v: str) -> str:
        """Reject empty names and names containing whitespace."""
        return _check_program_name(v)
    
    @field_validator('fallback_pagers')
    @classmethod
    def validate_pagers(cls, v: List[str]) -> List[str]:
        """Apply the program name rule to every fallback pager."""
        return [_check_program_name(name) for name in v]


class DigenvConfig(BaseModel):
    """Root configuration for digenv."""
    
    model_config = ConfigDict(extra='forbid')
    
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
