"""Config module exports."""

from codesense.config.loader import load_config
from codesense.config.models import (
    AnalysisConfig,
    CodeSenseConfig,
    LoggingConfig,
    ParsingConfig,
)

__all__ = [
    "load_config",
    "AnalysisConfig",
    "CodeSenseConfig",
    "LoggingConfig",
    "ParsingConfig",
]
