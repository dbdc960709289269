"""Core module exports."""

from codesense.core.errors import (
    AnalysisUnavailableError,
    CodeSenseError,
    ConfigError,
    ErrorCode,
    GrammarUnavailableError,
    InternalError,
    OutOfRangeError,
    QuerySyntaxError,
)
from codesense.core.logging import (
    configure_logging,
    current_operation_id,
    operation_context,
)

__all__ = [
    # Errors
    "AnalysisUnavailableError",
    "CodeSenseError",
    "ConfigError",
    "ErrorCode",
    "GrammarUnavailableError",
    "InternalError",
    "OutOfRangeError",
    "QuerySyntaxError",
    # Logging
    "configure_logging",
    "current_operation_id",
    "operation_context",
]
