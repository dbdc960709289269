"""CodeSense error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Text (offsets, lines, columns)
- 4xxx: Syntax (grammars, queries)
- 8xxx: Analysis (language server bridge)
- 9xxx: Internal
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_FILE_NOT_FOUND = 2004

    # Text (3xxx)
    OUT_OF_RANGE = 3001

    # Syntax (4xxx)
    QUERY_SYNTAX_ERROR = 4001
    GRAMMAR_UNAVAILABLE = 4002

    # Analysis (8xxx)
    ANALYSIS_NOT_CONNECTED = 8001
    ANALYSIS_TIMEOUT = 8002
    ANALYSIS_SERVER_ERROR = 8003
    ANALYSIS_CONNECTION_LOST = 8004
    ANALYSIS_STALE = 8005
    ANALYSIS_CANCELLED = 8006

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class CodeSenseError(Exception):
    """Base error with structured context."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'OUT_OF_RANGE')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CodeSenseError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class OutOfRangeError(CodeSenseError):
    """An offset, line or column outside the buffer bounds."""

    @classmethod
    def offset(cls, offset: int, length: int) -> "OutOfRangeError":
        return cls(
            code=ErrorCode.OUT_OF_RANGE,
            message=f"Offset {offset} outside buffer of length {length}",
            details={"offset": offset, "length": length},
        )

    @classmethod
    def line(cls, line: int, line_count: int) -> "OutOfRangeError":
        return cls(
            code=ErrorCode.OUT_OF_RANGE,
            message=f"Line {line} outside buffer with {line_count} lines",
            details={"line": line, "line_count": line_count},
        )

    @classmethod
    def column(cls, line: int, column: int, line_length: int) -> "OutOfRangeError":
        return cls(
            code=ErrorCode.OUT_OF_RANGE,
            message=f"Column {column} outside line {line} of length {line_length}",
            details={"line": line, "column": column, "line_length": line_length},
        )

    @classmethod
    def span(cls, start: int, end: int, length: int) -> "OutOfRangeError":
        return cls(
            code=ErrorCode.OUT_OF_RANGE,
            message=f"Range {start}..{end} invalid for buffer of length {length}",
            details={"start": start, "end": end, "length": length},
        )

    @classmethod
    def bounds(cls, start: int, end: int) -> "OutOfRangeError":
        return cls(
            code=ErrorCode.OUT_OF_RANGE,
            message=f"Range {start}..{end} is negative or inverted",
            details={"start": start, "end": end},
        )


class QuerySyntaxError(CodeSenseError):
    """A structural query that failed to compile."""

    @classmethod
    def malformed(cls, pattern: str, grammar: str, reason: str) -> "QuerySyntaxError":
        return cls(
            code=ErrorCode.QUERY_SYNTAX_ERROR,
            message=f"Invalid {grammar} query: {reason}",
            details={"pattern": pattern, "grammar": grammar, "reason": reason},
        )


class GrammarUnavailableError(CodeSenseError):
    """No tree-sitter grammar is installed or known for a language."""

    @classmethod
    def not_installed(cls, language: str, package: str) -> "GrammarUnavailableError":
        return cls(
            code=ErrorCode.GRAMMAR_UNAVAILABLE,
            message=f"Grammar for {language} not installed (pip install {package})",
            details={"language": language, "package": package},
        )

    @classmethod
    def unknown(cls, name: str) -> "GrammarUnavailableError":
        return cls(
            code=ErrorCode.GRAMMAR_UNAVAILABLE,
            message=f"No language pack for: {name}",
            details={"name": name},
        )


class AnalysisUnavailableError(CodeSenseError):
    """Semantic analysis could not produce a fresh answer.

    Callers degrade to structural-only behavior. ``retryable`` is set when
    reissuing the same request may succeed (timeouts, edits that overtook
    the answer).
    """

    @classmethod
    def not_connected(cls) -> "AnalysisUnavailableError":
        return cls(
            code=ErrorCode.ANALYSIS_NOT_CONNECTED,
            message="No connection to an analysis server",
        )

    @classmethod
    def spawn_failed(cls, command: list[str], reason: str) -> "AnalysisUnavailableError":
        return cls(
            code=ErrorCode.ANALYSIS_NOT_CONNECTED,
            message=f"Could not start analysis server {command[0] if command else '?'}: {reason}",
            details={"command": command, "reason": reason},
        )

    @classmethod
    def timeout(cls, kind: str, seconds: float) -> "AnalysisUnavailableError":
        return cls(
            code=ErrorCode.ANALYSIS_TIMEOUT,
            message=f"{kind} request timed out after {seconds:g}s",
            retryable=True,
            details={"kind": kind, "timeout_sec": seconds},
        )

    @classmethod
    def server_error(cls, kind: str, code: int, reason: str) -> "AnalysisUnavailableError":
        return cls(
            code=ErrorCode.ANALYSIS_SERVER_ERROR,
            message=f"{kind} request failed: {reason}",
            details={"kind": kind, "server_code": code, "reason": reason},
        )

    @classmethod
    def connection_lost(cls, reason: str) -> "AnalysisUnavailableError":
        return cls(
            code=ErrorCode.ANALYSIS_CONNECTION_LOST,
            message=f"Analysis server connection lost: {reason}",
            details={"reason": reason},
        )

    @classmethod
    def stale(cls, kind: str, request_revision: int, revision: int) -> "AnalysisUnavailableError":
        return cls(
            code=ErrorCode.ANALYSIS_STALE,
            message=f"{kind} answer for revision {request_revision} discarded at {revision}",
            retryable=True,
            details={
                "kind": kind,
                "request_revision": request_revision,
                "revision": revision,
            },
        )

    @classmethod
    def cancelled(cls, kind: str) -> "AnalysisUnavailableError":
        return cls(
            code=ErrorCode.ANALYSIS_CANCELLED,
            message=f"{kind} request was cancelled",
            details={"kind": kind},
        )


class InternalError(CodeSenseError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
