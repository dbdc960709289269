"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CODESENSE__SECTION__KEY)
3. Project YAML (.codesense/config.yaml)
4. Global YAML (~/.config/codesense/config.yaml)
5. Built-in defaults (this file)

Examples:
    CODESENSE__LOGGING__LEVEL=DEBUG
    CODESENSE__ANALYSIS__REQUEST_TIMEOUT_SEC=2.5
    CODESENSE__ANALYSIS__POSITION_ENCODING=utf-8
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
PositionEncodingName = Literal["utf-8", "utf-16", "utf-32"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CODESENSE__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG logs every reparse and analysis message.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class AnalysisConfig(BaseModel):
    """Language server bridge configuration.

    Env vars:
        CODESENSE__ANALYSIS__SERVER_COMMAND: Command line of the language server
        CODESENSE__ANALYSIS__REQUEST_TIMEOUT_SEC: Wait limit for one answer
        CODESENSE__ANALYSIS__POSITION_ENCODING: Column unit used on the wire
    """

    server_command: list[str] = Field(
        default_factory=list,
        description="Language server command line, e.g. ['clangd']. Empty disables analysis.",
    )
    request_timeout_sec: float = Field(
        default=5.0,
        description="Max wait for a semantic answer before reporting it unavailable. "
        "TRADEOFF: Too low drops slow answers; too high delays fallback.",
    )
    position_encoding: PositionEncodingName = Field(
        default="utf-16",
        description="Column unit when the server does not negotiate one. "
        "LSP mandates utf-16 unless both sides agree otherwise.",
    )
    trace_messages: bool = Field(
        default=False,
        description="Log every JSON-RPC message at DEBUG level.",
    )

    @field_validator("request_timeout_sec")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Timeout must be positive, got {v}")
        return v


class ParsingConfig(BaseModel):
    """Structural parsing configuration.

    Env vars:
        CODESENSE__PARSING__LANGUAGE: Force a language pack instead of detecting it
    """

    language: str | None = Field(
        default=None,
        description="Language pack name (c, cpp, python). Detected from the file name if unset.",
    )


class CodeSenseConfig(BaseModel):
    """Root configuration for CodeSense."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    parsing: ParsingConfig = Field(default_factory=ParsingConfig)
