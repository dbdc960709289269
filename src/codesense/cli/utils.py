"""CLI utilities."""

from __future__ import annotations

import shlex
from pathlib import Path

import click

from codesense.config import CodeSenseConfig
from codesense.core.errors import CodeSenseError, OutOfRangeError
from codesense.document import CodeDocument, Symbol


def get_config(ctx: click.Context) -> CodeSenseConfig:
    config: CodeSenseConfig = ctx.obj["config"]
    return config


def open_document(path: Path, config: CodeSenseConfig, language: str | None = None) -> CodeDocument:
    """Open ``path`` as a CodeDocument, turning library errors into CLI errors."""
    try:
        return CodeDocument.open(path, language=language or config.parsing.language)
    except CodeSenseError as e:
        raise click.ClickException(e.message) from e
    except UnicodeDecodeError as e:
        raise click.ClickException(f"{path} is not UTF-8 text: {e.reason}") from e


def goto(document: CodeDocument, line: int, column: int) -> None:
    """Move the cursor to 1-based LINE/COLUMN or fail with a usage error."""
    try:
        document.goto_line(line, column)
    except OutOfRangeError as e:
        raise click.BadParameter(e.message, param_hint="LINE/COLUMN") from e


def server_command(server: str | None, config: CodeSenseConfig) -> list[str]:
    """Server command line from --server, else from configuration."""
    command = shlex.split(server) if server else list(config.analysis.server_command)
    if not command:
        raise click.UsageError(
            "No analysis server configured. Pass --server or set analysis.server_command "
            "in .codesense/config.yaml"
        )
    return command


def symbol_depth(document: CodeDocument, symbol: Symbol) -> int:
    depth = 0
    parent = document.parent_symbol(symbol)
    while parent is not None:
        depth += 1
        parent = document.parent_symbol(parent)
    return depth


def describe_symbol(document: CodeDocument, symbol: Symbol) -> str:
    line, column = document.buffer.to_position(symbol.selection_range.start)
    return f"{symbol.name} ({symbol.kind.value}) at {line + 1}:{column + 1}"
