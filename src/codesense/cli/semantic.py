"""Semantic commands: hover, follow.

Each command starts the configured analysis server, performs one request
and shuts the server down. When the server cannot answer, the command
falls back to what the syntax tree knows about the position.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import click
from rich.console import Console

from codesense.analysis import JsonRpcConnection, supported_encodings
from codesense.cli.utils import describe_symbol, get_config, goto, open_document, server_command
from codesense.config import CodeSenseConfig
from codesense.core.errors import AnalysisUnavailableError, CodeSenseError
from codesense.document.semantic import SemanticDocument

T = TypeVar("T")

_server_option = click.option(
    "--server",
    "-s",
    default=None,
    help="Analysis server command line (default: analysis.server_command from config)",
)


async def run_with_server(
    path: Path,
    command: list[str],
    config: CodeSenseConfig,
    action: Callable[[SemanticDocument], Awaitable[T]],
) -> T:
    """Open ``path`` against a freshly started server and run ``action`` on it."""
    root = path.resolve().parent
    connection = await JsonRpcConnection.spawn(
        command, cwd=root, trace=config.analysis.trace_messages
    )
    try:
        await connection.initialize(
            root.as_uri(),
            position_encodings=supported_encodings(),
            timeout=config.analysis.request_timeout_sec,
        )
        document = SemanticDocument.open(
            path,
            connection=connection,
            config=config.analysis,
            language=config.parsing.language,
        )
        try:
            return await action(document)
        finally:
            document.close()
    finally:
        await connection.shutdown()


def _fallback(path: Path, config: CodeSenseConfig, line: int, column: int, err: Exception) -> None:
    console = Console(stderr=True)
    console.print(f"[yellow]![/yellow] Analysis unavailable: {err}")
    document = open_document(path, config)
    goto(document, line, column)
    symbol = document.symbol_under_cursor() or document.current_symbol()
    if symbol is None:
        click.echo(f"No symbol at {line}:{column}")
    else:
        click.echo(describe_symbol(document, symbol))


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("line", type=int)
@click.argument("column", type=int)
@_server_option
@click.pass_context
def hover_command(
    ctx: click.Context, path: Path, line: int, column: int, server: str | None
) -> None:
    """Show hover text for LINE:COLUMN (1-based) in PATH."""
    config = get_config(ctx)
    command = server_command(server, config)

    async def hover(document: SemanticDocument) -> str:
        goto(document, line, column)
        return await document.hover()

    try:
        text = asyncio.run(run_with_server(path, command, config, hover))
    except AnalysisUnavailableError as e:
        _fallback(path, config, line, column, e)
        return
    except CodeSenseError as e:
        raise click.ClickException(e.message) from e

    click.echo(text if text else f"No hover information at {line}:{column}")


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("line", type=int)
@click.argument("column", type=int)
@_server_option
@click.option(
    "--switch",
    is_flag=True,
    help="Switch between declaration and definition of the enclosing function",
)
@click.pass_context
def follow_command(
    ctx: click.Context,
    path: Path,
    line: int,
    column: int,
    server: str | None,
    switch: bool,
) -> None:
    """Go to the definition of the symbol at LINE:COLUMN (1-based) in PATH."""
    config = get_config(ctx)
    command = server_command(server, config)

    async def follow(document: SemanticDocument) -> str | None:
        goto(document, line, column)
        if switch:
            target = await document.switch_declaration_definition()
        else:
            target = await document.follow_symbol()
        if target is None:
            return None
        where = target.path or target.uri
        if target.range is None:
            # Another file: the server's line and protocol-unit column
            target_line, target_column = target.start
        else:
            target_line, target_column = document.buffer.to_position(target.range.start)
        return f"{where}:{target_line + 1}:{target_column + 1}"

    try:
        result = asyncio.run(run_with_server(path, command, config, follow))
    except AnalysisUnavailableError as e:
        _fallback(path, config, line, column, e)
        ctx.exit(1)
    except CodeSenseError as e:
        raise click.ClickException(e.message) from e

    if result is None:
        click.echo(f"No target for {line}:{column}", err=True)
        ctx.exit(1)
    click.echo(result)
