"""Structural commands: symbols, find, node.

These work from the syntax tree alone and never start an analysis server.
"""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from codesense.cli.utils import describe_symbol, get_config, goto, open_document, symbol_depth
from codesense.document import MatchOptions, Range


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--language", "-l", default=None, help="Language pack (default: from extension)")
@click.pass_context
def symbols_command(ctx: click.Context, path: Path, language: str | None) -> None:
    """List the symbols of PATH as an indented table."""
    document = open_document(path, get_config(ctx), language)
    symbols = document.symbols()

    console = Console()
    if not symbols:
        console.print(f"[yellow]No symbols[/yellow] in {path}")
        return

    table = Table(title=str(path), show_lines=False)
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Kind", style="magenta")
    table.add_column("Lines", justify="right")

    for symbol in symbols:
        first, _ = document.buffer.to_position(symbol.range.start)
        last, _ = document.buffer.to_position(symbol.range.end)
        indent = "  " * symbol_depth(document, symbol)
        table.add_row(f"{indent}{symbol.name}", symbol.kind.value, f"{first + 1}-{last + 1}")

    console.print(table)


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("name")
@click.option("--case-sensitive", "-c", is_flag=True, help="Match case exactly")
@click.option("--whole-words", "-w", is_flag=True, help="Match whole words only")
@click.option("--regexp", "-r", is_flag=True, help="Treat NAME as a regular expression")
@click.option("--all", "find_all", is_flag=True, help="Show every match, not just the first")
@click.pass_context
def find_command(
    ctx: click.Context,
    path: Path,
    name: str,
    case_sensitive: bool,
    whole_words: bool,
    regexp: bool,
    find_all: bool,
) -> None:
    """Find the first symbol in PATH whose name matches NAME."""
    options = MatchOptions.NONE
    if case_sensitive:
        options |= MatchOptions.CASE_SENSITIVE
    if whole_words:
        options |= MatchOptions.WHOLE_WORDS
    if regexp:
        options |= MatchOptions.REGEXP

    document = open_document(path, get_config(ctx))
    if find_all:
        matches = document.find_symbols(name, options)
    else:
        first = document.find_symbol(name, options)
        matches = [first] if first is not None else []

    if not matches:
        click.echo(f"No symbol matching '{name}'", err=True)
        ctx.exit(1)
    for symbol in matches:
        click.echo(describe_symbol(document, symbol))


@click.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("line", type=int)
@click.argument("column", type=int)
@click.option("--anonymous", is_flag=True, help="Consider anonymous nodes too")
@click.pass_context
def node_command(ctx: click.Context, path: Path, line: int, column: int, anonymous: bool) -> None:
    """Show the syntax node covering LINE:COLUMN (1-based) in PATH."""
    document = open_document(path, get_config(ctx))
    goto(document, line, column)

    node = document.node_covering(Range.at(document.position), named_only=not anonymous)
    node_range = document.node_range(node)
    start_line, start_col = document.buffer.to_position(node_range.start)
    end_line, end_col = document.buffer.to_position(node_range.end)

    click.echo(f"{node.type} {start_line + 1}:{start_col + 1}-{end_line + 1}:{end_col + 1}")
    text = document.node_text(node)
    first_line, newline, _ = text.partition("\n")
    if first_line:
        click.echo(f"  {first_line} ..." if newline else f"  {first_line}")

    symbol = document.current_symbol()
    if symbol is not None:
        click.echo(f"in {describe_symbol(document, symbol)}")
