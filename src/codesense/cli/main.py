"""CodeSense CLI - codesense command."""

from pathlib import Path

import click

from codesense.cli.semantic import follow_command, hover_command
from codesense.cli.structure import find_command, node_command, symbols_command
from codesense.config import load_config
from codesense.core.errors import ConfigError
from codesense.core.logging import configure_logging, operation_context


@click.group()
@click.version_option(version="0.1.0", prog_name="codesense")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, verbose: bool) -> None:
    """CodeSense - structural and semantic code intelligence for source files."""
    ctx.ensure_object(dict)
    try:
        config = load_config(Path.cwd())
    except ConfigError as e:
        raise click.ClickException(e.message) from e

    ctx.obj["verbose"] = verbose
    ctx.obj["config"] = config
    if verbose:
        configure_logging(level="DEBUG")
    else:
        configure_logging(config=config.logging)
    ctx.with_resource(operation_context(ctx.invoked_subcommand or "codesense"))


cli.add_command(symbols_command, name="symbols")
cli.add_command(find_command, name="find")
cli.add_command(node_command, name="node")
cli.add_command(hover_command, name="hover")
cli.add_command(follow_command, name="follow")


if __name__ == "__main__":
    cli()
