"""structlog setup and operation correlation.

Events go through stdlib logging so each output (stderr, stdout or a file)
filters at its own level and renders as console text or JSON.

Work done for one caller-facing operation (a hover, a rename, one CLI
command) runs inside ``operation_context``. Every event emitted in that
block carries the same ``op_id`` plus the document fields bound with it,
so the reparse, the JSON-RPC traffic and the stale-answer warnings of one
hover can be read together.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from codesense.config.models import LoggingConfig, LogOutputConfig

_LEVELS = logging.getLevelNamesMapping()

# Loggers that report every slow event-loop callback at DEBUG
_NOISY_LOGGERS = ("asyncio",)


def current_operation_id() -> str | None:
    """Correlation id of the enclosing ``operation_context``, if any."""
    return structlog.contextvars.get_contextvars().get("op_id")


@contextmanager
def operation_context(operation: str, **fields: Any) -> Iterator[str]:
    """Tag events emitted inside the block with an ``op_id`` and ``fields``.

    A nested operation keeps the enclosing id: a rename and the references
    lookup it runs share one id.
    """
    op_id = current_operation_id() or uuid4().hex[:12]
    with structlog.contextvars.bound_contextvars(op_id=op_id, operation=operation, **fields):
        yield op_id


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "INFO",
) -> None:
    """Configure structlog. Pass config for multi-output, or use simple params.

    Args:
        config: Logging configuration with outputs
        json_format: Use JSON format for simple setup
        level: Default log level
    """
    from codesense.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level.upper(),  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )

    root_level = _LEVELS.get(config.level, logging.INFO)
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfiguration (tests, -v) must reach loggers created at import time
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(root_level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for output in config.outputs:
        handler = _open_handler(output.destination)
        handler.setLevel(_LEVELS.get(output.level or config.level, root_level))
        handler.setFormatter(_formatter(output, pre_chain))
        root.addHandler(handler)


def _formatter(
    output: LogOutputConfig,
    pre_chain: list[structlog.types.Processor],
) -> structlog.stdlib.ProcessorFormatter:
    renderer: structlog.types.Processor
    if output.format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        on_terminal = output.destination in ("stderr", "stdout") and sys.stderr.isatty()
        renderer = structlog.dev.ConsoleRenderer(
            colors=on_terminal, pad_event_to=0, pad_level=False
        )
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=pre_chain)


def _open_handler(destination: str) -> logging.Handler:
    if destination == "stderr":
        return logging.StreamHandler(sys.stderr)
    if destination == "stdout":
        return logging.StreamHandler(sys.stdout)
    path = Path(destination)
    path.parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, mode="a")
