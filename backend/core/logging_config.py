"""Structured logging for the engine and its Celery workers.

Every run segment binds ``run_id`` and ``workflow_id`` into structlog's
context variables, so step, transport and checkpoint logs can be
correlated per run. Output is JSON unless the engine runs in development
or ``LOG_FORMAT=text``.
"""

import logging
import sys
from typing import Union

import structlog
from app.config import get_settings

# Libraries the engine drives whose default level drowns out run logs
QUIET_LOGGERS = {
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "kombu": logging.WARNING,
}


def _resolve_level(level: Union[int, str, None]) -> int:
    if isinstance(level, int):
        return level
    name = (level or get_settings().LOG_LEVEL).upper()
    return logging.getLevelNamesMapping().get(name, logging.INFO)


def _renderer(json_output: bool):
    if json_output:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(level: Union[int, str, None] = None) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Args:
        level: Overrides ``LOG_LEVEL``; Celery passes the worker's ``--loglevel``
    """
    settings = get_settings()
    json_output = not (settings.is_development or settings.LOG_FORMAT == "text")

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_output:
        shared_processors.append(structlog.processors.dict_tracebacks)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json_output),
            ],
            foreign_pre_chain=shared_processors,
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(_resolve_level(level))

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def bind_run_context(run_id: str, workflow_id: str) -> None:
    """Attach run identifiers to every log line emitted by this task."""
    structlog.contextvars.bind_contextvars(run_id=run_id, workflow_id=workflow_id)


def clear_run_context() -> None:
    structlog.contextvars.unbind_contextvars("run_id", "workflow_id")
