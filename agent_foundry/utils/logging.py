"""
Structured logging for Agent Foundry.

Log lines go to stderr so that command output on stdout stays machine
readable. Fields bound with `bound_run` live in contextvars, so every line
logged by a run, including its worker tasks, carries the run_id.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

SERVICE_NAME = "agent-foundry"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def parse_level(level: str) -> int:
    """
    Convert a level name to its numeric value.

    Raises:
        ValueError: If the name is not a standard logging level
    """
    name = level.upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    return getattr(logging, name)


def add_service_name(logger: Any, method_name: str, event_dict: dict) -> dict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure structured logging for Agent Foundry.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Whether to use JSON formatting for logs
    """
    numeric_level = parse_level(level)
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level)
    # basicConfig is a no-op once handlers exist; a reconfigure still changes the level
    logging.getLogger().setLevel(numeric_level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_service_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def bound_run(run_id: str, **fields: Any) -> Iterator[None]:
    """
    Attach run_id and extra fields to every log line emitted in this context.

    asyncio tasks created inside the block copy the context, so worker tasks
    keep the binding after the block exits.
    """
    with structlog.contextvars.bound_contextvars(run_id=run_id, **fields):
        yield


def bind_task(logger: structlog.BoundLogger, task: Any) -> structlog.BoundLogger:
    """Bind the identifying fields of an AgentTask to a logger."""
    return logger.bind(
        task_id=task.id,
        task_type=task.type,
        priority=task.priority,
        run_id=task.context.run_id,
    )
