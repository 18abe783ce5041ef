"""
Structured logging for Agent Conductor.

Events logged while a request is served carry its ``session_id``,
``task_id`` and ``agent`` without every call site passing them:
``log_context`` binds the fields to the running asyncio context and
``merge_contextvars`` folds them into each event. Tasks spawned inside the
block (task handlers included) inherit the bound fields.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import structlog


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Route structlog through the standard library at ``level``.

    Args:
        level: Logging level name
        json_format: Render one JSON object per line instead of console output
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )

    renderer = structlog.processors.JSONRenderer() if json_format else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Bind ``fields`` to every event logged inside the block; ``None`` values are skipped."""
    bound = {key: value for key, value in fields.items() if value is not None}
    with structlog.contextvars.bound_contextvars(**bound):
        yield


class OperationLog:
    """Outcome of a logged operation, reported when its block exits."""

    def __init__(self):
        self.fields: Dict[str, Any] = {}
        self.error: Optional[Exception] = None

    def add(self, **fields: Any) -> None:
        self.fields.update(fields)

    def fail(self, error: Exception) -> None:
        self.error = error


class LoggerMixin:
    """Per-class logger plus timed operation logging."""

    @property
    def logger(self) -> structlog.BoundLogger:
        if not hasattr(self, '_logger'):
            self._logger = get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")
        return self._logger

    @contextmanager
    def log_operation(self, operation: str, **fields: Any) -> Iterator[OperationLog]:
        """
        Log the start and outcome of ``operation``.

        ``operation`` and ``fields`` are bound for the whole block, so step
        logs emitted inside it carry them too. The block reports a handled
        failure with ``OperationLog.fail``; an escaping exception is logged
        and re-raised.
        """
        outcome = OperationLog()
        started = time.monotonic()

        with log_context(operation=operation, **fields):
            self.logger.info("Operation started")
            try:
                yield outcome
            except Exception as e:
                outcome.fail(e)
                raise
            finally:
                duration_ms = int((time.monotonic() - started) * 1000)
                if outcome.error is not None:
                    self.logger.error(
                        "Operation failed",
                        duration_ms=duration_ms,
                        error=str(outcome.error),
                        error_type=type(outcome.error).__name__,
                        **outcome.fields
                    )
                else:
                    self.logger.info("Operation completed", duration_ms=duration_ms, **outcome.fields)
