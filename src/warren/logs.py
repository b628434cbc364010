"""Routing of third-party stdlib logging into loguru."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from loguru import logger


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, keeping the origin's name and line."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        msg = record.getMessage().replace("{", "{{").replace("}", "}}")
        logger.patch(
            lambda r: r.update(
                name=record.name,
                function=record.funcName,
                line=record.lineno,
            ),
        ).opt(exception=record.exc_info).log(level, msg)


def intercept_logging(libraries: Iterable[str], level: str | int = "INFO") -> None:
    """Route the named libraries' loggers through loguru at ``level``."""
    for lib in libraries:
        lib_logger = logging.getLogger(lib)
        if any(isinstance(h, InterceptHandler) for h in lib_logger.handlers):
            lib_logger.setLevel(level)
            continue
        lib_logger.handlers = [InterceptHandler()]
        lib_logger.propagate = False
        lib_logger.setLevel(level)
