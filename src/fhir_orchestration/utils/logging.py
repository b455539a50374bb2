"""Logging configuration for FHIR Orchestration.

Validation reports are written to stdout by the CLI, so log records always go
to stderr.
"""

import logging
import sys
from typing import Any, Dict, List, Optional

import structlog
from structlog.stdlib import BoundLogger, LoggerFactory

from fhir_orchestration.config import get_settings


def setup_logging(level: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structured logging.

    Args:
        level: Log level name; defaults to DEBUG in debug mode, else ``log_level``
        log_format: ``console`` or ``json``; defaults to the configured ``log_format``
    """
    settings = get_settings()
    level_name = (level or ("DEBUG" if settings.debug else settings.log_level)).upper()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level_name),
    )
    logging.getLogger("fhir_orchestration").setLevel(level_name)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    structlog.configure(
        processors=_processors(
            log_format or settings.log_format, settings.app_name, settings.environment
        ),
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=BoundLogger,
        cache_logger_on_first_use=True,
    )


def app_context(app_name: str, environment: str) -> Any:
    """Processor adding the application name and environment to every event."""

    def processor(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("app", app_name)
        event_dict.setdefault("environment", environment)
        return event_dict

    return processor


def _processors(log_format: str, app_name: str, environment: str) -> List[Any]:
    processors: List[Any] = [
        structlog.stdlib.filter_by_level,
        app_context(app_name, environment),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if log_format == "json":
        processors.extend(
            [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
        )
    else:
        processors.extend(
            [structlog.processors.UnicodeDecoder(), structlog.dev.ConsoleRenderer()]
        )
    return processors


def get_logger(name: str) -> BoundLogger:
    """Get a configured logger instance."""
    bound_logger: BoundLogger = structlog.get_logger(name)
    return bound_logger
