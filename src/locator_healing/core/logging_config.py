"""
Logging configuration for the locator self-healing system.

Structured JSON logs are written to rotating files, one component logger per
pipeline stage (``healing.<component>``), with a contextual adapter that binds
the healing session id and test case to every record.
"""

import logging
import logging.handlers
import json
import os
import sys
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import asdict, is_dataclass

from .config import settings

# Component loggers that get the operations and error handlers attached.
HEALING_COMPONENTS = (
    "orchestrator",
    "queue",
    "profiler",
    "classifier",
    "strategies",
    "engine",
    "validator",
    "updater",
    "repository",
    "notifier",
    "completion",
    "browser",
    "metrics",
)

_CONTEXT_FIELDS = (
    "session_id", "test_case", "operation", "phase", "progress",
    "duration", "success", "error_code", "metadata",
)


class StructuredFormatter(logging.Formatter):
    """Formats log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        for name in _CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(log_data, default=self._json_serializer)

    def _json_serializer(self, obj):
        if isinstance(obj, Enum):
            return obj.value
        if is_dataclass(obj):
            return asdict(obj)
        if hasattr(obj, 'isoformat'):
            return obj.isoformat()
        if hasattr(obj, 'to_dict'):
            return obj.to_dict()
        return str(obj)


class HealingLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that binds session id and test case to every record."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = dict(kwargs.get('extra') or {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs

    def bind(self, **context) -> "HealingLoggerAdapter":
        """Return a new adapter with additional context fields."""
        extra = dict(self.extra)
        extra.update({k: v for k, v in context.items() if v is not None})
        return HealingLoggerAdapter(self.logger, extra)

    def log_operation_start(self, operation: str, **metadata):
        self.info(f"Starting {operation}", extra={
            'operation': operation,
            'phase': 'start',
            'metadata': metadata
        })

    def log_operation_success(self, operation: str, duration: float, **metadata):
        self.info(f"Completed {operation} successfully", extra={
            'operation': operation,
            'phase': 'complete',
            'success': True,
            'duration': duration,
            'metadata': metadata
        })

    def log_operation_failure(self, operation: str, duration: float, error: str,
                              error_code: Optional[str] = None, **metadata):
        self.error(f"Failed {operation}: {error}", extra={
            'operation': operation,
            'phase': 'complete',
            'success': False,
            'duration': duration,
            'error_code': error_code,
            'metadata': metadata
        })

    def log_progress(self, operation: str, progress: float, message: str, **metadata):
        self.info(f"{operation} progress: {message}", extra={
            'operation': operation,
            'phase': 'progress',
            'progress': progress,
            'metadata': metadata
        })


def _rotating_handler(path: Path, max_mb: int, backups: int, level: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_mb * 1024 * 1024, backupCount=backups, encoding="utf-8"
    )
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def setup_healing_logging(log_level: Optional[str] = None,
                          log_dir: Optional[str] = None) -> Dict[str, logging.Logger]:
    """
    Set up structured logging for the healing system.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR); defaults to HEALING_LOG_LEVEL
        log_dir: Directory to store log files; defaults to HEALING_LOG_DIR

    Returns:
        Dictionary of configured loggers keyed by component name
    """
    level = getattr(logging, (log_level or settings.HEALING_LOG_LEVEL).upper())
    log_path = Path(log_dir or settings.HEALING_LOG_DIR)
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    structured_formatter = StructuredFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    console_handler.setLevel(level)

    all_logs_handler = _rotating_handler(
        log_path / "healing_all.log", 10, 5, logging.DEBUG, structured_formatter)
    operations_handler = _rotating_handler(
        log_path / "healing_operations.log", 10, 10, logging.INFO, structured_formatter)
    error_handler = _rotating_handler(
        log_path / "healing_errors.log", 5, 10, logging.ERROR, structured_formatter)

    root_logger.addHandler(console_handler)
    root_logger.addHandler(all_logs_handler)

    loggers = {}
    for component in HEALING_COMPONENTS:
        component_logger = logging.getLogger(f"healing.{component}")
        component_logger.addHandler(operations_handler)
        component_logger.addHandler(error_handler)
        loggers[component] = component_logger

    audit_logger = logging.getLogger("healing.audit")
    audit_logger.addHandler(_rotating_handler(
        log_path / "healing_audit.log", 20, 20, logging.INFO, structured_formatter))
    loggers["audit"] = audit_logger

    # The AI-assisted strategy calls out through litellm.
    litellm_logger = logging.getLogger("LiteLLM")
    litellm_logger.setLevel(getattr(logging, os.getenv("LITELLM_LOG_LEVEL", "WARNING").upper()))
    litellm_logger.addHandler(_rotating_handler(
        log_path / "litellm.log", 10, 5, logging.DEBUG, structured_formatter))
    loggers["litellm"] = litellm_logger

    selenium_logger = logging.getLogger("selenium")
    selenium_logger.setLevel(getattr(logging, os.getenv("SELENIUM_LOG_LEVEL", "WARNING").upper()))
    loggers["selenium"] = selenium_logger

    return loggers


def get_healing_logger(component: str, session_id: Optional[str] = None,
                       test_case: Optional[str] = None) -> HealingLoggerAdapter:
    """
    Get a healing logger adapter with contextual information.

    Args:
        component: Component name (orchestrator, engine, etc.)
        session_id: Optional healing session ID
        test_case: Optional test case ID

    Returns:
        HealingLoggerAdapter instance
    """
    logger = logging.getLogger(f"healing.{component}")

    extra = {}
    if session_id:
        extra['session_id'] = session_id
    if test_case:
        extra['test_case'] = test_case

    return HealingLoggerAdapter(logger, extra)
