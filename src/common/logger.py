"""
Centralized logging configuration for the automation research service.

Provides structured logging with run_id and stage tagging so that all log
lines of one pipeline run can be correlated.
Supports a debug_mode flag for verbose logging.
"""

import logging
import os
import sys
from typing import Optional


# Global debug mode flag, read from the environment at import
_GLOBAL_DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"


def is_debug_mode() -> bool:
    """Check if debug mode is enabled globally."""
    return _GLOBAL_DEBUG_MODE


class PipelineLogger:
    """
    Structured logger for analysis pipeline runs.

    Adds contextual information like run_id and stage to all log messages.
    """

    def __init__(
        self,
        name: str,
        run_id: Optional[str] = None,
        stage: Optional[str] = None,
        debug_mode: Optional[bool] = None
    ):
        """
        Initialize pipeline logger.

        Args:
            name: Logger name (usually __name__)
            run_id: Optional run identifier for correlation
            stage: Optional stage name (e.g., "technical_signals")
            debug_mode: If True, enables DEBUG level for this logger.
                       If None, uses global debug mode setting.
        """
        self.logger = logging.getLogger(name)
        self.run_id = run_id
        self.stage = stage

        self._debug_mode = debug_mode if debug_mode is not None else is_debug_mode()

        if self._debug_mode:
            self.logger.setLevel(logging.DEBUG)

    def _format_message(self, message: str) -> str:
        """Add contextual prefix to message."""
        prefix_parts = []
        if self.run_id:
            prefix_parts.append(f"[run:{self.run_id}]")
        if self.stage:
            prefix_parts.append(f"[{self.stage}]")

        if prefix_parts:
            return f"{' '.join(prefix_parts)} {message}"
        return message

    def debug(self, message: str, **kwargs):
        self.logger.debug(self._format_message(message), **kwargs)

    def info(self, message: str, **kwargs):
        self.logger.info(self._format_message(message), **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(self._format_message(message), **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(self._format_message(message), **kwargs)

    def exception(self, message: str, **kwargs):
        """Log exception with traceback."""
        self.logger.exception(self._format_message(message), **kwargs)


def setup_logging(level: str = "INFO", format: str = "simple") -> None:
    """
    Configure global logging settings.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: Log format ("simple" or "json")
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if format == "json":
        # JSON format for production (parseable by log aggregators)
        formatter = logging.Formatter(
            '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)


def get_logger(
    name: str,
    run_id: Optional[str] = None,
    stage: Optional[str] = None,
    debug_mode: Optional[bool] = None
) -> PipelineLogger:
    """
    Get a pipeline logger instance.

    Args:
        name: Logger name (usually __name__)
        run_id: Optional run identifier
        stage: Optional stage name
        debug_mode: If True, enables DEBUG level. If None, uses global setting.

    Returns:
        PipelineLogger instance
    """
    return PipelineLogger(name, run_id, stage, debug_mode)
