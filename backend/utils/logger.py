"""
Agent Runtime Logging

Centralized logging configuration for the agent runtime.
Structured context travels as keyword arguments and is rendered after the message.

Usage:
    from backend.utils.logger import get_logger
    logger = get_logger(__name__)

    logger.info("Turn started", session_id="abc", stage="dequeued")
    session_logger = logger.bind(session_id="abc")
    session_logger.warning("Classification failed", instruction="BOOK_FLIGHT")
"""

import logging
import logging.handlers
import os
import sys
from typing import Optional, Any, Dict


# =============================================================================
# Log Level Constants
# =============================================================================

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

ROOT_LOGGER_NAME = "agentcore"


# =============================================================================
# Formatter
# =============================================================================

class RuntimeFormatter(logging.Formatter):
    """
    Formatter that renders:
    - the caller location (file:function:line)
    - structured context fields as key=value pairs
    - optional ANSI colors for console output
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: str, datefmt: str = None, use_colors: bool = False):
        super().__init__(fmt, datefmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not getattr(record, "location", None):
            filename = os.path.basename(record.pathname) if record.pathname else "unknown"
            record.location = f"{filename}:{record.funcName}:{record.lineno}"

        context = getattr(record, "context", None) or {}
        context_parts = [f"{key}={value}" for key, value in context.items()]
        record.context_str = " | " + " ".join(context_parts) if context_parts else ""

        if self.use_colors and record.levelname in self.COLORS:
            record.levelname_colored = (
                f"{self.COLORS[record.levelname]}{record.levelname:8}{self.COLORS['RESET']}"
            )
        else:
            record.levelname_colored = f"{record.levelname:8}"

        return super().format(record)


# =============================================================================
# Context-Aware Logger
# =============================================================================

class RuntimeLogger(logging.LoggerAdapter):
    """
    Logger adapter that turns keyword arguments into structured context.

    Example:
        logger.info("Tool finished", tool="search", attempts=2)
        # 2025-01-04 12:00:00 | INFO | tool.py:run:88 | Tool finished | tool=search attempts=2
    """

    _STANDARD_KEYS = {"exc_info", "stack_info", "stacklevel", "extra"}

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        context = dict(self.extra)
        for key in list(kwargs.keys()):
            if key not in self._STANDARD_KEYS:
                context[key] = kwargs.pop(key)

        extra = dict(kwargs.get("extra") or {})
        extra["context"] = context
        kwargs["extra"] = extra
        return msg, kwargs

    def bind(self, **context: Any) -> "RuntimeLogger":
        """Return a child logger that always carries the given context."""
        merged = dict(self.extra)
        merged.update(context)
        return RuntimeLogger(self.logger, merged)

    def exception(self, msg: str, *args, **kwargs) -> None:
        """Log an error with the active traceback."""
        kwargs["exc_info"] = True
        self.log(logging.ERROR, msg, *args, **kwargs)


# =============================================================================
# Configuration
# =============================================================================

_initialized = False


def configure_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    log_to_console: bool = True,
    log_to_file: Optional[bool] = None,
    use_colors: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 7,
    force: bool = False,
) -> None:
    """
    Configure the runtime's logging handlers. Call once at startup.

    Args:
        log_level: Minimum console level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the rotating log file
        log_to_console: Whether to write to stderr
        log_to_file: Whether to write a log file (defaults to True when log_dir is given)
        use_colors: Whether to colorize console output
        max_bytes: Size of each log file before rotation
        backup_count: Number of rotated files to keep
        force: Reconfigure even if logging was already set up
    """
    global _initialized

    if _initialized and not force:
        return

    level = LOG_LEVELS.get(log_level.upper(), logging.INFO)
    if log_to_file is None:
        log_to_file = log_dir is not None

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(logging.DEBUG)
    root.handlers.clear()

    console_format = "%(asctime)s | %(levelname_colored)s | %(location)s | %(message)s%(context_str)s"
    file_format = "%(asctime)s | %(levelname)-8s | %(name)s | %(location)s | %(message)s%(context_str)s"

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            RuntimeFormatter(console_format, datefmt="%Y-%m-%d %H:%M:%S", use_colors=use_colors)
        )
        root.addHandler(console_handler)

    if log_to_file:
        log_dir = log_dir or os.path.join(os.getcwd(), "logs")
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, "agentcore.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            RuntimeFormatter(file_format, datefmt="%Y-%m-%d %H:%M:%S", use_colors=False)
        )
        root.addHandler(file_handler)

    # Third-party libraries only surface warnings
    for module_name in ["aiohttp", "anthropic", "httpx", "sqlalchemy"]:
        logging.getLogger(module_name).setLevel(logging.WARNING)

    _initialized = True


def get_logger(name: str = None) -> RuntimeLogger:
    """
    Get a context-aware logger for a module.

    Args:
        name: Module name (usually __name__)

    Returns:
        RuntimeLogger namespaced under "agentcore"
    """
    if not _initialized:
        configure_logging()

    if name:
        # "backend.agentcore.runtime.inbox" -> "agentcore.runtime.inbox"
        if name.startswith("backend."):
            name = name[len("backend."):]
        logger_name = name if name.startswith(ROOT_LOGGER_NAME) else f"{ROOT_LOGGER_NAME}.{name}"
    else:
        logger_name = ROOT_LOGGER_NAME

    return RuntimeLogger(logging.getLogger(logger_name))


__all__ = [
    "configure_logging",
    "get_logger",
    "RuntimeLogger",
    "RuntimeFormatter",
    "LOG_LEVELS",
    "ROOT_LOGGER_NAME",
]
