#!/usr/bin/env -S python3 -B -u
"""
Structured Logging for the Debug Console

Console components log through StructuredLogger, which filters by the
verbosity the embedding application or command-line tool was started with
and appends key=value context to each message.

Key Features:
- Verbosity-based filtering (0-3)
- Bound context (e.g. the peer of a session) via bind()
- Thread names in debug output; handlers run on the console server thread
- Timing of lifecycle operations
- Masking of sensitive context values
"""

import logging as std_logging
import sys
import time
import json
import threading
from typing import Any, Dict, Mapping, Optional
from contextlib import contextmanager


SENSITIVE_KEYS = ('password', 'secret', 'token', 'auth')

# Minimum verbosity at which each level is emitted
LEVEL_VERBOSITY = {
    std_logging.ERROR: 0,
    std_logging.WARNING: 1,
    std_logging.INFO: 1,
    std_logging.DEBUG: 2,
}

_FORMATS = {
    0: '%(message)s',
    1: '%(levelname)s: %(message)s',
    2: '[%(name)s:%(threadName)s] %(levelname)s: %(message)s',
    3: '%(asctime)s [%(name)s:%(threadName)s] %(levelname)s: %(message)s',
}


def mask_sensitive(context: Mapping[str, Any]) -> Dict[str, Any]:
    """Copy of context with values of sensitive-looking keys replaced."""
    masked = {}
    for key, value in context.items():
        if any(word in key.lower() for word in SENSITIVE_KEYS):
            masked[key] = "***MASKED***"
        elif isinstance(value, Mapping):
            masked[key] = mask_sensitive(value)
        else:
            masked[key] = value
    return masked


class StructuredLogger:
    """
    Verbosity-aware logger with structured context.

    Verbosity levels:
    - 0: Only errors
    - 1: Info messages and warnings (lifecycle transitions, connections)
    - 2: Debug messages (dispatched lines, hooks, sockets)
    - 3: Trace output, JSON context and timestamps
    """

    def __init__(self, name: str, verbose_level: int = 0,
                 context: Optional[Dict[str, Any]] = None,
                 logger: Optional[std_logging.Logger] = None):
        self.name = name
        self.verbose_level = verbose_level
        self.context = dict(context or {})

        if logger is not None:
            self.logger = logger
            return

        self.logger = std_logging.getLogger(name)
        self.logger.setLevel(std_logging.DEBUG)
        self.logger.handlers.clear()
        self.logger.propagate = False

        handler = std_logging.StreamHandler(sys.stderr)
        handler.setFormatter(std_logging.Formatter(
            _FORMATS[min(max(verbose_level, 0), 3)], datefmt='%Y-%m-%d %H:%M:%S'))
        self.logger.addHandler(handler)

    def bind(self, **context: Any) -> 'StructuredLogger':
        """Logger sharing this one's output that adds context to every message."""
        merged = dict(self.context)
        merged.update(context)
        return StructuredLogger(self.name, self.verbose_level, merged, logger=self.logger)

    def _log(self, level: int, message: str, context: Dict[str, Any],
             context_from: int = 2) -> None:
        if self.verbose_level < LEVEL_VERBOSITY.get(level, 3):
            return
        if self.context:
            context = {**self.context, **context}
        if context and self.verbose_level >= context_from:
            message = f"{message} | {self._format_context(context)}"
        self.logger.log(level, message)

    def error(self, message: str, **context: Any) -> None:
        """Always shown; context from verbosity 2."""
        self._log(std_logging.ERROR, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(std_logging.WARNING, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(std_logging.INFO, message, context)

    def debug(self, message: str, **context: Any) -> None:
        self._log(std_logging.DEBUG, message, context, context_from=0)

    def trace(self, message: str, **context: Any) -> None:
        if self.verbose_level >= 3:
            self._log(std_logging.DEBUG, f"[TRACE] {message}", context, context_from=0)

    def _format_context(self, context: Dict[str, Any]) -> str:
        masked = mask_sensitive(context)
        if self.verbose_level >= 3:
            return json.dumps(masked, default=str)
        return " ".join(f"{k}={v}" for k, v in masked.items())

    @contextmanager
    def timer(self, operation: str):
        """Log how long the wrapped block took, at debug level."""
        start = time.monotonic()
        self.debug(f"Starting {operation}")
        try:
            yield
        finally:
            elapsed = time.monotonic() - start
            self.debug(f"Completed {operation}", elapsed_ms=f"{elapsed * 1000:.2f}")

    # Console events

    def log_transition(self, operation: str, old_state: str, new_state: str, **details: Any) -> None:
        """Log a lifecycle state transition."""
        self.info(f"Console {operation}: {old_state} -> {new_state}", **details)

    def log_connection(self, peer: str, connected: bool, **details: Any) -> None:
        """Log client connect and disconnect events."""
        event = "connected" if connected else "disconnected"
        self.info(f"Client {event}: {peer}", **details)

    def log_dispatch(self, line: str, command: str, argc: int, **details: Any) -> None:
        """Log a dispatched command line."""
        self.debug(f"Dispatching '{command}'", line=line, argc=argc, **details)


_loggers: Dict[str, StructuredLogger] = {}
_loggers_lock = threading.Lock()


def get_logger(name: str, verbose_level: int = 0) -> StructuredLogger:
    """
    Get or create a structured logger.

    Args:
        name: Logger name (usually __name__)
        verbose_level: Verbosity level (0-3)

    Returns:
        StructuredLogger instance, shared per (name, verbose_level)
    """
    cache_key = f"{name}:{verbose_level}"
    with _loggers_lock:
        if cache_key not in _loggers:
            _loggers[cache_key] = StructuredLogger(name, verbose_level)
        return _loggers[cache_key]


def setup_logging(verbose_level: int = 0) -> None:
    """
    Configure logging for a command-line tool.

    Args:
        verbose_level: Global verbosity level (0-3)
    """
    root_logger = std_logging.getLogger()
    root_logger.setLevel(std_logging.DEBUG if verbose_level >= 2 else std_logging.WARNING)
    if not root_logger.handlers:
        handler = std_logging.StreamHandler(sys.stderr)
        handler.setFormatter(std_logging.Formatter(_FORMATS[min(max(verbose_level, 0), 3)]))
        root_logger.addHandler(handler)

    std_logging.getLogger('asyncio').setLevel(std_logging.ERROR)
