"""
Structured Logging - structlog on top of the stdlib logging tree.

Console output by default, optional rotating log files, and a masking
processor so credentials and request signatures never reach a log sink.
"""

from __future__ import annotations

import logging
import re
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

import structlog


# ---------------------------------------------------------------------------
# Sensitive Data Filter
# ---------------------------------------------------------------------------

_SENSITIVE_KEYS = ("api_key", "api_secret", "secret", "sign", "password", "token")

_SECRET_QUERY_RE = re.compile(r"((?:api_)?(?:key|secret)=)([^&\s]+)", re.IGNORECASE)


def _scrub_string(s: str) -> str:
    # Credentials can leak through URLs or exception text.
    return _SECRET_QUERY_RE.sub(r"\1<redacted>", s)


def _scrub_value(v: Any) -> Any:
    if isinstance(v, str):
        return _scrub_string(v)
    if isinstance(v, dict):
        return {k: _scrub_value(val) for k, val in v.items()}
    if isinstance(v, (list, tuple)):
        t = [_scrub_value(x) for x in v]
        return tuple(t) if isinstance(v, tuple) else t
    return v


def _mask_sensitive(_, __, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask sensitive data in log output (API keys, secrets, signatures)."""
    for key in list(event_dict.keys()):
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            value = str(event_dict[key])
            if len(value) > 8:
                event_dict[key] = value[:4] + "****" + value[-4:]
            else:
                event_dict[key] = "****"
        else:
            event_dict[key] = _scrub_value(event_dict[key])
    return event_dict


# ---------------------------------------------------------------------------
# Performance Timer
# ---------------------------------------------------------------------------

class PerformanceTimer:
    """Context manager for measuring and logging operation duration."""

    def __init__(self, logger: Any, operation: str, slow_ms: float = 1000.0, **kwargs):
        self.logger = logger
        self.operation = operation
        self.slow_ms = slow_ms
        self.kwargs = kwargs
        self.start_time: float = 0
        self.elapsed_ms: float = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self.start_time) * 1000
        if exc_type:
            self.logger.error(
                f"{self.operation} failed",
                duration_ms=round(self.elapsed_ms, 2),
                error=str(exc_val),
                **self.kwargs
            )
        else:
            level = "warning" if self.elapsed_ms > self.slow_ms else "debug"
            getattr(self.logger, level)(
                f"{self.operation} completed",
                duration_ms=round(self.elapsed_ms, 2),
                **self.kwargs
            )
        return False


# ---------------------------------------------------------------------------
# Logger Setup
# ---------------------------------------------------------------------------

def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    json_output: bool = False,
) -> None:
    """
    Configure the structured logging system.

    Sets up:
    - Console output (stderr) with colors, or JSON lines
    - File output with rotation when ``log_dir`` is given
    - Error-level separate file alongside it
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    # stdout is reserved for command output (see btce_connector.cli)
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    handlers: list[logging.Handler] = [console_handler]

    if log_dir:
        from logging.handlers import RotatingFileHandler

        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        main_handler = RotatingFileHandler(
            log_path / "btce_connector.log", encoding="utf-8",
            maxBytes=10 * 1024 * 1024, backupCount=5,
        )
        main_handler.setLevel(level)

        error_handler = RotatingFileHandler(
            log_path / "errors.log", encoding="utf-8",
            maxBytes=5 * 1024 * 1024, backupCount=3,
        )
        error_handler.setLevel(logging.ERROR)
        handlers.extend([main_handler, error_handler])

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    # Close and remove existing handlers to avoid duplicates and FD leaks
    for h in root_logger.handlers[:]:
        h.close()
        root_logger.removeHandler(h)
    for h in handlers:
        root_logger.addHandler(h)

    # httpx logs full request lines at INFO; keep warnings/errors only.
    for noisy in ("httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _mask_sensitive,
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    for handler in root_logger.handlers:
        handler.setFormatter(formatter)


def get_logger(name: str = "btce_connector") -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance with the given name."""
    return structlog.get_logger(name)


def log_performance(logger: Any, operation: str, **kwargs) -> PerformanceTimer:
    """Create a performance timing context manager."""
    return PerformanceTimer(logger, operation, **kwargs)
