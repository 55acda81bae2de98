"""
Logging configuration for semmark.

Library loggers are kept quiet by default; `--verbose` turns on debug output.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

_NOISY_LOGGERS = ("urllib3", "requests", "httpx", "openai", "faiss")


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    Args:
        quiet: If True, silence HTTP client and faiss chatter below WARNING.
    """
    level = logging.WARNING if quiet else logging.NOTSET
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
    if quiet:
        warnings.filterwarnings("ignore", category=DeprecationWarning)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("semmark").setLevel(logging.DEBUG)


def configure_ops_log(data_dir):
    """Configure a persistent operations log next to the semmark database.

    Writes to {data_dir}/semmark-ops.log using a rotating file handler
    (1MB max, 3 backups). Returns the handler so callers can detach it.
    """
    log_path = Path(data_dir) / "semmark-ops.log"
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_path),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    semmark_logger = logging.getLogger("semmark")
    semmark_logger.addHandler(handler)
    if semmark_logger.level == logging.NOTSET or semmark_logger.level > logging.INFO:
        semmark_logger.setLevel(logging.INFO)

    return handler
