"""Root logging setup for host applications and the viewer server.

Importing frame_logger never touches the root logger. A host opts in once,
usually through ``DebuggerConfig.apply_logging()``, which reads ``log_level``
and ``log_file`` from ``config.txt``.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, List, Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
_ROTATE_BYTES = 1024 * 1024
_ROTATE_KEEP = 3

# The HTTP access log and PIL's plugin loader are chatty at INFO.
DEFAULT_QUIET_LOGGERS = ("aiohttp.access", "PIL")

_configured = False


def coerce_level(level: Union[int, str]) -> int:
    """``"debug"`` / ``" Warning "`` / ``20`` -> numeric level."""
    if not isinstance(level, str):
        return int(level)
    numeric = logging.getLevelName(level.strip().upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level '{level}'")
    return numeric


def _file_handler(log_file: Union[str, Path], max_bytes: int, backup_count: int) -> logging.Handler:
    path = Path(log_file).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def _replace_root_handlers(root: logging.Logger, handlers: List[logging.Handler]) -> None:
    for old in list(root.handlers):
        root.removeHandler(old)
        with contextlib.suppress(Exception):
            old.close()
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    force: bool = False,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
    max_bytes: int = _ROTATE_BYTES,
    backup_count: int = _ROTATE_KEEP,
    quiet_loggers: Iterable[str] = DEFAULT_QUIET_LOGGERS,
) -> None:
    """Install stdout and rotating-file handlers on the root logger.

    A second call without ``force`` only changes the level.

    Args:
        level: Numeric level or name ("debug", "info", ...).
        force: Rebuild handlers even if logging was already configured.
        console: Emit records to stdout.
        log_file: Rotating log file; parent directories are created.
        max_bytes: Size at which the log file rotates.
        backup_count: Rotated files to keep.
        quiet_loggers: Logger names raised to WARNING.
    """

    global _configured
    numeric_level = coerce_level(level)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    if _configured and not force:
        return

    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_file:
        handlers.append(_file_handler(log_file, max_bytes, backup_count))
    if not handlers:
        handlers.append(logging.NullHandler())
    _replace_root_handlers(root, handlers)

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


__all__ = ["DEFAULT_QUIET_LOGGERS", "LOG_DATEFMT", "LOG_FORMAT", "coerce_level", "configure_logging"]
