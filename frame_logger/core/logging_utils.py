"""Structured logger helpers shared by every frame_logger component.

Records carry a bracketed prefix naming the component and, optionally, bound
context such as the logging session::

    [UploadPipeline session=1f0c...] Dropped entry 5 at upload stage: ...
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple, Union

LOGGER_NAMESPACE = "frame_logger"
DEFAULT_COMPONENT = "FrameLogger"


def _qualified_name(name: Optional[str]) -> str:
    if not name:
        return LOGGER_NAMESPACE
    if name == LOGGER_NAMESPACE or name.startswith(LOGGER_NAMESPACE + "."):
        return name
    return f"{LOGGER_NAMESPACE}.{name}"


def _component_for(name: str) -> str:
    prefix = LOGGER_NAMESPACE + "."
    if name.startswith(prefix):
        return name[len(prefix):] or DEFAULT_COMPONENT
    if name == LOGGER_NAMESPACE or not name:
        return DEFAULT_COMPONENT
    return name


class StructuredLogger:
    """Thin wrapper over a stdlib logger that prefixes every message.

    Anything outside the logging calls (``setLevel``, ``handlers``, ...) is
    forwarded to the wrapped logger.
    """

    __slots__ = ("_logger", "_component", "_context")

    def __init__(
        self,
        logger: logging.Logger,
        component: Optional[str] = None,
        context: Tuple[Tuple[str, Any], ...] = (),
    ) -> None:
        object.__setattr__(self, "_logger", logger)
        object.__setattr__(self, "_component", component or _component_for(logger.name))
        object.__setattr__(self, "_context", tuple(context))

    def __getattr__(self, item):
        return getattr(self._logger, item)

    def __setattr__(self, key, value):
        if key in self.__slots__:
            object.__setattr__(self, key, value)
        else:
            setattr(self._logger, key, value)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"StructuredLogger({self._logger!r}, component={self._component!r})"

    @property
    def name(self) -> str:
        return self._logger.name

    @property
    def component(self) -> str:
        return self._component

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self._context)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    @property
    def prefix(self) -> str:
        fields = " ".join(f"{key}={value}" for key, value in self._context)
        return f"[{self._component} {fields}]" if fields else f"[{self._component}]"

    def bind(self, **context: Any) -> "StructuredLogger":
        """Same logger, with ``key=value`` pairs added to the prefix."""
        merged = dict(self._context)
        merged.update(context)
        return StructuredLogger(self._logger, self._component, tuple(merged.items()))

    def getChild(self, suffix: str) -> "StructuredLogger":
        return StructuredLogger(self._logger.getChild(suffix), f"{self._component}.{suffix}", self._context)

    def _compose(self, message: object, args: tuple) -> str:
        text = str(message)
        if args:
            try:
                text = text % args
            except (TypeError, ValueError):
                text = f"{text} | args={' '.join(str(arg) for arg in args)}"
        prefix = self.prefix
        return text if text.startswith(prefix) else f"{prefix} {text}"

    def log(self, level: int, message: object, *args, **kwargs) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, self._compose(message, args), **kwargs)

    def debug(self, message: object, *args, **kwargs) -> None:
        self.log(logging.DEBUG, message, *args, **kwargs)

    def info(self, message: object, *args, **kwargs) -> None:
        self.log(logging.INFO, message, *args, **kwargs)

    def warning(self, message: object, *args, **kwargs) -> None:
        self.log(logging.WARNING, message, *args, **kwargs)

    def error(self, message: object, *args, **kwargs) -> None:
        self.log(logging.ERROR, message, *args, **kwargs)

    def exception(self, message: object, *args, **kwargs) -> None:
        kwargs.setdefault("exc_info", True)
        self.log(logging.ERROR, message, *args, **kwargs)

    def critical(self, message: object, *args, **kwargs) -> None:
        self.log(logging.CRITICAL, message, *args, **kwargs)


LoggerLike = Union[StructuredLogger, logging.Logger, logging.LoggerAdapter, None]


def ensure_structured_logger(
    logger: LoggerLike,
    *,
    component: Optional[str] = None,
    fallback_name: Optional[str] = None,
) -> StructuredLogger:
    """Accept whatever logger a caller injected; fall back to a namespaced one."""

    if isinstance(logger, StructuredLogger):
        return logger
    if isinstance(logger, logging.LoggerAdapter):
        logger = logger.logger
    if isinstance(logger, logging.Logger):
        return StructuredLogger(logger, component)
    return get_module_logger(fallback_name)


def get_module_logger(name: Optional[str] = None) -> StructuredLogger:
    return StructuredLogger(logging.getLogger(_qualified_name(name)))


__all__ = [
    "LOGGER_NAMESPACE",
    "LoggerLike",
    "StructuredLogger",
    "ensure_structured_logger",
    "get_module_logger",
]
