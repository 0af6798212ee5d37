"""Shared logging helpers for the geotrack project.

Every module logs through a :class:`StructuredLogger` living under the
``geotrack`` namespace. Messages carry a ``[component]`` prefix and, for
loggers created with :meth:`StructuredLogger.bind`, trailing ``key=value``
context such as the receiver port.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Union

MODULE_LOGGER_NAMESPACE = "geotrack"
DEFAULT_COMPONENT = "Core"


def _normalize_logger_name(name: Optional[str]) -> str:
    if not name:
        return MODULE_LOGGER_NAMESPACE
    if name == MODULE_LOGGER_NAMESPACE or name.startswith(MODULE_LOGGER_NAMESPACE + "."):
        return name
    return f"{MODULE_LOGGER_NAMESPACE}.{name}"


def _derive_component(name: str) -> str:
    # "geotrack.tracking.tracking_core.controller" -> "controller"
    leaf = name.rsplit(".", 1)[-1] if name else ""
    if not leaf or leaf == MODULE_LOGGER_NAMESPACE:
        return DEFAULT_COMPONENT
    return leaf


def _render(message: object, args: tuple) -> str:
    text = str(message)
    if not args:
        return text
    try:
        return text % args
    except (TypeError, ValueError):
        return f"{text} | args={' '.join(str(arg) for arg in args)}"


class StructuredLogger:
    """Wraps a :class:`logging.Logger`, adding component prefix and bound context.

    Unknown attributes (``setLevel``, ``handlers``, ``isEnabledFor`` ...) are
    delegated to the wrapped logger.
    """

    __slots__ = ("_logger", "_component", "_context")

    def __init__(
        self,
        logger: logging.Logger,
        component: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        object.__setattr__(self, "_logger", logger)
        object.__setattr__(self, "_component", component or _derive_component(logger.name))
        object.__setattr__(self, "_context", dict(context or {}))

    def __getattr__(self, item):
        return getattr(self._logger, item)

    def __setattr__(self, key, value):
        if key in self.__slots__:
            object.__setattr__(self, key, value)
        else:
            setattr(self._logger, key, value)

    def __repr__(self) -> str:  # pragma: no cover - debugging helper
        return f"StructuredLogger({self._logger.name!r}, component={self._component!r})"

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

    def bind(self, **context: Any) -> "StructuredLogger":
        """Return a logger that appends ``key=value`` pairs to every message."""
        merged = {**self._context, **context}
        return StructuredLogger(self._logger, component=self._component, context=merged)

    def getChild(self, suffix: str) -> "StructuredLogger":
        return StructuredLogger(
            self._logger.getChild(suffix),
            component=f"{self._component}.{suffix}",
            context=self._context,
        )

    def _compose(self, message: object, args: tuple) -> str:
        text = _render(message, args)
        if not text.startswith(f"[{self._component}]"):
            text = f"[{self._component}] {text}"
        if self._context:
            pairs = " ".join(f"{key}={value}" for key, value in self._context.items())
            text = f"{text} ({pairs})"
        return text

    def _emit(self, level: int, message: object, args: tuple, kwargs: Dict[str, Any]) -> None:
        if not self._logger.isEnabledFor(level):
            return
        # Point %(funcName)s/%(lineno)d at the caller, not at this wrapper
        kwargs.setdefault("stacklevel", 3)
        self._logger.log(level, self._compose(message, args), **kwargs)

    def log(self, level: int, message: object, *args, **kwargs) -> None:
        self._emit(level, message, args, kwargs)

    def debug(self, message: object, *args, **kwargs) -> None:
        self._emit(logging.DEBUG, message, args, kwargs)

    def info(self, message: object, *args, **kwargs) -> None:
        self._emit(logging.INFO, message, args, kwargs)

    def warning(self, message: object, *args, **kwargs) -> None:
        self._emit(logging.WARNING, message, args, kwargs)

    def error(self, message: object, *args, **kwargs) -> None:
        self._emit(logging.ERROR, message, args, kwargs)

    def exception(self, message: object, *args, **kwargs) -> None:
        kwargs.setdefault("exc_info", True)
        self._emit(logging.ERROR, message, args, kwargs)

    def critical(self, message: object, *args, **kwargs) -> None:
        self._emit(logging.CRITICAL, message, args, kwargs)


LoggerLike = Union[StructuredLogger, logging.Logger, logging.LoggerAdapter, None]


def ensure_structured_logger(
    logger: LoggerLike,
    *,
    component: Optional[str] = None,
    fallback_name: Optional[str] = None,
) -> StructuredLogger:
    """Return ``logger`` as a StructuredLogger, or a new module logger when None."""
    if isinstance(logger, StructuredLogger):
        return logger
    if isinstance(logger, logging.LoggerAdapter):
        logger = logger.logger
    if isinstance(logger, logging.Logger):
        return StructuredLogger(logger, component=component)
    return get_module_logger(fallback_name)


def get_module_logger(name: Optional[str] = None) -> StructuredLogger:
    """Return a structured logger scoped to the geotrack namespace."""
    return StructuredLogger(logging.getLogger(_normalize_logger_name(name)))


__all__ = [
    "MODULE_LOGGER_NAMESPACE",
    "LoggerLike",
    "StructuredLogger",
    "ensure_structured_logger",
    "get_module_logger",
]
