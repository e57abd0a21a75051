from __future__ import annotations

import inspect
import logging
import reprlib
from functools import wraps
from typing import Any, Callable, MutableMapping, Optional, Sequence, Tuple, TypeVar, cast

import numpy as np

F = TypeVar("F", bound=Callable[..., Any])

_repr = reprlib.Repr()
_repr.maxother = 160
_repr.maxdict = 10
_repr.maxlist = 10
_repr.maxtuple = 10
_repr.maxset = 10


def _sequence_brackets(value: Sequence[Any]) -> Tuple[str, str]:
    if isinstance(value, tuple):
        return "(", ")"
    if isinstance(value, set):
        return "{", "}"
    if isinstance(value, frozenset):
        return "frozenset({", "})"
    return "[", "]"


def _summarize_array(value: np.ndarray, max_items: int) -> str:
    size = int(value.size)
    summary_parts = [f"ndarray(shape={tuple(value.shape)}, dtype={value.dtype})", f"size={size}"]
    if size == 0:
        return ", ".join(summary_parts)
    if size <= max_items:
        return ", ".join(summary_parts + [f"values={_repr.repr(value.tolist())}"])
    return ", ".join(
        summary_parts + [f"min={float(value.min()):.6g}", f"max={float(value.max()):.6g}"]
    )


def _summarize_domain(value: Any) -> Optional[str]:
    """Short labels for engine objects, which are too large to repr in full."""

    cls_name = type(value).__name__
    source_id = getattr(value, "source_id", None)
    if isinstance(source_id, str):
        return f"{cls_name}(id={value.id!r}, {source_id!r}->{getattr(value, 'target_id', None)!r})"
    component_type = getattr(value, "type", None)
    component_id = getattr(value, "id", None)
    if isinstance(component_id, str) and component_type is not None:
        kind = getattr(component_type, "value", component_type)
        return f"{cls_name}(id={component_id!r}, type={kind!s})"
    if cls_name == "BeamPath":
        return f"BeamPath(segments={len(value)})"
    if cls_name == "Layout":
        return f"Layout(components={len(value.components)}, segments={len(value.beam_path)})"
    return None


def _safe_repr(value: Any, *, max_items: int = 5, max_length: int = 400) -> str:
    if isinstance(value, np.ndarray):
        return _summarize_array(value, max_items)

    domain = _summarize_domain(value)
    if domain is not None:
        return domain

    if isinstance(value, dict):
        items = []
        for idx, (key, val) in enumerate(value.items()):
            if idx >= max_items:
                items.append("...")
                break
            items.append(f"{_safe_repr(key)}: {_safe_repr(val)}")
        return "{" + ", ".join(items) + "}"

    if isinstance(value, (list, tuple, set, frozenset)):
        open_br, close_br = _sequence_brackets(value)  # type: ignore[arg-type]
        items = []
        for idx, item in enumerate(value):
            if idx >= max_items:
                items.append("...")
                break
            items.append(_safe_repr(item))
        return f"{open_br}{', '.join(items)}{close_br}"

    rendered = _repr.repr(value)
    if len(rendered) > max_length:
        return rendered[:max_length] + "... (truncated)"
    return rendered


def _format_arguments(args: Sequence[Any], kwargs: MutableMapping[str, Any]) -> str:
    parts = []
    if args:
        parts.append("args=[" + ", ".join(_safe_repr(arg) for arg in args) + "]")
    if kwargs:
        parts.append(
            "kwargs={"
            + ", ".join(f"{key}={_safe_repr(value)}" for key, value in kwargs.items())
            + "}"
        )
    if not parts:
        return "no-args"
    return ", ".join(parts)


def debug_log_call(logger: logging.Logger, *, name: Optional[str] = None) -> Callable[[F], F]:
    """Return a decorator that emits DEBUG logs on entry and exit of a call."""

    def decorator(func: F) -> F:
        if getattr(func, "_debug_logging_wrapped", False):
            return func

        qualname = name or getattr(func, "__qualname__", func.__name__)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Entering %s (%s)", qualname, _format_arguments(args, kwargs))
            try:
                result = func(*args, **kwargs)
            except Exception:
                if logger.isEnabledFor(logging.DEBUG):
                    logger.exception("Exception in %s", qualname)
                raise
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Exiting %s -> %s", qualname, _safe_repr(result))
            return result

        setattr(wrapper, "_debug_logging_wrapped", True)
        return cast(F, wrapper)

    return decorator


def apply_debug_logging(namespace: MutableMapping[str, Any], *, logger: Optional[logging.Logger] = None) -> None:
    """Wrap module-level functions and plain methods of module classes with DEBUG logging."""

    module_name = namespace.get("__name__")
    logger = logger or logging.getLogger(module_name or __name__)

    for name, value in list(namespace.items()):
        if getattr(value, "__module__", None) != module_name:
            continue
        if inspect.isfunction(value):
            namespace[name] = debug_log_call(logger, name=name)(value)
        elif inspect.isclass(value):
            for attr_name, attr_value in list(vars(value).items()):
                if attr_name.startswith("__") or not inspect.isfunction(attr_value):
                    continue
                wrapped = debug_log_call(logger, name=f"{value.__name__}.{attr_name}")(attr_value)
                setattr(value, attr_name, wrapped)


__all__ = ["apply_debug_logging", "debug_log_call"]
