from __future__ import annotations

import inspect
import logging
import reprlib
from functools import wraps
from typing import Any, Callable, Iterable, MutableMapping, Optional, Sequence, Set, Tuple, TypeVar, cast

import numpy as np

from .geometry import Affine, Box

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
    parts = [f"ndarray(shape={tuple(value.shape)}, dtype={value.dtype})"]
    if value.size == 0:
        return ", ".join(parts)
    if value.size <= max_items:
        return ", ".join(parts + [f"values={_repr.repr(value.tolist())}"])
    if np.issubdtype(value.dtype, np.number):
        parts += [f"min={float(np.min(value)):.6g}", f"max={float(np.max(value)):.6g}"]
    return ", ".join(parts)


def _safe_repr(value: Any, *, max_items: int = 5, max_length: int = 400) -> str:
    if isinstance(value, np.ndarray):
        return _summarize_array(value, max_items)

    if isinstance(value, Affine):
        if value.is_identity():
            return "Affine(identity)"
        t = ", ".join(f"{v:.6g}" for v in value.translation)
        return f"Affine(translation=({t}))"

    if isinstance(value, Box):
        if value.is_empty():
            return "Box(empty)"
        return f"Box(min={value.min.tolist()}, max={value.max.tolist()})"

    # graph entities (shapes, features, matches, sequences) print as table references
    index = getattr(value, "reconstruction_index", None)
    if isinstance(index, int) and not isinstance(value, type):
        return f"{type(value).__name__}#{index}"

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
                items.append(f"... ({len(value)} total)")
                break
            items.append(_safe_repr(item))
        return f"{open_br}{', '.join(items)}{close_br}"

    try:
        rendered = _repr.repr(value)
    except Exception as exc:  # pragma: no cover - repr of foreign objects
        rendered = f"<repr-error {exc!r}>"
    if len(rendered) > max_length:
        return rendered[:max_length] + "... (truncated)"
    return rendered


def _format_call(args: Sequence[Any], kwargs: MutableMapping[str, Any]) -> str:
    rendered = [_safe_repr(arg) for arg in args]
    rendered += [f"{key}={_safe_repr(value)}" for key, value in kwargs.items()]
    return ", ".join(rendered)


def debug_log_call(
    logger: logging.Logger, *, name: Optional[str] = None, log_result: bool = True
) -> Callable[[F], F]:
    """Decorator logging entry, exit and exceptions of a call at DEBUG level.

    Arguments are only rendered when DEBUG is enabled for ``logger``.
    """

    def decorator(func: F) -> F:
        if getattr(func, "_debug_logging_wrapped", False):
            return func
        label = name or getattr(func, "__qualname__", func.__name__)

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            verbose = logger.isEnabledFor(logging.DEBUG)
            if verbose:
                logger.debug("-> %s(%s)", label, _format_call(args, kwargs))
            try:
                result = func(*args, **kwargs)
            except Exception:
                if verbose:
                    logger.debug("!! %s raised", label, exc_info=True)
                raise
            if verbose:
                logger.debug("<- %s = %s", label, _safe_repr(result) if log_result else "...")
            return result

        setattr(wrapper, "_debug_logging_wrapped", True)
        return cast(F, wrapper)

    return decorator


def _wrap_class(cls: type, logger: logging.Logger, skip: Set[str]) -> None:
    for attr_name, attr_value in list(vars(cls).items()):
        qualified = f"{cls.__name__}.{attr_name}"
        if attr_name.startswith("__") or attr_name in skip or qualified in skip:
            continue
        binder = type(attr_value) if isinstance(attr_value, (staticmethod, classmethod)) else None
        func = attr_value.__func__ if binder is not None else attr_value
        if not inspect.isfunction(func) or func.__module__ != cls.__module__:
            continue
        wrapped = debug_log_call(logger, name=qualified)(func)
        setattr(cls, attr_name, binder(wrapped) if binder is not None else wrapped)


def apply_debug_logging(
    namespace: MutableMapping[str, Any],
    *,
    logger: Optional[logging.Logger] = None,
    skip: Optional[Iterable[str]] = None,
    wrap_methods: bool = True,
) -> None:
    """Wrap the functions and class methods defined in ``namespace``.

    Call at the bottom of a module as ``apply_debug_logging(globals())``.
    Names imported from other modules are left alone.
    """

    module_name = namespace.get("__name__")
    logger = logger or logging.getLogger(module_name if isinstance(module_name, str) else __name__)
    skip_set: Set[str] = set(skip or ())

    for name, value in list(namespace.items()):
        if name in skip_set or getattr(value, "__module__", None) != module_name:
            continue
        if inspect.isfunction(value):
            namespace[name] = debug_log_call(logger, name=name)(value)
        elif wrap_methods and inspect.isclass(value):
            _wrap_class(value, logger, skip_set)
