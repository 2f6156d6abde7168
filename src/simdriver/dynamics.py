"""Dual-form dynamics: the logging marker, capability probe and log wrapper.

A dynamics function always supports the stepping form::

    dyn(dx, x, p, t, **kwargs)

which writes the derivative (continuous problems) or the next state
(discrete problems) into ``dx``. It may additionally support a logging
form, selected by passing the ``LOG_MARKER`` tag as a fifth positional
argument::

    dyn(dx, x, p, t, LOG_MARKER, **kwargs) -> mapping

The logging form is advertised by annotating the fifth positional
parameter with ``LogMarker``:

>>> def dynamics(dx, x, p, t, marker: Optional[LogMarker] = None):
...     dx[:] = -p * x
...     if marker is LOG_MARKER:
...         return {"t": t, "x": x}

or, more simply, by decorating a function that returns its telemetry
with :func:`loggable`.
"""

import copy
import inspect
import typing
from typing import Any, Callable, Dict, Optional

import numpy as np


class LogMarker:
    """Zero-size tag selecting the logging form of a dynamics function."""

    __slots__ = ()

    def __repr__(self):
        return "LOG_MARKER"

    def __reduce__(self):
        return "LOG_MARKER"


LOG_MARKER = LogMarker()


def _is_marker_annotation(annotation) -> bool:
    if annotation is LogMarker:
        return True
    if isinstance(annotation, str):
        return "LogMarker" in annotation
    return LogMarker in typing.get_args(annotation)


def has_log_form(func: Callable) -> bool:
    """Return True if ``func`` accepts the logging marker.

    Only the signature is inspected; ``func`` is never called. The check
    does not follow ``__wrapped__``, so wrappers report their own form.

    Examples
    --------
    >>> def plain(dx, x, p, t):
    ...     dx[:] = -x
    >>> has_log_form(plain)
    False
    >>> has_log_form(loggable(plain))
    True
    """
    try:
        sig = inspect.signature(func, follow_wrapped=False)
    except (TypeError, ValueError):
        return False
    positional = [
        param
        for param in sig.parameters.values()
        if param.kind
        in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD)
    ]
    if len(positional) < 5:
        return False
    return _is_marker_annotation(positional[4].annotation)


def _maybe_copy(p):
    try:
        return copy.copy(p)
    except (TypeError, copy.Error):
        return p


def make_log_func(dyn: Callable) -> Optional[Callable]:
    """Build the logging function for ``dyn``, or None if it cannot log.

    The returned ``log_func(x, t, integrator, **kwargs)`` evaluates the
    logging form of ``dyn`` on a copy of ``x`` and returns the telemetry
    mapping. The computed derivative is discarded.

    Notes
    -----
    ``x`` is usually the live ``integrator.u``. It is always copied
    before the dynamics see it; writing through it would corrupt the
    trajectory. Parameters are copied when they support ``copy.copy``
    and passed by reference otherwise.
    """
    if not has_log_form(dyn):
        return None

    def log_func(x, t, integrator, **kwargs) -> Dict[str, Any]:
        x = copy.copy(x)
        p = _maybe_copy(integrator.p)
        record = dyn(np.zeros_like(x), x, p, t, LOG_MARKER, **kwargs)
        return {} if record is None else record

    return log_func


def loggable(func: Callable) -> Callable:
    """Give a telemetry-returning dynamics function both call forms.

    ``func(dx, x, p, t, **kwargs)`` fills ``dx`` and may return a
    mapping of values to log. The stepping form of the result discards
    that mapping; the logging form returns it (``{}`` when ``func``
    returns None).

    Examples
    --------
    >>> @loggable
    ... def decay(dx, x, p, t):
    ...     dx[:] = -p * x
    ...     return {"t": t, "x": x}
    """

    def dynamics(dx, x, p, t, marker: Optional[LogMarker] = None, **kwargs):
        record = func(dx, x, p, t, **kwargs)
        if marker is LOG_MARKER:
            return {} if record is None else record
        return None

    dynamics.__name__ = getattr(func, "__name__", "dynamics")
    dynamics.__qualname__ = getattr(func, "__qualname__", dynamics.__name__)
    dynamics.__doc__ = func.__doc__
    dynamics.__wrapped__ = func
    return dynamics
