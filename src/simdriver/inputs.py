"""External inputs for dynamics functions.

This module provides :func:`apply_inputs`, which wraps a dynamics
function with named inputs, and input signal classes for common
time-varying inputs.

Notes
-----
An input is either a constant, passed through unchanged, or a callable
``u(x, p, t)`` evaluated at every call of the dynamics. Evaluating
inside the dynamics means inputs are seen at the integrator's internal
stages, so they are not piecewise constant between samples. State
feedback controllers are plain functions of ``(x, p, t)``; the signal
classes below depend on time only.
"""

from typing import Any, Callable, Optional, Union

import numpy as np

from simdriver.dynamics import LOG_MARKER, LogMarker, has_log_form


def maybe_apply(f: Any, x, p, t) -> Any:
    """Evaluate ``f(x, p, t)`` if ``f`` is callable, else return ``f``."""
    if callable(f):
        return f(x, p, t)
    return f


def apply_inputs(func: Callable, **inputs) -> Callable:
    """Wrap a dynamics function with externally supplied inputs.

    Parameters
    ----------
    func : callable
        Dynamics ``func(dx, x, p, t, **inputs)``, optionally with a
        logging form (see :mod:`simdriver.dynamics`).
    **inputs
        Named inputs; constants or callables of ``(x, p, t)``.

    Returns
    -------
    simfunc : callable
        Dynamics ``simfunc(dx, x, p, t, marker=None, **kwargs)`` that
        evaluates the inputs and forwards them to ``func`` as keyword
        arguments. The result always has a logging form: it forwards to
        the logging form of ``func`` when there is one and returns an
        empty record otherwise.

    Examples
    --------
    >>> def controller(x, p, t):
    ...     return -(x[0] + x[1])
    >>> @loggable
    ... def dynamics(dx, x, p, t, u):
    ...     dx[0] = x[1]
    ...     dx[1] = u
    ...     return {"x": x, "u": u}
    >>> simfunc = apply_inputs(dynamics, u=controller)
    """
    func_logs = has_log_form(func)

    def simfunc(dx, x, p, t, marker: Optional[LogMarker] = None, **kwargs):
        evaluated = {
            name: maybe_apply(u, x, p, t) for name, u in inputs.items()
        }
        kwargs.update(evaluated)
        if marker is LOG_MARKER:
            if func_logs:
                return func(dx, x, p, t, LOG_MARKER, **kwargs)
            return {}
        return func(dx, x, p, t, **kwargs)

    simfunc.__name__ = getattr(func, "__name__", "simfunc")
    simfunc.__wrapped__ = func
    return simfunc


class ConstantInput:
    """Constant input signal.

    Returns the same value at all times. Equivalent to passing the value
    itself to :func:`apply_inputs`.

    Parameters
    ----------
    value : scalar or array-like
        Constant value to return

    Examples
    --------
    >>> u = ConstantInput(5.0)
    >>> u(None, None, 10.0)
    5.0
    """

    def __init__(self, value: Any):
        self.value = value

    def __call__(self, x, p, t: float) -> Any:
        return self.value

    def __repr__(self):
        return f"ConstantInput(value={self.value})"


class StepInput:
    """Step input signal with piecewise constant values.

    Parameters
    ----------
    times : array-like
        Times at which the input changes value
    values : array-like
        Values corresponding to each time interval.
        Length should be len(times) + 1 or len(times).

    Examples
    --------
    >>> # Step from 0 to 1 at t=5
    >>> u = StepInput([5.0], [0.0, 1.0])
    >>> u(None, None, 4.9)
    0.0
    >>> u(None, None, 5.1)
    1.0
    """

    def __init__(
        self,
        times: Union[list, np.ndarray],
        values: Union[list, np.ndarray],
    ):
        self.times = np.asarray(times)
        self.values = np.asarray(values)

        if len(self.values) not in (len(self.times), len(self.times) + 1):
            raise ValueError(
                f"values must have length {len(self.times)} or "
                f"{len(self.times) + 1}, got {len(self.values)}"
            )

    def __call__(self, x, p, t: float) -> Any:
        if len(self.values) == len(self.times):
            # First value holds before the first breakpoint
            idx = max(np.searchsorted(self.times, t, side="right") - 1, 0)
        else:
            idx = np.searchsorted(self.times, t, side="right")
        return self.values[idx]

    def __repr__(self):
        return (
            f"StepInput(times={self.times.tolist()}, "
            f"values={self.values.tolist()})"
        )


class RampInput:
    """Ramp input that changes linearly with time.

    Parameters
    ----------
    rate : float
        Rate of change (slope)
    offset : float, optional
        Value at t=0, by default 0.0
    """

    def __init__(self, rate: float, offset: float = 0.0):
        self.rate = rate
        self.offset = offset

    def __call__(self, x, p, t: float) -> float:
        return self.offset + self.rate * t

    def __repr__(self):
        return f"RampInput(rate={self.rate}, offset={self.offset})"


class InterpolatedInput:
    """Input interpolated in time from tabulated data.

    Parameters
    ----------
    times : array-like
        Time points for interpolation
    values : array-like
        Values at each time point
    kind : str, optional
        Interpolation kind ('linear', 'cubic', etc.), by default 'linear'
    fill_value : str or float, optional
        How to handle extrapolation, by default 'extrapolate'

    Examples
    --------
    >>> u = InterpolatedInput([0.0, 1.0, 2.0], [0.0, 1.0, 0.5])
    >>> u(None, None, 1.5)
    0.75
    """

    def __init__(
        self,
        times: Union[list, np.ndarray],
        values: Union[list, np.ndarray],
        kind: str = "linear",
        fill_value: Union[str, float] = "extrapolate",
    ):
        from scipy.interpolate import interp1d

        self.times = np.asarray(times)
        self.values = np.asarray(values)
        self.kind = kind

        self.interp = interp1d(
            self.times, self.values, kind=kind, fill_value=fill_value
        )

    def __call__(self, x, p, t: float) -> Any:
        return float(self.interp(t))

    def __repr__(self):
        return (
            f"InterpolatedInput(kind='{self.kind}', "
            f"n_points={len(self.times)})"
        )


class SinusoidalInput:
    """Sinusoidal input signal.

    u(t) = amplitude * sin(2*pi*frequency*t + phase) + offset
    """

    def __init__(
        self,
        amplitude: float,
        frequency: float,
        phase: float = 0.0,
        offset: float = 0.0,
    ):
        self.amplitude = amplitude
        self.frequency = frequency
        self.phase = phase
        self.offset = offset

    def __call__(self, x, p, t: float) -> float:
        return (
            self.amplitude
            * np.sin(2 * np.pi * self.frequency * t + self.phase)
            + self.offset
        )

    def __repr__(self):
        return (
            f"SinusoidalInput(amplitude={self.amplitude}, "
            f"frequency={self.frequency}, phase={self.phase}, "
            f"offset={self.offset})"
        )


class FunctionInput:
    """Wraps a function of time ``f(t)`` as an input.

    Examples
    --------
    >>> u = FunctionInput(lambda t: np.exp(-t))
    >>> u(None, None, 0.0)
    1.0
    """

    def __init__(self, func: Callable[[float], Any]):
        self.func = func

    def __call__(self, x, p, t: float) -> Any:
        return self.func(t)

    def __repr__(self):
        func_name = getattr(self.func, "__name__", repr(self.func))
        return f"FunctionInput(func={func_name})"
