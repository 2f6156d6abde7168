"""Callbacks run by :func:`simdriver.integrators.solve` between steps.

A callback tells the driver at which times the integrator must stop
(``tstops``) and is applied after every stop. Callbacks in a
:class:`CallbackSet` are applied in order, so a callback placed last
sees any state changes made by the earlier ones at the same time.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List

import numpy as np

# Relative tolerance for deciding that the integrator sits at a given time
TIME_RTOL = np.sqrt(np.finfo(float).eps)


def isapprox(a: float, b: float) -> bool:
    """Approximate time equality, relative to the magnitude of the times."""
    return bool(np.isclose(a, b, rtol=TIME_RTOL, atol=0.0))


def time_tolerance(t0: float, tf: float) -> float:
    """Absolute tolerance for matching times inside the span [t0, tf].

    Scales with the length of the span, not with the magnitude of the
    times, and never drops below a few ulps of the largest time.
    """
    scale = max(abs(t0), abs(tf))
    return max(TIME_RTOL * abs(tf - t0), 4 * float(np.spacing(scale)))


class Callback:
    """Base class for solve callbacks.

    Subclasses override any of :meth:`tstops`, :meth:`initialize` and
    :meth:`apply`.
    """

    def tstops(self) -> List[float]:
        """Times at which the integrator must stop for this callback."""
        return []

    def initialize(self, integrator) -> None:
        """Called once at the start of a solve, at ``t0``."""

    def apply(self, integrator) -> None:
        """Called after every integrator stop."""


class _TimeSchedule:
    """Pending times consumed as the integrator passes them."""

    def __init__(self, times: Iterable[float]):
        self.times = [float(t) for t in times]
        self.tdir = 1
        self.tol = 0.0
        self._next = 0

    def reset(self, integrator):
        """Order the times along the direction of ``integrator``."""
        tdir = integrator.tdir
        self.tdir = tdir
        self.times.sort(key=lambda t: tdir * t)
        self.tol = time_tolerance(*integrator.problem.tspan)
        self._next = 0

    def due(self, t: float) -> List[float]:
        """Pop and return the pending times reached at ``t``."""
        reached = []
        while self._next < len(self.times):
            ts = self.times[self._next]
            if self.tdir * (ts - t) > self.tol:
                break
            reached.append(ts)
            self._next += 1
        return reached


class PresetTimeCallback(Callback):
    """Call ``affect(integrator)`` when the integrator reaches each time.

    Parameters
    ----------
    times : iterable of float
        Times at which to fire. The integrator is forced to stop there.
    affect : callable
        ``affect(integrator)``; may modify ``integrator.u`` in place.

    Examples
    --------
    >>> def kick(integrator):
    ...     integrator.u[0] += 1.0
    >>> cb = PresetTimeCallback([0.5], kick)
    """

    def __init__(self, times: Iterable[float], affect: Callable):
        self._schedule = _TimeSchedule(times)
        self.affect = affect

    def tstops(self):
        return list(self._schedule.times)

    def initialize(self, integrator):
        self._schedule.reset(integrator)
        if self._schedule.due(integrator.t):
            self.affect(integrator)

    def apply(self, integrator):
        if self._schedule.due(integrator.t):
            self.affect(integrator)


@dataclass
class SavedValues:
    """Sample times and raw saved values, filled in time order."""

    t: List[float] = field(default_factory=list)
    saveval: List[Any] = field(default_factory=list)

    def __len__(self):
        return len(self.t)


class SavingCallback(Callback):
    """Save ``save_func(u, t, integrator)`` into ``saved_values``.

    Parameters
    ----------
    save_func : callable
        ``save_func(u, t, integrator)`` returning the value to save.
    saved_values : SavedValues
        Buffer to append to.
    saveat : iterable of float, optional
        Times at which to save. If empty, a value is saved at ``t0`` and
        after every integrator stop.
    """

    def __init__(
        self,
        save_func: Callable,
        saved_values: SavedValues,
        saveat: Iterable[float] = (),
    ):
        self.save_func = save_func
        self.saved_values = saved_values
        self._schedule = _TimeSchedule(saveat)

    def tstops(self):
        return list(self._schedule.times)

    def _save(self, integrator):
        t = integrator.t
        self.saved_values.t.append(t)
        self.saved_values.saveval.append(
            self.save_func(integrator.u, t, integrator)
        )

    def initialize(self, integrator):
        self._schedule.reset(integrator)
        self.apply(integrator)

    def apply(self, integrator):
        if not self._schedule.times:
            self._save(integrator)
        elif self._schedule.due(integrator.t):
            self._save(integrator)


class CallbackSet(Callback):
    """Ordered collection of callbacks; nested sets are flattened.

    ``None`` entries are ignored.

    Examples
    --------
    >>> cbs = CallbackSet(user_callback, saving_callback)  # saving last
    """

    def __init__(self, *callbacks):
        self.callbacks: List[Callback] = []
        for cb in callbacks:
            if cb is None:
                continue
            if isinstance(cb, CallbackSet):
                self.callbacks.extend(cb.callbacks)
            else:
                self.callbacks.append(cb)

    def __len__(self):
        return len(self.callbacks)

    def tstops(self):
        return [t for cb in self.callbacks for t in cb.tstops()]

    def initialize(self, integrator):
        for cb in self.callbacks:
            cb.initialize(integrator)

    def apply(self, integrator):
        for cb in self.callbacks:
            cb.apply(integrator)
