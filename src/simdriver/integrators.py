"""Integrators advancing a problem in time.

This module provides the stepping algorithms (fixed-step NumPy methods,
a SciPy wrapper and a discrete function map), the mutable Integrator
that tracks the live trajectory of one problem, and the ``init`` and
``solve`` operations the simulator is built on.

Algorithms work on in-place dynamics ``f(dx, x, p, t)``. Each one
implements ``advance(f, t, x, t_next, p) -> x_next``.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List

import numpy as np

from simdriver.callbacks import CallbackSet, time_tolerance
from simdriver.exceptions import ConfigurationError
from simdriver.problem import Problem, ProblemKind

logger = logging.getLogger(__name__)


def _derivative(f: Callable, x: np.ndarray, p: Any, t: float) -> np.ndarray:
    dx = np.zeros_like(x)
    f(dx, x, p, t)
    return dx


def _substeps(t: float, t_next: float, dt: float) -> np.ndarray:
    """Split [t, t_next] into equal steps no longer than dt."""
    n = max(1, int(np.ceil(abs(t_next - t) / dt - 1e-9)))
    return np.linspace(t, t_next, n + 1)


# ============================================================================
# Simple NumPy-based Algorithms
# ============================================================================


class ForwardEuler:
    """Forward Euler with a fixed maximum internal step.

    Best for prototyping and testing. Not recommended for production use.

    Parameters
    ----------
    dt : float, optional
        Maximum internal step size, by default 1e-3

    Examples
    --------
    >>> def dynamics(dx, x, p, t):
    ...     dx[:] = -x  # Simple decay
    >>> alg = ForwardEuler(dt=0.01)
    >>> x_next = alg.advance(dynamics, 0.0, np.array([1.0]), 0.1, None)
    """

    kind = ProblemKind.CONTINUOUS

    def __init__(self, dt: float = 1e-3):
        self.dt = dt

    def advance(self, f, t, x, t_next, p):
        ts = _substeps(t, t_next, self.dt)
        for t0, t1 in zip(ts[:-1], ts[1:]):
            x = x + (t1 - t0) * _derivative(f, x, p, t0)
        return x

    def __repr__(self):
        return f"ForwardEuler(dt={self.dt})"


class RungeKutta4:
    """Classic 4th-order Runge-Kutta with a fixed maximum internal step.

    Each call is split into equal sub-steps so that the requested end
    time is hit exactly.

    Parameters
    ----------
    dt : float, optional
        Maximum internal step size, by default 1e-3
    """

    kind = ProblemKind.CONTINUOUS

    def __init__(self, dt: float = 1e-3):
        self.dt = dt

    def advance(self, f, t, x, t_next, p):
        ts = _substeps(t, t_next, self.dt)
        for t0, t1 in zip(ts[:-1], ts[1:]):
            h = t1 - t0
            k1 = _derivative(f, x, p, t0)
            k2 = _derivative(f, x + h / 2 * k1, p, t0 + h / 2)
            k3 = _derivative(f, x + h / 2 * k2, p, t0 + h / 2)
            k4 = _derivative(f, x + h * k3, p, t1)
            x = x + h / 6 * (k1 + 2 * k2 + 2 * k3 + k4)
        return x

    def __repr__(self):
        return f"RungeKutta4(dt={self.dt})"


# ============================================================================
# SciPy Algorithms
# ============================================================================


class SciPyIntegrator:
    """Wrapper for scipy.integrate.solve_ivp solvers.

    Uses SciPy's adaptive step-size solvers for accurate integration.
    Each step is an independent solve_ivp call from t to t_next.

    Parameters
    ----------
    method : str, optional
        scipy solve_ivp method: 'RK45', 'RK23', 'DOP853', 'Radau', 'BDF',
        'LSODA'. Default is 'RK45'.
    **solve_ivp_kwargs
        Additional keyword arguments passed to solve_ivp (e.g. rtol, atol)

    Examples
    --------
    >>> alg = SciPyIntegrator(method="DOP853", rtol=1e-10, atol=1e-12)
    """

    kind = ProblemKind.CONTINUOUS

    def __init__(self, method: str = "RK45", **solve_ivp_kwargs):
        self.method = method
        self.kwargs = solve_ivp_kwargs

    def advance(self, f, t, x, t_next, p):
        from scipy.integrate import solve_ivp

        def ode(t_local, x_local):
            return _derivative(f, x_local, p, t_local)

        sol = solve_ivp(
            ode, (t, t_next), x, method=self.method, **self.kwargs
        )
        if not sol.success:
            raise RuntimeError(f"solve_ivp failed at t={t}: {sol.message}")
        return sol.y[:, -1]

    def __repr__(self):
        return f"SciPyIntegrator(method='{self.method}')"


# ============================================================================
# Discrete-time Algorithms
# ============================================================================


class FunctionMap:
    """Discrete-time map x[k+1] = f(x[k]).

    The dynamics write the next state into ``dx``. A step of length
    ``dt`` applies the map ``ceil(dt / self.dt)`` times.

    Parameters
    ----------
    dt : float, optional
        Length of one tick, by default 1
    """

    kind = ProblemKind.DISCRETE

    def __init__(self, dt: float = 1):
        self.dt = dt

    def advance(self, f, t, x, t_next, p):
        ts = _substeps(t, t_next, self.dt)
        for t0 in ts[:-1]:
            x = _derivative(f, x, p, t0)
        return x

    def __repr__(self):
        return f"FunctionMap(dt={self.dt})"


SOLVERS = {
    "Euler": ForwardEuler,
    "ForwardEuler": ForwardEuler,
    "RK4": RungeKutta4,
    "RungeKutta4": RungeKutta4,
    "SciPy": SciPyIntegrator,
    "FunctionMap": FunctionMap,
}

DEFAULT_SOLVERS = {
    ProblemKind.CONTINUOUS: RungeKutta4,
    ProblemKind.DISCRETE: FunctionMap,
}


def make_solver(name: str, **opts):
    """Create a solver algorithm from its registry name.

    Examples
    --------
    >>> make_solver("SciPy", method="LSODA")
    SciPyIntegrator(method='LSODA')
    """
    try:
        cls = SOLVERS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown solver '{name}'. Choose from {sorted(SOLVERS)}"
        ) from None
    return cls(**opts)


# ============================================================================
# Integrator
# ============================================================================


class Integrator:
    """Mutable solver state for one problem.

    Attributes
    ----------
    problem : Problem
        The problem being integrated.
    alg : object
        Stepping algorithm.
    t : float
        Current time.
    u : ndarray
        Current state. Callbacks may modify it in place.
    p : any
        Parameters (``problem.p``).
    tdir : int
        Direction of travel in time (+1 or -1).
    """

    def __init__(self, problem: Problem, alg):
        self.problem = problem
        self.alg = alg
        self.p = problem.p
        self.tdir = problem.tdir
        self.reinit()

    def reinit(self) -> None:
        """Reset time and state to the start of the problem."""
        self.t = self.problem.t0
        self.u = np.array(self.problem.u0, dtype=float)

    def step(self, dt: float, stop_at_tdt: bool = True) -> bool:
        """Advance by ``dt`` without crossing the end of the time span.

        Parameters
        ----------
        dt : float
            Time to advance. Its sign must match ``tdir``.
        stop_at_tdt : bool, default=True
            If True, stop exactly at ``t + dt``. If False, fixed-step
            algorithms advance by whole internal steps covering ``dt``.

        Returns
        -------
        advanced : bool
            False if the integrator was already at ``tf``.
        """
        tf = self.problem.tf
        if self.tdir * dt < 0:
            raise ValueError(
                f"Cannot step by dt={dt} against the direction of time"
            )
        t_next = self.t + dt
        if not stop_at_tdt:
            h = getattr(self.alg, "dt", None)
            if h is not None:
                n = max(1, int(np.ceil(abs(dt) / h - 1e-9)))
                t_next = self.t + self.tdir * n * h
        if self.tdir * (t_next - tf) > 0:
            t_next = tf
        return self._advance_to(t_next)

    def _advance_to(self, t_next: float) -> bool:
        if t_next == self.t:
            return False
        self.u = np.asarray(
            self.alg.advance(self.problem.f, self.t, self.u, t_next, self.p),
            dtype=float,
        )
        self.t = t_next
        return True

    def __repr__(self):
        return f"Integrator(alg={self.alg!r}, t={self.t})"


def init(problem: Problem, alg=None, **opts) -> Integrator:
    """Create an integrator for ``problem``.

    Parameters
    ----------
    problem : Problem
    alg : algorithm, str or None
        Algorithm instance, registry name (see :func:`make_solver`) or
        None for the default of the problem kind.
    **opts
        Options for the algorithm when it is given by name or defaulted.

    Raises
    ------
    ConfigurationError
        If the algorithm does not support the problem kind.
    """
    if alg is None:
        alg = DEFAULT_SOLVERS[problem.kind](**opts)
    elif isinstance(alg, str):
        alg = make_solver(alg, **opts)
    elif opts:
        raise ConfigurationError(
            f"Solver options {sorted(opts)} given with solver instance {alg!r}"
        )
    alg_kind = getattr(alg, "kind", problem.kind)
    if alg_kind is not problem.kind:
        raise ConfigurationError(
            f"Solver {alg!r} does not support {problem.kind.value} problems"
        )
    logger.debug("Initialised integrator %r on tspan=%s", alg, problem.tspan)
    return Integrator(problem, alg)


@dataclass
class Solution:
    """Raw trajectory at every integrator stop."""

    t: np.ndarray
    u: np.ndarray


def _stop_times(integrator: Integrator, times: Iterable[float]) -> List[float]:
    t0, tf = integrator.t, integrator.problem.tf
    tdir = integrator.tdir
    tol = time_tolerance(*integrator.problem.tspan)
    stops: List[float] = []
    for ts in sorted((float(t) for t in times), key=lambda t: tdir * t):
        if tdir * (ts - t0) <= tol or tdir * (ts - tf) > tol:
            continue
        if stops and tdir * (ts - stops[-1]) <= tol:
            continue
        stops.append(ts)
    # A stop within tolerance of tf is tf itself
    if stops and tdir * (tf - stops[-1]) <= tol:
        stops[-1] = tf
    else:
        stops.append(tf)
    return stops


def solve(
    integrator: Integrator,
    callback=None,
    tstops: Iterable[float] = (),
) -> Solution:
    """Integrate from the current time to the end of the time span.

    The integrator stops at every callback time, at every entry of
    ``tstops`` and at ``tf``. Callbacks are initialized at the start and
    applied, in order, after every stop.

    Parameters
    ----------
    integrator : Integrator
    callback : Callback or CallbackSet, optional
    tstops : iterable of float, optional
        Additional times at which to stop.

    Returns
    -------
    solution : Solution
    """
    callbacks = CallbackSet(callback)
    stops = _stop_times(integrator, list(tstops) + callbacks.tstops())
    logger.debug("Solving to tf=%s with %d stops", integrator.problem.tf, len(stops))

    ts = [integrator.t]
    us = [integrator.u.copy()]
    callbacks.initialize(integrator)
    for t_stop in stops:
        if not integrator._advance_to(t_stop):
            continue
        callbacks.apply(integrator)
        ts.append(integrator.t)
        us.append(integrator.u.copy())
    return Solution(t=np.array(ts), u=np.array(us))
