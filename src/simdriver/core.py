"""Simulator and protocols for logged simulation of dynamical systems.

This module provides the stateful Simulator, which wraps one integrator
and can be driven either non-interactively (``solve``) or interactively
(``step``, ``step_until``, ``push``), logging telemetry from the
dynamics function into result tables.
"""

import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol, Sequence, Union

import numpy as np

from simdriver.callbacks import (
    CallbackSet,
    SavedValues,
    SavingCallback,
    isapprox,
    time_tolerance,
)
from simdriver.dynamics import make_log_func
from simdriver.exceptions import ConfigurationError, NoOpWarning, TruncationWarning
from simdriver.integrators import init, solve
from simdriver.problem import ProblemKind, build_problem
from simdriver.results import ResultTable

logger = logging.getLogger(__name__)

# Default ``savestep``: the step size of the problem kind, unless saveat is given
AUTO = "auto"

DEFAULT_SAVESTEP = {
    ProblemKind.CONTINUOUS: 0.01,
    ProblemKind.DISCRETE: 1,
}


class Dynamics(Protocol):
    """Protocol for in-place dynamics functions.

    The stepping form writes the time derivative (continuous problems) or
    the next state (discrete problems) into ``dx``. A function may also
    offer a logging form; see :mod:`simdriver.dynamics`.
    """

    def __call__(self, dx: np.ndarray, x: np.ndarray, p: Any, t: float, **kwargs) -> Any:
        """Fill ``dx`` for state ``x`` at time ``t``.

        Parameters
        ----------
        dx : ndarray
            Output buffer, same shape as ``x``
        x : ndarray
            Current state. Must not be modified.
        p : any
            System parameters
        t : float
            Current time
        **kwargs
            Inputs (see :func:`simdriver.inputs.apply_inputs`)
        """
        ...


class InputSignal(Protocol):
    """Protocol for inputs evaluated from state, parameters and time."""

    def __call__(self, x: np.ndarray, p: Any, t: float) -> Any:
        ...


@dataclass
class SimulatorConfig:
    """Configuration for a simulator and its default solve schedule.

    Parameters
    ----------
    state0 : array-like
        Initial state
    p : any, optional
        System parameters
    t0, tf : float
        Start and end times
    kind : str or ProblemKind, default="continuous"
        "continuous" or "discrete"
    solver : str or algorithm, optional
        Solver name (see ``simdriver.integrators.SOLVERS``), algorithm
        instance, or None for the default of the problem kind
    solver_opts : dict, optional
        Options for the solver when given by name or defaulted
    saveat : sequence of float, optional
        Explicit sample times for ``solve``
    savestep : float, None or "auto", default="auto"
        Uniform sample spacing for ``solve``. Cannot be given together
        with ``saveat``.
    keep_table : bool, default=False
        Whether the simulator keeps its own result table

    Examples
    --------
    >>> config = SimulatorConfig(
    ...     state0=[1.0, 2.0],
    ...     p=1.0,
    ...     tf=1.0,
    ...     savestep=0.01,
    ... )
    """

    state0: Any
    p: Any = None
    t0: float = 0.0
    tf: float = 1.0
    kind: Union[str, ProblemKind] = ProblemKind.CONTINUOUS
    solver: Any = None
    solver_opts: Dict[str, Any] = field(default_factory=dict)
    saveat: Optional[Sequence[float]] = None
    savestep: Union[float, str, None] = AUTO
    keep_table: bool = False

    def __post_init__(self):
        """Validate configuration."""
        self.kind = ProblemKind.parse(self.kind)
        _check_schedule(self.saveat, self.savestep)


def _check_schedule(saveat, savestep):
    if isinstance(savestep, str) and savestep != AUTO:
        raise ConfigurationError(
            f"savestep must be a number, None or '{AUTO}', got {savestep!r}"
        )
    if saveat is not None and savestep is not None and savestep != AUTO:
        raise ConfigurationError("Assign values of either `saveat` or `savestep`")
    if savestep is not None and savestep != AUTO and not savestep > 0:
        raise ConfigurationError(f"savestep must be positive, got {savestep!r}")


class Simulator:
    """Stateful simulation driver around one integrator.

    A simulator is either run from scratch with :meth:`solve`, which
    returns a result table, or advanced interactively with :meth:`step`
    and :meth:`step_until`, logging rows with :meth:`push`.

    Logging is available only if ``dyn`` has a logging form (see
    :func:`simdriver.dynamics.has_log_form`); this is decided once, at
    construction. Otherwise every logging operation is a no-op.

    Parameters
    ----------
    state0 : array-like
        Initial state
    dyn : callable
        In-place dynamics ``dyn(dx, x, p, t)``
    p : any, optional
        System parameters
    t0, tf : float
        Start and end times; ``tf < t0`` integrates backwards
    solver : algorithm, str or None
        Stepping algorithm, registry name, or None for the default
    kind : str or ProblemKind, default="continuous"
        "continuous" (ODE) or "discrete" (function map)
    keep_table : bool, default=False
        If True the simulator owns a result table (``self.table``):
        an initial row is logged at ``t0`` on construction and on
        :meth:`reinit`, and :meth:`step` appends a row after each step.
    **solver_opts
        Options for the solver when given by name or defaulted

    Examples
    --------
    >>> @loggable
    ... def dynamics(dx, x, p, t):
    ...     dx[:] = -p * x
    ...     return {"t": t, "x": x}
    >>> sim = Simulator([1.0, 2.0], dynamics, 1.0, tf=1.0)
    >>> table = sim.solve(savestep=0.01)
    >>>
    >>> # Interactive
    >>> table = ResultTable()
    >>> sim.reinit()
    >>> sim.push(table)
    >>> for t in np.arange(0.01, 1.0 + 0.005, 0.01):
    ...     sim.push(table, sim.step_until(t))
    """

    def __init__(
        self,
        state0,
        dyn: Callable,
        p=None,
        *,
        t0: float = 0.0,
        tf: float = 1.0,
        solver=None,
        kind: Union[str, ProblemKind] = ProblemKind.CONTINUOUS,
        keep_table: bool = False,
        **solver_opts,
    ):
        self.problem = build_problem(kind, state0, dyn, p, t0, tf)
        self.log_func = make_log_func(dyn)
        self.integrator = init(self.problem, solver, **solver_opts)
        self.table = ResultTable() if keep_table else None
        if self.log_func is None:
            logger.debug("Dynamics %r have no logging form", dyn)
        if self.table is not None:
            self.push(self.table)

    @classmethod
    def from_config(cls, config: SimulatorConfig, dyn: Callable) -> "Simulator":
        """Create a simulator from a :class:`SimulatorConfig`."""
        return cls(
            config.state0,
            dyn,
            config.p,
            t0=config.t0,
            tf=config.tf,
            solver=config.solver,
            kind=config.kind,
            keep_table=config.keep_table,
            **config.solver_opts,
        )

    @property
    def t(self) -> float:
        """Current time of the integrator."""
        return self.integrator.t

    @property
    def u(self) -> np.ndarray:
        """Current state of the integrator."""
        return self.integrator.u

    def reinit(self) -> "Simulator":
        """Reset to ``t0`` and the initial state.

        An owned table is cleared and its initial row logged again.
        """
        self.integrator.reinit()
        if self.table is not None:
            self.table.clear()
            self.push(self.table)
        logger.debug("Reinitialised simulator at t=%s", self.integrator.t)
        return self

    def step(
        self,
        dt: float,
        table: Optional[ResultTable] = None,
        autosave: bool = True,
        stop_at_tdt: bool = True,
    ) -> bool:
        """Advance by ``dt``.

        Parameters
        ----------
        dt : float
            Time to advance; never crosses ``tf``
        table : ResultTable, optional
            Table to log the post-step row into
        autosave : bool, default=True
            Log the post-step row into the owned table (if any) when no
            ``table`` is given
        stop_at_tdt : bool, default=True
            Stop exactly at ``t + dt`` (see :meth:`Integrator.step`)

        Returns
        -------
        advanced : bool
            False if the simulator was already at ``tf``; no row is
            logged then.
        """
        advanced = self.integrator.step(dt, stop_at_tdt=stop_at_tdt)
        if table is None and autosave:
            table = self.table
        if table is not None:
            self.push(table, advanced)
        return advanced

    def step_until(
        self,
        tf: float,
        table: Optional[ResultTable] = None,
        *,
        suppress_termination_warn: bool = True,
        suppress_truncation_warn: bool = False,
    ) -> bool:
        """Advance until time ``tf``.

        A ``tf`` beyond the end of the time span is truncated to it, with
        a :class:`TruncationWarning` unless suppressed. If the simulator
        is already at ``tf`` nothing happens (with a :class:`NoOpWarning`
        unless suppressed) and False is returned.

        Parameters
        ----------
        tf : float
            Target time
        table : ResultTable, optional
            Table to log the post-step row into, see :meth:`step`
        suppress_termination_warn : bool, default=True
            Do not warn when the call is a no-op
        suppress_truncation_warn : bool, default=False
            Do not warn when ``tf`` is truncated

        Returns
        -------
        success : bool
            True if a step was taken. Pass it to :meth:`push` to log only
            after real steps.
        """
        integrator = self.integrator
        t = integrator.t
        _tf = self.problem.tf
        if integrator.tdir * (tf - _tf) > 0:
            if not suppress_truncation_warn and not isapprox(tf, _tf):
                warnings.warn(
                    f"step truncated up to tf = {_tf}",
                    TruncationWarning,
                    stacklevel=2,
                )
            tf = _tf
        if isapprox(tf, t):
            if not suppress_termination_warn:
                warnings.warn(
                    f"step ignored; simulator is already at t = {t}",
                    NoOpWarning,
                    stacklevel=2,
                )
            return False
        return self.step(tf - t, table=table)

    def push(self, table: ResultTable, flag: bool = True) -> bool:
        """Log the current time and record into ``table`` if ``flag``.

        Nothing is logged when the dynamics have no logging form.

        Returns
        -------
        flag : bool
        """
        if flag and self.log_func is not None:
            integrator = self.integrator
            record = self.log_func(integrator.u, integrator.t, integrator)
            table.append(integrator.t, record)
        return flag

    def _saveat(self, saveat, savestep) -> list:
        _check_schedule(saveat, savestep)
        t0, tf = self.problem.tspan
        tdir = self.problem.tdir
        tol = time_tolerance(t0, tf)
        if savestep == AUTO:
            savestep = None if saveat is not None else DEFAULT_SAVESTEP[self.problem.kind]
        if saveat is None and savestep is None:
            return []
        if saveat is None:
            step = tdir * savestep
            saveat = np.arange(t0, tf + step / 2, step)
        return [
            float(ts)
            for ts in saveat
            if tdir * (ts - t0) >= -tol and tdir * (ts - tf) <= tol
        ]

    def solve(
        self,
        saveat: Optional[Sequence[float]] = None,
        savestep: Union[float, str, None] = AUTO,
        callback=None,
        **kwargs,
    ) -> ResultTable:
        """Run from scratch to ``tf`` and return the logged table.

        The simulator is always reinitialised first.

        Parameters
        ----------
        saveat : sequence of float, optional
            Times at which to log
        savestep : float, None or "auto", default="auto"
            Uniform logging step from ``t0`` to ``tf``. "auto" uses 0.01
            for continuous and 1 for discrete problems unless ``saveat``
            is given. With ``saveat=None, savestep=None`` a row is logged
            only at the integrator's own stops.
        callback : Callback or CallbackSet, optional
            Callbacks applied before logging at every stop
        **kwargs
            Passed to :func:`simdriver.integrators.solve` (e.g. tstops)

        Returns
        -------
        table : ResultTable
            Empty if the dynamics have no logging form.

        Raises
        ------
        ConfigurationError
            If both ``saveat`` and ``savestep`` are given.
        """
        times = self._saveat(saveat, savestep)
        self.reinit()
        saved_values = SavedValues()
        if self.log_func is not None:
            cb_save = SavingCallback(
                self.log_func, saved_values, saveat=times
            )
            # Log after all other callbacks
            callback = CallbackSet(callback, cb_save)
        logger.debug(
            "Solving over tspan=%s with %d sample times",
            self.problem.tspan,
            len(times),
        )
        solve(self.integrator, callback=callback, **kwargs)
        return ResultTable.from_saved_values(saved_values)

    def __repr__(self):
        return (
            f"Simulator(kind={self.problem.kind.value}, "
            f"tspan={self.problem.tspan}, t={self.integrator.t}, "
            f"logging={self.log_func is not None})"
        )


def simulate(dyn: Callable, config: SimulatorConfig, callback=None) -> ResultTable:
    """Build a simulator from ``config`` and solve it.

    Examples
    --------
    >>> table = simulate(dynamics, SimulatorConfig(state0=[1.0], tf=2.0))
    """
    simulator = Simulator.from_config(config, dyn)
    return simulator.solve(
        saveat=config.saveat, savestep=config.savestep, callback=callback
    )
