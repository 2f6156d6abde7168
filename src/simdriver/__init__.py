"""Logged simulation of continuous- and discrete-time dynamical systems.

This package provides a stateful simulation driver around an integrator.
A simulation can be run non-interactively (``Simulator.solve``, from t0
to tf in one call) or interactively (``step``, ``step_until``, ``push``),
and in both cases telemetry returned by the dynamics function is
collected into a time-indexed result table.

Dynamics are in-place functions ``dyn(dx, x, p, t)``. A dynamics
function can also offer a logging form that returns a mapping of values
to record; the simulator calls it on a copy of the state, so logging
never perturbs the trajectory.

Main Components
---------------
Simulator : Stateful simulation driver
SimulatorConfig : Configuration dataclass
ResultTable : Logged rows (time, record) with pandas export and plotting
Record : Immutable structured record

Dynamics
--------
loggable : Decorator giving a dynamics function its logging form
apply_inputs : Wrap dynamics with constant or (x, p, t)-dependent inputs
LOG_MARKER, LogMarker : Tag selecting the logging form

Integrators
-----------
ForwardEuler, RungeKutta4 : Fixed-step NumPy methods
SciPyIntegrator : scipy.integrate.solve_ivp wrapper
FunctionMap : Discrete-time map

Examples
--------
>>> import numpy as np
>>> from simdriver import Simulator, loggable
>>>
>>> @loggable
... def dynamics(dx, x, p, t):
...     dx[:] = -p * x
...     return {"t": t, "x": x}
>>>
>>> sim = Simulator(np.array([1.0, 2.0]), dynamics, 1.0, tf=1.0)
>>> table = sim.solve(savestep=0.01)
>>> table[-1].sol.x  # approx [exp(-1), 2 exp(-1)]
"""

# Core simulation components
from simdriver.core import (
    AUTO,
    Dynamics,
    InputSignal,
    Simulator,
    SimulatorConfig,
    simulate,
)

# Errors and warnings
from simdriver.exceptions import ConfigurationError, NoOpWarning, TruncationWarning

# Problems
from simdriver.problem import Problem, ProblemKind, build_problem

# Dynamics and logging
from simdriver.dynamics import LOG_MARKER, LogMarker, has_log_form, loggable, make_log_func
from simdriver.records import Record, normalize
from simdriver.results import ResultTable, Row

# Inputs
from simdriver.inputs import (
    ConstantInput,
    FunctionInput,
    InterpolatedInput,
    RampInput,
    SinusoidalInput,
    StepInput,
    apply_inputs,
    maybe_apply,
)

# Integrators and callbacks
from simdriver.callbacks import (
    Callback,
    CallbackSet,
    PresetTimeCallback,
    SavedValues,
    SavingCallback,
)
from simdriver.integrators import (
    ForwardEuler,
    FunctionMap,
    Integrator,
    RungeKutta4,
    SciPyIntegrator,
    Solution,
    init,
    make_solver,
    solve,
)

# Configuration setup utilities
from simdriver.setup import flatten_params, load_config, read_param_values

__all__ = [
    # Core
    "AUTO",
    "Dynamics",
    "InputSignal",
    "Simulator",
    "SimulatorConfig",
    "simulate",
    # Errors
    "ConfigurationError",
    "NoOpWarning",
    "TruncationWarning",
    # Problems
    "Problem",
    "ProblemKind",
    "build_problem",
    # Dynamics and logging
    "LOG_MARKER",
    "LogMarker",
    "has_log_form",
    "loggable",
    "make_log_func",
    "Record",
    "normalize",
    "ResultTable",
    "Row",
    # Inputs
    "ConstantInput",
    "FunctionInput",
    "InterpolatedInput",
    "RampInput",
    "SinusoidalInput",
    "StepInput",
    "apply_inputs",
    "maybe_apply",
    # Integrators and callbacks
    "Callback",
    "CallbackSet",
    "PresetTimeCallback",
    "SavedValues",
    "SavingCallback",
    "ForwardEuler",
    "FunctionMap",
    "Integrator",
    "RungeKutta4",
    "SciPyIntegrator",
    "Solution",
    "init",
    "make_solver",
    "solve",
    # Setup utilities
    "flatten_params",
    "load_config",
    "read_param_values",
]
