"""Tests for simdriver.inputs."""

from typing import Optional

import numpy as np
import pytest

from simdriver import (
    LOG_MARKER,
    ConstantInput,
    FunctionInput,
    InterpolatedInput,
    LogMarker,
    RampInput,
    ResultTable,
    Simulator,
    SinusoidalInput,
    StepInput,
    apply_inputs,
    has_log_form,
    loggable,
    maybe_apply,
)


def forced(dx, x, p, t, u, w=0.0):
    dx[:] = u + w


@loggable
def logged_forced(dx, x, p, t, u):
    dx[:] = u
    return {"u": u, "x": x}


def test_maybe_apply():
    """Test constant and callable inputs."""
    x = np.array([2.0])
    assert maybe_apply(3.0, x, None, 0.0) == 3.0
    assert maybe_apply(lambda x, p, t: x[0] * p + t, x, 10.0, 1.0) == 21.0


def test_apply_inputs_constant_and_callable():
    """Test that inputs are evaluated and forwarded as keyword arguments."""
    simfunc = apply_inputs(forced, u=lambda x, p, t: -x[0] * t, w=1.0)
    dx = np.zeros(1)

    assert simfunc(dx, np.array([2.0]), None, 3.0) is None
    np.testing.assert_array_equal(dx, [-5.0])


def test_callable_inputs_are_evaluated_every_call():
    """Test that callable inputs are re-evaluated at each call."""
    calls = []

    def u(x, p, t):
        calls.append(t)
        return t

    simfunc = apply_inputs(forced, u=u)
    dx = np.zeros(1)
    simfunc(dx, np.zeros(1), None, 1.0)
    simfunc(dx, np.zeros(1), None, 2.0)
    simfunc(dx, np.zeros(1), None, 2.0, LOG_MARKER)

    assert calls == [1.0, 2.0, 2.0]
    np.testing.assert_array_equal(dx, [2.0])


def test_wrapped_dynamics_always_have_log_form():
    """Test the logging form of wrapped dynamics."""
    assert not has_log_form(forced)
    assert has_log_form(apply_inputs(forced, u=1.0))
    assert has_log_form(apply_inputs(logged_forced, u=1.0))


def test_log_form_forwards_to_inner_dynamics():
    """Test that marker calls reach the inner logging form with inputs."""
    simfunc = apply_inputs(logged_forced, u=lambda x, p, t: 2 * t)

    record = simfunc(np.zeros(1), np.array([1.0]), None, 0.5, LOG_MARKER)

    assert record["u"] == 1.0
    np.testing.assert_array_equal(record["x"], [1.0])


def test_log_form_without_inner_log_form_is_empty():
    """Test that marker calls give an empty record for plain dynamics."""
    simfunc = apply_inputs(forced, u=1.0)
    dx = np.zeros(1)

    assert simfunc(dx, np.zeros(1), None, 0.0, LOG_MARKER) == {}


def test_nested_apply_inputs():
    """Test that apply_inputs composes."""

    def with_gain(dx, x, p, t, marker: Optional[LogMarker] = None, gain=1.0, u=0.0):
        dx[:] = gain * u
        if marker is LOG_MARKER:
            return {"gain": gain, "u": u}

    composed = apply_inputs(apply_inputs(with_gain, u=2.0), gain=3.0)
    dx = np.zeros(1)
    composed(dx, np.zeros(1), None, 0.0)
    np.testing.assert_array_equal(dx, [6.0])
    assert composed(dx, np.zeros(1), None, 0.0, LOG_MARKER) == {"gain": 3.0, "u": 2.0}
    assert has_log_form(composed)


def test_inputs_in_simulation():
    """Test a first-order system driven by a step input."""

    @loggable
    def first_order(dx, x, p, t, u):
        dx[:] = -p["tau"] * x + u
        return {"x": x, "u": u}

    sim = Simulator(
        [0.0],
        apply_inputs(first_order, u=StepInput([2.0], [0.0, 1.0])),
        {"tau": 1.0},
        tf=5.0,
    )
    table = sim.solve(savestep=0.1)

    assert table[19].sol.u == 0.0
    assert table[25].sol.u == 1.0
    assert table[19].sol.x[0] == pytest.approx(0.0)
    assert table[25].sol.x[0] > table[21].sol.x[0] > 0.0


def test_feedback_input_in_interactive_run():
    """Test a state-feedback input while stepping interactively."""

    @loggable
    def integrator_plant(dx, x, p, t, u):
        dx[:] = u
        return {"x": x, "u": u}

    sim = Simulator([1.0], apply_inputs(integrator_plant, u=lambda x, p, t: -x), tf=1.0)
    table = ResultTable()
    sim.push(table)
    sim.push(table, sim.step_until(0.5))

    np.testing.assert_allclose(table[-1].sol.x, [np.exp(-0.5)], rtol=1e-8)
    np.testing.assert_allclose(table[-1].sol.u, -table[-1].sol.x)


def test_constant_input():
    """Test constant input."""
    u = ConstantInput(5.0)
    assert u(None, None, 0.0) == 5.0
    assert u(None, None, 10.0) == 5.0


def test_step_input():
    """Test step input with and without an initial value."""
    u = StepInput([5.0], [0.0, 1.0])
    assert u(None, None, 4.9) == 0.0
    assert u(None, None, 5.1) == 1.0

    u = StepInput([0, 2, 5], [1.0, 2.0, 3.0])
    assert u(None, None, 1.0) == 1.0
    assert u(None, None, 3.0) == 2.0
    assert u(None, None, 6.0) == 3.0

    with pytest.raises(ValueError, match="values must have length"):
        StepInput([1.0, 2.0], [0.0])


def test_ramp_and_sinusoidal_inputs():
    """Test ramp and sine inputs."""
    ramp = RampInput(rate=2.0, offset=1.0)
    assert ramp(None, None, 2.0) == 5.0

    sine = SinusoidalInput(amplitude=1.0, frequency=1.0)
    assert sine(None, None, 0.0) == pytest.approx(0.0)
    assert sine(None, None, 0.25) == pytest.approx(1.0)


def test_interpolated_and_function_inputs():
    """Test interpolated and function inputs."""
    u = InterpolatedInput([0.0, 1.0, 2.0, 3.0], [0.0, 1.0, 0.5, 0.0])
    assert u(None, None, 0.5) == pytest.approx(0.5)
    assert u(None, None, 1.5) == pytest.approx(0.75)

    f = FunctionInput(lambda t: np.exp(-t))
    assert f(None, None, 0.0) == 1.0
    assert "FunctionInput" in repr(f)
