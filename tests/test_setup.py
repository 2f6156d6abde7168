"""Tests for simdriver.setup module."""

import numpy as np
import pint
import pytest

from simdriver import (
    ConfigurationError,
    ProblemKind,
    SimulatorConfig,
    flatten_params,
    load_config,
    loggable,
    read_param_values,
    simulate,
)

CONFIG_YAML = """
state0: [1.0, 2.0]
tf: 2.0
solver: RK4
solver_opts:
  dt: 0.001
savestep: 0.5
parameters:
  plant:
    rate: {value: 3.6, units: 1/hour}
    gain: 2.0
"""


@loggable
def scaled_decay(dx, x, p, t):
    dx[:] = -p["plant_rate"] * 1000.0 * x
    return {"x": x, "gain": p["plant_gain"]}


def test_flatten_params_two_levels():
    """Test flattening with leaf dictionaries and plain values."""
    params = {
        "plant": {
            "mass": {"value": 2.0, "units": "kg", "description": "Cart mass"},
            "gain": 0.5,
        },
        "dt": 0.01,
    }

    result = flatten_params(params)

    assert set(result) == {"plant_mass", "plant_gain", "dt"}
    assert result["plant_mass"]["value"] == 2.0
    assert result["plant_mass"]["units"] == "kg"
    assert result["plant_mass"]["description"] == "Cart mass"
    assert result["plant_gain"] == {"value": 0.5, "units": None}


def test_flatten_params_three_levels_custom_separator():
    """Test flattening with three nested levels and a custom separator."""
    params = {"system": {"pipe": {"length": {"value": 10.0}}}}

    result = flatten_params(params, sep=".")

    assert result == {"system.pipe.length": {"value": 10.0, "units": None}}


def test_read_param_values_base_units():
    """Test that values with units are converted to base units."""
    params = {
        "pipe": {
            "length": {"value": 50, "units": "cm"},
            "diameter": {"value": 0.07, "units": "m"},
        },
        "flow": {"value": 3.6, "units": "m**3/hour"},
        "n_segments": 20,
    }

    result = read_param_values(params)

    assert result["pipe_length"] == pytest.approx(0.5)
    assert result["pipe_diameter"] == pytest.approx(0.07)
    assert result["flow"] == pytest.approx(0.001)
    assert result["n_segments"] == 20


def test_read_param_values_custom_registry():
    """Test conversion with a caller-supplied registry."""
    ureg = pint.UnitRegistry()

    result = read_param_values({"delay": {"value": 2, "units": "minute"}}, ureg=ureg)

    assert result == {"delay": pytest.approx(120.0)}


def test_load_config_from_dict():
    """Test loading a configuration dictionary."""
    config = load_config(
        {"state0": [0.0], "tf": 5, "kind": "discrete", "p": {"a": 1}, "savestep": None}
    )

    assert isinstance(config, SimulatorConfig)
    assert config.kind is ProblemKind.DISCRETE
    assert config.p == {"a": 1}
    assert config.savestep is None
    assert config.solver_opts == {}


def test_load_config_from_yaml_string():
    """Test loading a YAML document with a parameter tree."""
    config = load_config(CONFIG_YAML)

    assert config.state0 == [1.0, 2.0]
    assert config.solver == "RK4"
    assert config.solver_opts == {"dt": 0.001}
    assert config.savestep == 0.5
    assert config.p["plant_rate"] == pytest.approx(0.001)
    assert config.p["plant_gain"] == 2.0


def test_load_config_from_file(tmp_path):
    """Test loading a YAML file given as a Path or a string."""
    path = tmp_path / "sim.yaml"
    path.write_text(CONFIG_YAML)

    assert load_config(path) == load_config(str(path))
    assert load_config(path).tf == 2.0


@pytest.mark.parametrize(
    "source, match",
    [
        ("- 1\n- 2\n", "must be a mapping"),
        ({"state0": [1.0], "speed": 3}, "Unknown configuration keys"),
        ({"tf": 1.0}, "must provide 'state0'"),
        ({"state0": [1.0], "p": 1.0, "parameters": {}}, "either 'p' or 'parameters'"),
        ({"state0": [1.0], "saveat": [0.5], "savestep": 0.1}, "either `saveat` or `savestep`"),
        ({"state0": [1.0], "kind": "hybrid"}, "Not supported problem kind"),
    ],
)
def test_load_config_errors(source, match):
    """Test invalid configurations."""
    with pytest.raises(ConfigurationError, match=match):
        load_config(source)


def test_simulate_loaded_config():
    """Test solving a simulation configured from YAML."""
    table = simulate(scaled_decay, load_config(CONFIG_YAML))

    np.testing.assert_allclose(table.time, [0.0, 0.5, 1.0, 1.5, 2.0])
    np.testing.assert_allclose(
        table[-1].sol.x, np.exp(-2.0) * np.array([1.0, 2.0]), rtol=1e-8
    )
    assert all(row.sol.gain == 2.0 for row in table)
