"""Setup utilities: parameter trees with units and YAML configurations."""

from pathlib import Path
from typing import Any, Dict, Union

import pint
import yaml

from simdriver.core import SimulatorConfig
from simdriver.exceptions import ConfigurationError


def flatten_params(params_dict, parent_key="", sep="_"):
    """
    Flatten a nested parameter dictionary by concatenating keys.

    Leaves are either plain values or dictionaries with a 'value' key and
    optionally 'units' and descriptive fields.

    Parameters
    ----------
    params_dict : dict
        Nested dictionary of parameters.
    parent_key : str, optional
        Prefix for keys (used in recursion), by default ''
    sep : str, optional
        Separator between nested keys, by default '_'

    Returns
    -------
    dict
        Flat dictionary mapping concatenated keys to leaf dictionaries
        with at least 'value' and 'units' (None when not given).

    Examples
    --------
    >>> params = {
    ...     'plant': {
    ...         'mass': {'value': 2.0, 'units': 'kg'},
    ...         'gain': 0.5,
    ...     },
    ... }
    >>> flatten_params(params)
    {'plant_mass': {'value': 2.0, 'units': 'kg'},
     'plant_gain': {'value': 0.5, 'units': None}}
    """
    items = []

    for key, value in params_dict.items():
        new_key = f"{parent_key}{sep}{key}" if parent_key else key

        if isinstance(value, dict) and "value" in value:
            leaf = dict(value)
            leaf.setdefault("units", None)
            items.append((new_key, leaf))
        elif isinstance(value, dict):
            items.extend(
                flatten_params(value, parent_key=new_key, sep=sep).items()
            )
        else:
            items.append((new_key, {"value": value, "units": None}))

    return dict(items)


def read_param_values(params_dict, ureg=None, sep="_"):
    """
    Flatten a parameter tree into plain magnitudes in base units.

    Values with units are converted with pint to the base units of the
    registry (SI by default) and replaced by their magnitude. Values
    without units are returned unchanged.

    Parameters
    ----------
    params_dict : dict
        Nested dictionary of parameters (see :func:`flatten_params`).
    ureg : pint.UnitRegistry, optional
        Unit registry to use. If None, a new registry is created.
    sep : str, optional
        Separator between nested keys, by default '_'

    Returns
    -------
    dict
        Flat dictionary of parameter values.

    Examples
    --------
    >>> read_param_values({'pipe': {'length': {'value': 50, 'units': 'cm'}}})
    {'pipe_length': 0.5}
    """
    if ureg is None:
        ureg = pint.UnitRegistry()
    values = {}
    for key, leaf in flatten_params(params_dict, sep=sep).items():
        if leaf["units"] is None:
            values[key] = leaf["value"]
        else:
            quantity = ureg.Quantity(leaf["value"], leaf["units"])
            values[key] = quantity.to_base_units().magnitude
    return values


_CONFIG_FIELDS = (
    "state0",
    "t0",
    "tf",
    "kind",
    "solver",
    "solver_opts",
    "saveat",
    "savestep",
    "keep_table",
)


def load_config(
    source: Union[str, Path, Dict[str, Any]], ureg=None
) -> SimulatorConfig:
    """Read a simulator configuration from YAML.

    Parameters
    ----------
    source : str, Path or dict
        Path to a YAML file (a Path, or a string ending in .yaml/.yml),
        a YAML document as a string, or an already-parsed dictionary.
    ureg : pint.UnitRegistry, optional
        Registry for converting parameter units.

    Returns
    -------
    config : SimulatorConfig
        ``p`` holds the flattened ``parameters`` tree (see
        :func:`read_param_values`) if one is given.

    Examples
    --------
    A configuration file looks like::

        state0: [1.0, 2.0]
        tf: 10.0
        solver: RK4
        solver_opts:
          dt: 0.001
        savestep: 0.01
        parameters:
          plant:
            damping: {value: 0.1, units: 1/s}
    """
    if isinstance(source, dict):
        raw = dict(source)
    elif isinstance(source, Path) or str(source).endswith((".yaml", ".yml")):
        with open(source, "r") as f:
            raw = yaml.safe_load(f)
    else:
        raw = yaml.safe_load(source)
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Configuration must be a mapping, got {type(raw).__name__}"
        )

    unknown = set(raw) - set(_CONFIG_FIELDS) - {"p", "parameters"}
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
    if "state0" not in raw:
        raise ConfigurationError("Configuration must provide 'state0'")
    if "p" in raw and "parameters" in raw:
        raise ConfigurationError("Provide either 'p' or 'parameters', not both")

    kwargs = {key: raw[key] for key in _CONFIG_FIELDS if key in raw}
    if "parameters" in raw:
        kwargs["p"] = read_param_values(raw["parameters"] or {}, ureg=ureg)
    elif "p" in raw:
        kwargs["p"] = raw["p"]
    if kwargs.get("solver_opts") is None:
        kwargs.pop("solver_opts", None)
    return SimulatorConfig(**kwargs)
