"""Immutable structured records built from logged telemetry."""

from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

import numpy as np


def _values_equal(a, b) -> bool:
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        return np.array_equal(a, b)
    if isinstance(a, (list, tuple)) and type(a) is type(b):
        return len(a) == len(b) and all(
            _values_equal(x, y) for x, y in zip(a, b)
        )
    result = a == b
    if isinstance(result, np.ndarray):
        return bool(result.all())
    return bool(result)


class Record(Mapping):
    """Read-only mapping with attribute access.

    Values are stored as given; nested mappings are expected to be
    records already (see :func:`normalize`).

    Examples
    --------
    >>> r = Record({"t": 0.0, "ctrl": Record({"u": 1.5})})
    >>> r.t, r["t"], r.ctrl.u
    (0.0, 0.0, 1.5)
    """

    __slots__ = ("_data",)

    def __init__(self, data=None, **kwargs):
        fields = dict(data) if data is not None else {}
        fields.update(kwargs)
        object.__setattr__(self, "_data", MappingProxyType(fields))

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)

    def __getattr__(self, name):
        if name == "_data":
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(
                f"Record has no field {name!r}"
            ) from None

    def __setattr__(self, name, value):
        raise AttributeError("Record is immutable")

    def __delattr__(self, name):
        raise AttributeError("Record is immutable")

    def __eq__(self, other):
        if not isinstance(other, Mapping):
            return NotImplemented
        if set(self.keys()) != set(other.keys()):
            return False
        return all(_values_equal(self[key], other[key]) for key in self)

    __hash__ = None

    def __reduce__(self):
        return (Record, (dict(self._data),))

    def __repr__(self):
        fields = ", ".join(f"{k}={v!r}" for k, v in self._data.items())
        return f"Record({fields})"

    def to_dict(self) -> dict:
        """Convert to plain (nested) dicts."""
        return {
            key: value.to_dict() if isinstance(value, Record) else value
            for key, value in self._data.items()
        }

    def flatten(self, parent_key: str = "", sep: str = "_") -> dict:
        """Flatten nested records by concatenating keys.

        Examples
        --------
        >>> Record(a=1, b=Record(c=2)).flatten()
        {'a': 1, 'b_c': 2}
        """
        items = []
        for key, value in self._data.items():
            new_key = f"{parent_key}{sep}{key}" if parent_key else str(key)
            if isinstance(value, Record):
                items.extend(value.flatten(new_key, sep=sep).items())
            else:
                items.append((new_key, value))
        return dict(items)


def normalize(value: Any) -> Any:
    """Recursively convert a logged mapping into a :class:`Record`.

    Non-mapping values are returned unchanged, so the function is total.
    The empty mapping becomes an empty record.

    Examples
    --------
    >>> normalize({"x": 1.0, "ctrl": {"u": -1.0}})
    Record(x=1.0, ctrl=Record(u=-1.0))
    >>> normalize({})
    Record()
    """
    if isinstance(value, Mapping):
        return Record({key: normalize(item) for key, item in value.items()})
    return value
