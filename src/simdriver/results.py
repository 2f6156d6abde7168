"""Result tables of logged simulation data.

This module provides the ResultTable class for storing and analyzing
the records logged during a simulation.
"""

from typing import Iterable, List, NamedTuple, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from simdriver.records import Record, normalize


class Row(NamedTuple):
    """One sampled instant: time and structured record."""

    time: float
    sol: Record


class ResultTable:
    """Time-ordered table of structured records.

    Rows are kept in insertion order, one per sampled instant. Every
    record is normalized on insertion, so all rows hold immutable
    :class:`~simdriver.records.Record` objects (possibly empty).

    Parameters
    ----------
    time : iterable of float, optional
        Sample times.
    sol : iterable of mapping, optional
        Logged records, same length as ``time``.

    Examples
    --------
    >>> table = ResultTable()
    >>> table.append(0.0, {"x": np.array([1.0, 2.0])})
    >>> table[-1].time
    0.0
    >>> table[-1].sol.x
    array([1., 2.])
    >>> df = table.to_dataframe(flatten=True)
    """

    def __init__(
        self,
        time: Optional[Iterable[float]] = None,
        sol: Optional[Iterable] = None,
    ):
        self._rows: List[Row] = []
        time = [] if time is None else list(time)
        sol = [] if sol is None else list(sol)
        if len(time) != len(sol):
            raise ValueError(
                f"sol length {len(sol)} != time length {len(time)}"
            )
        for t, record in zip(time, sol):
            self.append(t, record)

    @classmethod
    def from_saved_values(cls, saved_values) -> "ResultTable":
        """Build a table from a :class:`~simdriver.callbacks.SavedValues`."""
        return cls(time=saved_values.t, sol=saved_values.saveval)

    def append(self, time: float, record) -> None:
        """Append one row, normalizing ``record``."""
        self._rows.append(Row(float(time), normalize(record)))

    def clear(self) -> None:
        """Remove all rows."""
        self._rows.clear()

    def __len__(self):
        return len(self._rows)

    def __iter__(self):
        return iter(self._rows)

    def __getitem__(self, index):
        if isinstance(index, slice):
            table = ResultTable()
            table._rows = self._rows[index]
            return table
        return self._rows[index]

    def __eq__(self, other):
        if not isinstance(other, ResultTable):
            return NotImplemented
        return len(self) == len(other) and all(
            a.time == b.time and a.sol == b.sol for a, b in zip(self, other)
        )

    __hash__ = None

    @property
    def time(self) -> np.ndarray:
        """Sample times, shape (n_rows,)."""
        return np.array([row.time for row in self._rows], dtype=float)

    @property
    def sol(self) -> List[Record]:
        """Structured records in row order."""
        return [row.sol for row in self._rows]

    @property
    def n_rows(self) -> int:
        """Number of rows."""
        return len(self._rows)

    def column(self, key: str) -> np.ndarray:
        """Stack the values of one (flattened) field across all rows.

        Parameters
        ----------
        key : str
            Field name; nested fields use ``_`` between levels.

        Examples
        --------
        >>> xs = table.column("x")  # shape (n_rows, n_states)
        """
        return np.array([row.sol.flatten()[key] for row in self._rows])

    def to_dataframe(self, flatten: bool = False) -> pd.DataFrame:
        """Convert to a pandas DataFrame.

        Parameters
        ----------
        flatten : bool, default=False
            If False, the frame has the two columns ``time`` and ``sol``
            (one Record per row). If True, each record is flattened into
            its own columns; 1-D array values are split into one column
            per element, named ``x1``, ``x2``, ... after the field.

        Returns
        -------
        df : pandas.DataFrame
        """
        if not flatten:
            # Fill element-wise so numpy does not unpack the records
            sol = np.empty(len(self._rows), dtype=object)
            for i, row in enumerate(self._rows):
                sol[i] = row.sol
            return pd.DataFrame(
                {"time": self.time, "sol": pd.Series(sol, dtype=object)}
            )

        rows = []
        for row in self._rows:
            flat = {"time": row.time}
            for key, value in row.sol.flatten().items():
                if isinstance(value, np.ndarray) and value.ndim == 1:
                    for i, item in enumerate(value):
                        flat[f"{key}{i+1}"] = item
                else:
                    flat[key] = value
            rows.append(flat)
        return pd.DataFrame(rows, columns=None if rows else ["time"])

    def plot(self, keys: Optional[List[str]] = None, figsize=(10, 8), **kwargs):
        """Plot logged fields against time, one panel per field.

        Parameters
        ----------
        keys : list of str, optional
            Flattened field names to plot. Defaults to every numeric field.
        figsize : tuple, optional
            Figure size (width, height), by default (10, 8)
        **kwargs
            Additional arguments passed to plt.plot()

        Returns
        -------
        fig : matplotlib.figure.Figure
        axes : ndarray
        """
        if not self._rows:
            raise ValueError("No data to plot (table is empty)")
        first = self._rows[0].sol.flatten()
        if keys is None:
            keys = [
                key
                for key, value in first.items()
                if np.issubdtype(np.asarray(value).dtype, np.number)
            ]
        if not keys:
            raise ValueError("No numeric fields to plot")

        fig, axes = plt.subplots(len(keys), 1, figsize=figsize, squeeze=False)
        axes = axes.flatten()
        t = self.time
        for ax, key in zip(axes, keys):
            values = self.column(key)
            if values.ndim == 1:
                ax.plot(t, values, label=key, **kwargs)
            else:
                for i in range(values.shape[1]):
                    ax.plot(t, values[:, i], label=f"{key}{i+1}", **kwargs)
                ax.legend()
            ax.set_ylabel(key)
            ax.grid(True, alpha=0.3)
        axes[-1].set_xlabel("Time")

        plt.tight_layout()
        return fig, axes

    def __repr__(self):
        parts = [f"ResultTable(n_rows={self.n_rows}"]
        if self._rows:
            parts.append(f"t=[{self._rows[0].time}, {self._rows[-1].time}]")
            parts.append(f"fields={list(self._rows[-1].sol.keys())}")
        return ", ".join(parts) + ")"
