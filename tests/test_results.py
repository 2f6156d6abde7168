"""Tests for simdriver.results."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from simdriver import Record, ResultTable, SavedValues


def make_table():
    table = ResultTable()
    for t in [0.0, 0.5, 1.0]:
        table.append(
            t, {"t": t, "x": np.array([1.0, 2.0]) * (1 - t), "ctrl": {"u": -t}}
        )
    return table


def test_append_normalizes():
    """Test that rows hold normalized records."""
    table = make_table()

    assert len(table) == 3
    assert table.n_rows == 3
    assert isinstance(table[0].sol, Record)
    assert isinstance(table[0].sol.ctrl, Record)
    assert table[-1].time == 1.0
    assert table[-1].sol.ctrl.u == -1.0
    np.testing.assert_array_equal(table.time, [0.0, 0.5, 1.0])
    assert len(table.sol) == 3


def test_construct_from_columns():
    """Test construction from time and record columns."""
    table = ResultTable(time=[0.0, 1.0], sol=[{}, {"a": 1}])
    assert table[0].sol == Record()
    assert table[1].sol.a == 1

    with pytest.raises(ValueError, match="length"):
        ResultTable(time=[0.0, 1.0], sol=[{}])


def test_from_saved_values():
    """Test building a table from saved values."""
    saved = SavedValues(t=[0.0, 0.1], saveval=[{"x": 1}, {"x": 2}])
    table = ResultTable.from_saved_values(saved)

    assert table == ResultTable(time=[0.0, 0.1], sol=[{"x": 1}, {"x": 2}])


def test_slicing_and_clear():
    """Test slicing into a new table and clearing."""
    table = make_table()

    head = table[:2]
    assert isinstance(head, ResultTable)
    assert len(head) == 2
    assert len(table) == 3

    table.clear()
    assert len(table) == 0
    assert len(head) == 2


def test_column():
    """Test stacking one field across rows."""
    table = make_table()

    xs = table.column("x")
    assert xs.shape == (3, 2)
    np.testing.assert_allclose(xs[:, 1], [2.0, 1.0, 0.0])
    np.testing.assert_allclose(table.column("ctrl_u"), [0.0, -0.5, -1.0])


def test_to_dataframe():
    """Test conversion to pandas DataFrames."""
    table = make_table()

    df = table.to_dataframe()
    assert list(df.columns) == ["time", "sol"]
    assert df["sol"].iloc[1].ctrl.u == -0.5

    flat = table.to_dataframe(flatten=True)
    assert list(flat.columns) == ["time", "t", "x1", "x2", "ctrl_u"]
    np.testing.assert_allclose(flat["x2"], [2.0, 1.0, 0.0])
    assert len(flat) == len(table)


def test_empty_table_to_dataframe():
    """Test conversion of an empty table."""
    table = ResultTable()

    assert list(table.to_dataframe().columns) == ["time", "sol"]
    assert list(table.to_dataframe(flatten=True).columns) == ["time"]


def test_plot():
    """Test plotting numeric fields."""
    table = make_table()

    fig, axes = table.plot()
    assert len(axes) == 3  # t, x, ctrl_u

    fig, axes = table.plot(keys=["x"])
    assert len(axes) == 1

    with pytest.raises(ValueError, match="empty"):
        ResultTable().plot()


def test_repr():
    """Test the table representation."""
    assert repr(ResultTable()) == "ResultTable(n_rows=0)"
    assert "n_rows=3" in repr(make_table())
