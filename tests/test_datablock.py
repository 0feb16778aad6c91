import math
import numpy as np
import pandas as pd
import pytest
from gpbridge.data.datablock import (
    Columns,
    Grid,
    GridStack,
    LabeledGrid,
    ScatteredGrid,
    ShapeMismatchError,
    arrays_to_datablock,
    classify,
    format_value,
)


def grid_3x3():
    # z[X, Y] = X + Y for X in 1..3 and Y in 4..6
    return np.array([[x + y for y in (4, 5, 6)] for x in (1, 2, 3)])


def test_single_array():
    assert arrays_to_datablock([1, 2, 3]) == [" 1", " 2", " 3"]


def test_two_arrays():
    assert arrays_to_datablock([1, 2, 3], [4, 5, 6]) == [" 1 4", " 2 5", " 3 6"]


def test_single_grid_has_indices_and_blank_separators():
    lines = arrays_to_datablock(grid_3x3())
    assert lines == [
        "0 0 5",
        "1 0 6",
        "2 0 7",
        "",
        "0 1 6",
        "1 1 7",
        "2 1 8",
        "",
        "0 2 7",
        "1 2 8",
        "2 2 9",
    ]


def test_grid_line_count():
    z = np.arange(12).reshape(4, 3)
    rows, columns = z.shape
    assert len(arrays_to_datablock(z)) == rows * columns + rows - 1


def test_grid_pair_has_no_indices():
    z = grid_3x3()
    lines = arrays_to_datablock(z, z * 10)
    assert lines[:4] == [" 5 50", " 6 60", " 7 70", ""]
    assert len(lines) == 11


def test_labeled_grid():
    x = [0.5, 1.5]
    y = [10, 20, 30]
    z = np.array([[1, 2, 3], [4, 5, 6]])
    assert arrays_to_datablock(x, y, z) == [
        " 0.5 10 1",
        " 1.5 10 4",
        "",
        " 0.5 20 2",
        " 1.5 20 5",
        "",
        " 0.5 30 3",
        " 1.5 30 6",
    ]


def test_scattered_grid():
    lines = arrays_to_datablock([10, 11, 12, 13], [20, 21, 22, 23], [[1, 2], [3, 4]])
    assert lines == [" 10 20 1", " 11 21 3", "", " 12 22 2", " 13 23 4"]


def test_rank_three_grid():
    lines = arrays_to_datablock(np.arange(8).reshape(2, 2, 2))
    assert lines == [
        "0 0 0 0",
        "1 0 0 1",
        "",
        "0 1 0 2",
        "1 1 0 3",
        "",
        "0 0 1 4",
        "1 0 1 5",
        "",
        "0 1 1 6",
        "1 1 1 7",
    ]


def test_strings_are_quoted():
    lines = arrays_to_datablock(range(1, 4), range(1, 4), ["One", "Two", "Three"])
    assert lines == [' 1 1 "One"', ' 2 2 "Two"', ' 3 3 "Three"']


def test_missing_and_special_values():
    lines = arrays_to_datablock([1.0, None, math.nan, math.inf, -math.inf])
    assert lines == [" 1.0", " ?", " NaN", " Inf", " -Inf"]


def test_pandas_missing_values():
    series = pd.Series([1, None, 3], dtype="Int64")
    assert arrays_to_datablock(series) == [" 1", " ?", " 3"]


def test_format_value():
    assert format_value(True) == "1"
    assert format_value(np.int32(7)) == "7"
    assert format_value(0.1) == "0.1"
    assert format_value("a b") == '"a b"'
    with pytest.raises(TypeError):
        format_value(object())


def test_classify_layouts():
    z = np.zeros((2, 3))
    assert isinstance(classify([1, 2]), Columns)
    assert isinstance(classify(z), Grid)
    assert isinstance(classify(z, z), GridStack)
    assert isinstance(classify([1, 2], [1, 2, 3], z), LabeledGrid)
    assert isinstance(classify(range(6), range(6), z), ScatteredGrid)


@pytest.mark.parametrize(
    "arrays",
    [
        ([1, 2, 3], [1, 2]),
        (np.zeros((2, 2)), np.zeros((3, 3))),
        ([1, 2], [1, 2], np.zeros((3, 3))),
        (np.zeros((2, 2)), np.zeros((2, 2, 2))),
    ],
)
def test_shape_mismatch(arrays):
    with pytest.raises(ShapeMismatchError):
        arrays_to_datablock(*arrays)


def test_rank_above_three_is_rejected():
    with pytest.raises(ShapeMismatchError):
        arrays_to_datablock(np.zeros((1, 1, 1, 1)))


def test_no_arrays():
    with pytest.raises(ShapeMismatchError):
        arrays_to_datablock()


def test_scalar_is_rejected():
    with pytest.raises(TypeError):
        arrays_to_datablock(3)


def test_output_is_deterministic():
    z = grid_3x3()
    assert arrays_to_datablock(z) == arrays_to_datablock(z.copy())
