"""Conversion of arrays into gnuplot inline data blocks.

One or more arrays passed together are first classified into one of the
input layouts below, then rendered as a list of text lines ready to be
written between `$name << EOD` and `EOD`.
"""

import math
import numbers
from dataclasses import dataclass
from functools import singledispatch
from typing import Any, Iterator, Sequence, Union
import numpy as np
import pandas as pd

MAXIMUM_RANK = 3
MISSING_VALUE_TOKEN = "?"
FIELD_SEPARATOR = " "


class ShapeMismatchError(ValueError):
    """Arrays passed together do not share a common length or shape."""


@dataclass(frozen=True)
class Columns:
    """One or more 1-D arrays of equal length, emitted side by side."""

    columns: tuple[np.ndarray, ...]


@dataclass(frozen=True)
class Grid:
    """A single multidimensional array, emitted with its zero-based indices."""

    grid: np.ndarray


@dataclass(frozen=True)
class GridStack:
    """Several arrays of the same size, the first being multidimensional."""

    values: tuple[np.ndarray, ...]


@dataclass(frozen=True)
class LabeledGrid:
    """One coordinate array per grid axis, followed by the grid values."""

    labels: tuple[np.ndarray, ...]
    values: tuple[np.ndarray, ...]


@dataclass(frozen=True)
class ScatteredGrid:
    """1-D arrays as long as the grid itself, followed by the grid values."""

    columns: tuple[np.ndarray, ...]
    values: tuple[np.ndarray, ...]


Layout = Union[Columns, Grid, GridStack, LabeledGrid, ScatteredGrid]


def format_value(value: Any) -> str:
    """Return the data block representation of a single element."""
    if isinstance(value, str):
        return f'"{value}"'
    if value is None or value is pd.NA or value is pd.NaT:
        return MISSING_VALUE_TOKEN
    if isinstance(value, (bool, np.bool_)):
        return "1" if value else "0"
    if isinstance(value, numbers.Integral):
        return str(int(value))
    if isinstance(value, numbers.Real):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Inf" if value > 0 else "-Inf"
        if isinstance(value, (float, np.floating)):
            return str(value)
        return str(float(value))
    raise TypeError(f"Unsupported data type in data block: {type(value).__name__}")


def as_array(data: Any) -> np.ndarray:
    """Convert a sequence, Series or ndarray into an ndarray of rank >= 1."""
    if isinstance(data, (pd.Series, pd.Index)):
        data = data.to_numpy()
    if isinstance(data, np.ndarray):
        array = data
    else:
        try:
            array = np.asarray(data)
        except ValueError as error:
            raise ShapeMismatchError(f"Ragged input cannot form an array: {error}") from error
        if array.dtype.kind in "US":
            # keep the Python objects so numbers stay numbers
            array = np.asarray(data, dtype=object)
    if array.ndim == 0:
        raise TypeError(f"Expected an array, got scalar {data!r}")
    return array


def _check_same_size(reference: np.ndarray, values: Sequence[np.ndarray]) -> None:
    for array in values:
        if array.ndim > 1 and array.shape != reference.shape:
            raise ShapeMismatchError(
                f"Array size are incompatible: shape {array.shape} "
                f"differs from {reference.shape}"
            )
        if array.size != reference.size:
            raise ShapeMismatchError(
                f"Array size are incompatible: {array.size} elements "
                f"instead of {reference.size}"
            )


def classify(*arrays: Any) -> Layout:
    """
    Identify the layout of the arrays passed together.

    Raises:
        ShapeMismatchError: If no array is given, if ranks other than 1
            and the maximum rank are mixed, or if lengths/shapes differ.
    """
    if len(arrays) == 0:
        raise ShapeMismatchError("At least one array is required")

    converted = tuple(as_array(array) for array in arrays)
    ranks = [array.ndim for array in converted]
    maximum_rank = max(ranks)
    if maximum_rank > MAXIMUM_RANK:
        raise ShapeMismatchError(f"Array dimensions must be <= {MAXIMUM_RANK}")
    if any(rank not in (1, maximum_rank) for rank in ranks):
        raise ShapeMismatchError(f"Array size are incompatible: ranks {ranks}")

    if maximum_rank == 1:
        lengths = {len(array) for array in converted}
        if len(lengths) > 1:
            raise ShapeMismatchError(
                f"Array size are incompatible: lengths {sorted(lengths)}"
            )
        return Columns(converted)

    first_grid = ranks.index(maximum_rank)
    leading, values = converted[:first_grid], converted[first_grid:]
    reference = values[0]
    _check_same_size(reference, values)

    if not leading:
        if len(values) == 1:
            return Grid(reference)
        return GridStack(values)

    if all(len(array) == reference.size for array in leading):
        return ScatteredGrid(leading, values)
    if len(leading) == reference.ndim and all(
        len(array) == length for array, length in zip(leading, reference.shape)
    ):
        return LabeledGrid(leading, values)
    raise ShapeMismatchError(
        f"Array size are incompatible: coordinate lengths "
        f"{[len(array) for array in leading]} do not match grid shape {reference.shape}"
    )


def _row_major(shape: tuple[int, ...]) -> Iterator[tuple[int, ...]]:
    return np.ndindex(*shape)


def _column_major(shape: tuple[int, ...]) -> Iterator[tuple[int, ...]]:
    for index in np.ndindex(*shape[::-1]):
        yield index[::-1]


def _fields(values: Sequence[Any]) -> str:
    return "".join(FIELD_SEPARATOR + format_value(value) for value in values)


def _element(array: np.ndarray, index: tuple[int, ...], position: int) -> Any:
    if array.ndim == 1:
        return array[position]
    return array[index]


@singledispatch
def render(layout: Any) -> list[str]:
    raise TypeError(f"Unknown data block layout: {type(layout).__name__}")


@render.register
def _(layout: Columns) -> list[str]:
    return [_fields(row) for row in zip(*layout.columns)]


@render.register
def _(layout: Grid) -> list[str]:
    lines: list[str] = []
    for position, index in enumerate(_row_major(layout.grid.shape)):
        if position > 0 and index[-1] == 0:
            lines.append("")
        coordinates = FIELD_SEPARATOR.join(str(i) for i in reversed(index))
        lines.append(coordinates + _fields([layout.grid[index]]))
    return lines


@render.register
def _(layout: GridStack) -> list[str]:
    lines: list[str] = []
    for position, index in enumerate(_row_major(layout.values[0].shape)):
        if position > 0 and index[-1] == 0:
            lines.append("")
        lines.append(
            _fields([_element(array, index, position) for array in layout.values])
        )
    return lines


@render.register
def _(layout: LabeledGrid) -> list[str]:
    lines: list[str] = []
    for position, index in enumerate(_column_major(layout.values[0].shape)):
        if position > 0 and index[0] == 0:
            lines.append("")
        row = [label[i] for label, i in zip(layout.labels, index)]
        row += [_element(array, index, position) for array in layout.values]
        lines.append(_fields(row))
    return lines


@render.register
def _(layout: ScatteredGrid) -> list[str]:
    lines: list[str] = []
    for position, index in enumerate(_column_major(layout.values[0].shape)):
        if position > 0 and index[0] == 0:
            lines.append("")
        row = [column[position] for column in layout.columns]
        row += [_element(array, index, position) for array in layout.values]
        lines.append(_fields(row))
    return lines


def arrays_to_datablock(*arrays: Any) -> list[str]:
    """
    Convert one or more arrays into the lines of a gnuplot data block.

    Args:
        *arrays: 1-D sequences, grids (rank 2 or 3), pandas Series or
            numpy arrays. See the layout classes for accepted combinations.

    Returns:
        list[str]: One line per record, blank lines between grid slices.

    Raises:
        ShapeMismatchError: If the arrays do not share a common shape.
        TypeError: If an element is neither a number, a string nor missing.
    """
    return render(classify(*arrays))
