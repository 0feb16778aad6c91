"""Dataset containers sent to gnuplot, either as text or as binary files."""

import os
import tempfile
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence
import numpy as np
from gpbridge.data.datablock import ShapeMismatchError, arrays_to_datablock, as_array
from gpbridge.utils import config
from gpbridge.utils.logger import get_logger

logger = get_logger(__name__)

PREVIEW_LINE_COUNT = 4
BINARY_THRESHOLD = 10_000
TEMPORARY_FILE_PREFIX = "gpbridge-"

BINARY_TYPE_NAMES = {
    np.dtype(np.uint8): "uint8",
    np.dtype(np.uint16): "uint16",
    np.dtype(np.uint32): "uint32",
    np.dtype(np.uint64): "uint64",
    np.dtype(np.int8): "int8",
    np.dtype(np.int16): "int16",
    np.dtype(np.int32): "int32",
    np.dtype(np.int64): "int64",
    np.dtype(np.float32): "float32",
    np.dtype(np.float64): "float64",
}


def quote_path(path: str) -> str:
    """Quote a file name for gnuplot (single quotes, doubled when embedded)."""
    return "'" + path.replace("'", "''") + "'"


class Dataset:
    """Base class of all dataset containers."""


@dataclass
class DatasetEmpty(Dataset):
    """A dataset built from zero-length arrays; nothing is sent to gnuplot."""


@dataclass
class DatasetText(Dataset):
    """
    A dataset stored as a text buffer, sent to gnuplot as an inline data block.

    Transmission may be slow for large datasets, but no temporary file is
    involved and the dataset can be saved directly into a gnuplot script.

    Attributes:
        preview (list[str]): The first lines of the block, for logging.
        data (str): The whole block, newline separated.
    """

    preview: list[str]
    data: str

    @classmethod
    def from_lines(cls, lines: Sequence[str]) -> "DatasetText":
        lines = list(lines)
        if len(lines) <= PREVIEW_LINE_COUNT:
            preview = list(lines)
        else:
            preview = lines[:PREVIEW_LINE_COUNT] + ["..."]
        return cls(preview=preview, data="\n".join(lines))

    @classmethod
    def from_arrays(cls, *arrays: Any) -> "DatasetText":
        return cls.from_lines(arrays_to_datablock(*arrays))

    @property
    def lines(self) -> list[str]:
        return self.data.split("\n")


@dataclass
class DatasetBin(Dataset):
    """
    A dataset stored in a temporary binary file.

    Best performance for large datasets. `source` is the gnuplot data
    specification (file name plus `binary ...` keywords).
    """

    file: str
    source: str
    owned: bool = field(default=True, repr=False)

    @staticmethod
    def _binary_type(array: np.ndarray) -> tuple[np.ndarray, str]:
        if array.dtype == np.bool_:
            array = array.astype(np.uint8)
        native = array.dtype.newbyteorder("=")
        if native not in BINARY_TYPE_NAMES:
            raise TypeError(f"Unsupported binary data type: {array.dtype}")
        return array.astype(native, copy=False), BINARY_TYPE_NAMES[native]

    @staticmethod
    def _write(array: np.ndarray) -> str:
        descriptor, path = tempfile.mkstemp(prefix=TEMPORARY_FILE_PREFIX, suffix=".bin")
        with os.fdopen(descriptor, "wb") as handle:
            array.tofile(handle)
        logger.debug("Binary dataset written to %s (%d bytes)", path, array.nbytes)
        return path

    @classmethod
    def from_columns(cls, *columns: Any) -> "DatasetBin":
        """Write 1-D numeric columns as interleaved binary records."""
        arrays = [as_array(column) for column in columns]
        if not arrays:
            raise ShapeMismatchError("At least one column is required")
        if any(array.ndim != 1 for array in arrays):
            raise TypeError("Binary records require 1-D columns")
        length = len(arrays[0])
        if any(len(array) != length for array in arrays):
            raise ShapeMismatchError(
                f"Array size are incompatible: lengths {[len(a) for a in arrays]}"
            )

        typed = [cls._binary_type(array) for array in arrays]
        record_type = np.dtype(
            [(f"c{i}", array.dtype) for i, (array, _) in enumerate(typed)]
        )
        records = np.empty(length, dtype=record_type)
        for i, (array, _) in enumerate(typed):
            records[f"c{i}"] = array

        path = cls._write(records)
        type_format = "".join(f"%{name}" for _, name in typed)
        using = ":".join(str(i) for i in range(1, len(arrays) + 1))
        source = (
            f" {quote_path(path)} binary record={length} "
            f"format='{type_format}' using {using}"
        )
        return cls(file=path, source=source)

    @classmethod
    def from_grids(cls, *grids: Any) -> "DatasetBin":
        """Write same-shape 2-D grids as interleaved float32 values."""
        arrays = [as_array(grid) for grid in grids]
        if not arrays:
            raise ShapeMismatchError("At least one grid is required")
        if any(array.ndim != 2 for array in arrays):
            raise TypeError("Binary arrays require 2-D grids")
        shape = arrays[0].shape
        if any(array.shape != shape for array in arrays):
            raise ShapeMismatchError(
                f"Array size are incompatible: shapes {[a.shape for a in arrays]}"
            )
        if any(array.dtype.kind not in "biuf" for array in arrays):
            raise TypeError("Binary arrays require numeric grids")

        interleaved = np.stack([array.astype(np.float32) for array in arrays], axis=-1)
        path = cls._write(np.ascontiguousarray(interleaved))
        dimensions = ", ".join(str(size) for size in reversed(shape))
        return cls(file=path, source=f" {quote_path(path)} binary array=({dimensions})")

    def delete(self) -> None:
        if self.owned and self.file and os.path.exists(self.file):
            os.remove(self.file)
            logger.debug("Binary dataset %s removed", self.file)


def use_binary(arrays: Sequence[np.ndarray], preferred_format: str = "auto") -> bool:
    """Decide whether the arrays should be sent through a binary file."""
    if preferred_format == "bin":
        return True
    if preferred_format != "auto":
        return False
    if len(arrays) == 1 and arrays[0].ndim == 2:
        return True
    if all(array.ndim == 1 and array.dtype.kind in "iuf" for array in arrays):
        return sum(array.size for array in arrays) > BINARY_THRESHOLD
    return False


def make_dataset(*arrays: Any, preferred_format: Optional[str] = None) -> Dataset:
    """
    Build the most suitable dataset for the given arrays.

    Args:
        *arrays: Arrays passed together (see `arrays_to_datablock`).
        preferred_format: "auto", "bin" or "text"; defaults to the global option.

    Returns:
        Dataset: A `DatasetBin`, a `DatasetText`, or `DatasetEmpty` when
        every array is empty.
    """
    if preferred_format is None:
        preferred_format = config.options.preferred_format

    converted = [as_array(array) for array in arrays]
    sizes = [array.size for array in converted]
    if converted and max(sizes) == 0:
        return DatasetEmpty()
    if converted and min(sizes) == 0:
        raise ShapeMismatchError(
            "At least one input array is empty, while other(s) are not"
        )

    if use_binary(converted, preferred_format):
        try:
            if all(array.ndim == 1 for array in converted):
                return DatasetBin.from_columns(*converted)
            return DatasetBin.from_grids(*converted)
        except TypeError as error:
            logger.debug("Binary encoding not possible (%s); using text", error)
    return DatasetText.from_arrays(*converted)
