"""Plot specifications: the commands and datasets stored in a session."""

import dataclasses
import math
import numbers
from collections.abc import Mapping
from dataclasses import dataclass
from functools import singledispatch
from typing import Any, Iterator, Optional, Sequence, Union
import numpy as np
import pandas as pd
from gpbridge.data.dataset import Dataset, DatasetEmpty, DatasetText, make_dataset
from gpbridge.utils.logger import get_logger

logger = get_logger(__name__)

KEYWORD_NAMES = (
    "xrange",
    "yrange",
    "zrange",
    "cbrange",
    "key",
    "title",
    "xlabel",
    "ylabel",
    "zlabel",
    "cblabel",
    "xlog",
    "ylog",
    "zlog",
    "cblog",
    "margins",
    "lmargin",
    "rmargin",
    "bmargin",
    "tmargin",
)
PLOT_PREFIXES = ("plot", "plo", "pl", "p")
SPLOT_PREFIXES = ("splot", "splo", "spl", "sp", "s")
COMMAND_SEPARATOR = ";\n"


class KeywordError(TypeError):
    """A keyword is unknown or is an ambiguous abbreviation."""


class AbstractGPCommand:
    """Base class of every item stored in a session."""


@dataclass(frozen=True)
class GPCommand(AbstractGPCommand):
    cmd: str
    mid: int = 1

    @classmethod
    def from_lines(cls, lines: Sequence[str], mid: int = 1) -> "GPCommand":
        return cls(COMMAND_SEPARATOR.join(str(line) for line in lines), mid=mid)


@dataclass(frozen=True)
class GPNamedDataset(AbstractGPCommand):
    name: str
    data: DatasetText

    def __post_init__(self) -> None:
        if not self.name.startswith("$"):
            raise ValueError(f"Dataset name must start with a dollar sign: {self.name!r}")


@dataclass(frozen=True)
class GPPlotCommand(AbstractGPCommand):
    cmd: str
    mid: int = 1
    is3d: bool = False


@dataclass(frozen=True)
class GPPlotDataCommand(AbstractGPCommand):
    data: Dataset
    cmd: str = ""
    mid: int = 1
    is3d: bool = False


@singledispatch
def recipe(item: Any) -> list[AbstractGPCommand]:
    """Implicit recipe: convert an object into plot commands."""
    raise TypeError(f"No recipe available for {type(item).__name__}")


def has_recipe(item: Any) -> bool:
    return recipe.dispatch(type(item)) is not recipe.dispatch(object)


# ---------------------------------------------------------------------
def canonicalize_keywords(keywords: Mapping[str, Any]) -> dict[str, Any]:
    """Expand abbreviated keyword names (e.g. `xr` -> `xrange`)."""
    out: dict[str, Any] = {}
    for name, value in keywords.items():
        if name in KEYWORD_NAMES:
            full_name = name
        else:
            candidates = [k for k in KEYWORD_NAMES if k.startswith(name)]
            if not candidates:
                raise KeywordError(f"Unrecognized keyword: {name}")
            if len(candidates) > 1:
                raise KeywordError(
                    f"Ambiguous keyword abbreviation {name!r}: {', '.join(candidates)}"
                )
            full_name = candidates[0]
        if full_name in out:
            raise KeywordError(f"Keyword {full_name!r} given more than once")
        out[full_name] = value
    return out


def _range_bound(value: Any) -> str:
    if value is None:
        return "*"
    if isinstance(value, numbers.Real) and math.isnan(value):
        return "*"
    return str(value)


def _range(axis: str, value: Any) -> str:
    if isinstance(value, str) or len(value) != 2:
        raise ValueError(f"{axis}range must be a (low, high) pair, got {value!r}")
    low, high = value
    return f"set {axis}range [{_range_bound(low)}:{_range_bound(high)}]"


def _margin(side: str, value: Any) -> str:
    if value == "":
        return f"unset {side}margin"
    return f"set {side}margin at screen {value}"


def parse_keywords(**keywords: Any) -> str:
    """Translate keyword/value pairs into `;\\n`-separated gnuplot commands."""
    kw = canonicalize_keywords(keywords)
    out: list[str] = []
    for axis in ("x", "y", "z", "cb"):
        if kw.get(f"{axis}range") is not None:
            out.append(_range(axis, kw[f"{axis}range"]))
    if kw.get("key") is not None:
        out.append(f"set key {kw['key']}")
    if kw.get("title") is not None:
        out.append(f'set title "{kw["title"]}"')
    for axis in ("x", "y", "z", "cb"):
        if kw.get(f"{axis}label") is not None:
            out.append(f'set {axis}label "{kw[f"{axis}label"]}"')
    for axis in ("x", "y", "z", "cb"):
        if kw.get(f"{axis}log") is not None:
            prefix = "" if kw[f"{axis}log"] else "un"
            out.append(f"{prefix}set logscale {axis}")

    margins = kw.get("margins")
    if margins is not None:
        if isinstance(margins, str):
            out.append(f"set margins {margins}")
        else:
            out.append(
                "set margins "
                f"at screen {margins['l']}, at screen {margins['r']}, "
                f"at screen {margins['b']}, at screen {margins['t']}"
            )
    for side in ("l", "r", "b", "t"):
        if kw.get(f"{side}margin") is not None:
            out.append(_margin(side, kw[f"{side}margin"]))
    return COMMAND_SEPARATOR.join(out)


def parse_as_plot_command(text: str, mid: int = 1) -> Union[GPCommand, GPPlotCommand]:
    """Strings starting with `plot`/`splot` (or an abbreviation) become plot elements."""
    for prefix in PLOT_PREFIXES:
        if text.startswith(prefix + " "):
            return GPPlotCommand(text[len(prefix):].strip(), mid=mid)
    for prefix in SPLOT_PREFIXES:
        if text.startswith(prefix + " "):
            return GPPlotCommand(text[len(prefix):].strip(), mid=mid, is3d=True)
    return GPCommand(text, mid=mid)


# ---------------------------------------------------------------------
@dataclass(frozen=True)
class _MultiplotId:
    mid: int


@dataclass(frozen=True)
class _FromRecipe:
    command: AbstractGPCommand


ARRAY_TYPES = (np.ndarray, pd.Series, pd.Index, list, tuple, range)


def _is_array(item: Any) -> bool:
    return isinstance(item, ARRAY_TYPES)


def _named_datasets(mapping: Mapping[str, Any]) -> Iterator[GPNamedDataset]:
    for name, value in mapping.items():
        if not isinstance(name, str):
            raise TypeError("Dataset name must be a string")
        if isinstance(value, DatasetText):
            data = value
        elif isinstance(value, Dataset):
            raise TypeError("Named datasets must be text datasets")
        elif isinstance(value, tuple):
            data = DatasetText.from_arrays(*value)
        else:
            data = DatasetText.from_arrays(value)
        yield GPNamedDataset(name, data)


def _expand(args: Sequence[Any]) -> Iterator[Any]:
    for arg in args:
        if isinstance(arg, (bool, np.bool_)):
            raise TypeError("Unexpected argument with type bool")
        if isinstance(arg, numbers.Integral):
            if arg < 1:
                raise ValueError(f"Multiplot index must be >= 1, got {arg}")
            yield _MultiplotId(int(arg))
        elif isinstance(arg, str):
            yield arg.strip()
        elif isinstance(arg, Mapping):
            yield from _named_datasets(arg)
        elif isinstance(arg, pd.DataFrame):
            for column in arg.columns:
                yield arg[column]
        elif isinstance(arg, (Dataset, AbstractGPCommand)):
            yield arg
        elif isinstance(arg, list) and arg and all(
            isinstance(item, AbstractGPCommand) for item in arg
        ):
            yield from arg
        elif isinstance(arg, list) and arg and all(has_recipe(item) for item in arg):
            for item in arg:
                yield from (_FromRecipe(command) for command in recipe(item))
        elif _is_array(arg):
            yield arg
        elif has_recipe(arg):
            yield from (_FromRecipe(command) for command in recipe(arg))
        else:
            raise TypeError(f"Unexpected argument with type {type(arg).__name__}")


def _group_datasets(items: Sequence[Any], preferred_format: Optional[str]) -> list[Any]:
    out: list[Any] = []
    accumulated: list[Any] = []
    for item in items:
        if _is_array(item):
            accumulated.append(item)
            continue
        if accumulated:
            out.append(make_dataset(*accumulated, preferred_format=preferred_format))
            accumulated = []
        out.append(item)
    if accumulated:
        out.append(make_dataset(*accumulated, preferred_format=preferred_format))
    return out


def parse_specs(
    *args: Any,
    mid: int = 1,
    is3d: bool = False,
    preferred_format: Optional[str] = None,
    **keywords: Any,
) -> list[AbstractGPCommand]:
    """
    Convert a free-form argument list into session commands.

    Args:
        *args: Commands and plot elements (str), multiplot slots (int),
            arrays, DataFrames, datasets, `{"$name": arrays}` mappings,
            command objects, or objects with an implicit recipe.
        mid: Initial multiplot slot.
        is3d: Mark data plot elements as 3D (splot).
        preferred_format: Dataset format, see `make_dataset`.
        **keywords: Keyword shortcuts, see `parse_keywords`.

    Returns:
        list[AbstractGPCommand]: The parsed commands, in order.
    """
    items = _group_datasets(list(_expand(args)), preferred_format)

    out: list[AbstractGPCommand] = []
    keyword_commands = parse_keywords(**keywords)
    if keyword_commands:
        out.append(GPCommand(keyword_commands, mid=mid))

    position = 0
    while position < len(items):
        item = items[position]
        position += 1
        if isinstance(item, _MultiplotId):
            mid = item.mid
        elif isinstance(item, str):
            out.append(parse_as_plot_command(item, mid))
        elif isinstance(item, Dataset):
            plot_element = ""
            if position < len(items) and isinstance(items[position], str):
                plot_element = items[position]
                position += 1
            if isinstance(item, DatasetEmpty):
                logger.debug("Skipping empty dataset")
                continue
            out.append(GPPlotDataCommand(item, plot_element, mid=mid, is3d=is3d))
        elif isinstance(item, _FromRecipe):
            command = item.command
            if hasattr(command, "mid") and command.mid != mid:
                command = dataclasses.replace(command, mid=mid)
            out.append(command)
        else:
            out.append(item)
    return out
