"""Histograms and box boundaries for gnuplot plots."""

import math
from dataclasses import dataclass
from typing import Any, Optional, Sequence
import numpy as np
import pandas as pd
from gpbridge.data.datablock import ShapeMismatchError
from gpbridge.data.dataset import Dataset, make_dataset
from gpbridge.utils.logger import get_logger

logger = get_logger(__name__)

UNBOUNDED = (math.nan, math.nan)


@dataclass
class Histogram:
    """
    Bin edges (one array per dimension) and the weight of each bin.

    Values equal to the upper edge fall into the last bin, so the sum of
    the weights equals the number of (finite) input values.
    """

    edges: tuple[np.ndarray, ...]
    weights: np.ndarray

    @property
    def ndim(self) -> int:
        return len(self.edges)


def _as_float_array(values: Any) -> np.ndarray:
    series = pd.to_numeric(pd.Series(list(values), dtype=object), errors="coerce")
    return series.to_numpy(dtype=float, na_value=np.nan)


def hist_range(
    values: Any,
    range: Sequence[float] = UNBOUNDED,
    bs: float = math.nan,
    nbins: int = 0,
) -> np.ndarray:
    """
    Compute histogram bin edges.

    Args:
        values: Input values (non-finite entries are ignored).
        range: Left edge of the first bin and right edge of the last bin;
            NaN entries are computed from the data.
        bs: Bin size, used when `nbins` is not given.
        nbins: Number of bins. When neither `nbins` nor `bs` is given,
            Sturges' rule is used.
            A zero-width range is widened by 0.5 on each side.

    Returns:
        np.ndarray: The bin edges.
    """
    values = _as_float_array(values)
    valid = values[np.isfinite(values)]
    if valid.size == 0:
        raise ValueError("At least one finite value is required to compute a histogram")
    low, high = (float(bound) for bound in range)

    if nbins > 0:
        low = valid.min() if math.isnan(low) else low
        high = valid.max() if math.isnan(high) else high
        if high == low:
            low, high = low - 0.5, high + 0.5
        return np.linspace(low, high, nbins + 1)

    if math.isfinite(bs):
        low = valid.min() - bs / 2 if math.isnan(low) else low
        high = valid.max() + bs / 2 if math.isnan(high) else high
        count = max(1, math.ceil(round((high - low) / bs, 9)))
        return low + bs * np.arange(count + 1)

    sturges = int(math.ceil(math.log2(valid.size))) + 1
    return hist_range(valid, range=(low, high), nbins=sturges)


def _drop_missing(*arrays: np.ndarray) -> tuple[np.ndarray, ...]:
    lengths = {len(array) for array in arrays}
    if len(lengths) > 1:
        raise ShapeMismatchError(f"Array size are incompatible: lengths {sorted(lengths)}")
    valid = np.logical_and.reduce([np.isfinite(array) for array in arrays])
    dropped = int(valid.size - valid.sum())
    if dropped:
        logger.info("Neglecting missing values (%d)", dropped)
    return tuple(array[valid] for array in arrays)


def hist(
    v: Any,
    w: Optional[Any] = None,
    range: Sequence[float] = UNBOUNDED,
    bs: float = math.nan,
    nbins: int = 0,
) -> Histogram:
    """
    Compute the 1D histogram of `v`, optionally weighted by `w`.

    If `nbins` is given `bs` is ignored.
    """
    values = _as_float_array(v)
    if w is None:
        (values,) = _drop_missing(values)
        weights = None
    else:
        values, weights = _drop_missing(values, _as_float_array(w))
    edges = hist_range(values, range=range, bs=bs, nbins=nbins)
    counts, _ = np.histogram(values, bins=edges, weights=weights)
    return Histogram(edges=(edges,), weights=counts)


def hist2d(
    v1: Any,
    v2: Any,
    w: Optional[Any] = None,
    range1: Sequence[float] = UNBOUNDED,
    bs1: float = math.nan,
    nbins1: int = 0,
    range2: Sequence[float] = UNBOUNDED,
    bs2: float = math.nan,
    nbins2: int = 0,
) -> Histogram:
    """Compute the 2D histogram of the pairs `(v1[i], v2[i])`."""
    arrays = [_as_float_array(v1), _as_float_array(v2)]
    if w is not None:
        arrays.append(_as_float_array(w))
    cleaned = _drop_missing(*arrays)
    values1, values2 = cleaned[0], cleaned[1]
    weights = cleaned[2] if w is not None else None

    edges1 = hist_range(values1, range=range1, bs=bs1, nbins=nbins1)
    edges2 = hist_range(values2, range=range2, bs=bs2, nbins=nbins2)
    counts, _, _ = np.histogram2d(values1, values2, bins=[edges1, edges2], weights=weights)
    return Histogram(edges=(edges1, edges2), weights=counts)


def hist_bins(h: Histogram, axis: int = 0) -> np.ndarray:
    """
    Coordinates of each bin along `axis`.

    1D: left side of the bins (first edge repeated, for step plots);
    2D: centre of the bins.
    """
    edges = h.edges[axis]
    if h.ndim == 1:
        return np.concatenate([edges[:1], edges])
    return (edges[:-1] + edges[1:]) / 2


def hist_weights(h: Histogram) -> np.ndarray:
    """Bin weights; 1D weights are padded with a zero at both ends."""
    if h.ndim == 1:
        zero = np.zeros(1, dtype=h.weights.dtype)
        return np.concatenate([zero, h.weights, zero])
    return h.weights


def _box(values: np.ndarray, vmin: float, vmax: float) -> tuple[np.ndarray, np.ndarray]:
    if values.size < 2:
        raise ValueError("At least two coordinates are required")
    if np.any(np.diff(values) < 0):
        raise ValueError("Coordinates must be sorted")
    middle = (values[:-1] + values[1:]) / 2
    low = np.concatenate([[values[0] - (values[1] - values[0]) / 2], middle])
    high = np.concatenate([middle, [values[-1] + (values[-1] - values[-2]) / 2]])
    if math.isfinite(vmin):
        low[0] = vmin
    if math.isfinite(vmax):
        high[-1] = vmax
    return low, high


def boxxy(
    x: Any,
    y: Optional[Any] = None,
    *aux: Any,
    xmin: float = math.nan,
    ymin: float = math.nan,
    xmax: float = math.nan,
    ymax: float = math.nan,
    cartesian: bool = False,
) -> Dataset:
    """
    Build a dataset with the boundaries of the boxes centred on `x` and `y`.

    The columns are `x y xlow xhigh ylow yhigh aux...`, suitable for the
    `boxxy` plot style. With `cartesian=True` every `(x[i], y[j])` pair is
    emitted and `aux` arrays are read in column-major order. A 2D
    `Histogram` can be given in place of `x` and `y`.
    """
    if isinstance(x, Histogram):
        if x.ndim != 2:
            raise ValueError("boxxy requires a 2D histogram")
        return boxxy(hist_bins(x, 0), hist_bins(x, 1), hist_weights(x), cartesian=True)

    if y is None:
        raise TypeError("boxxy requires y coordinates unless x is a 2D Histogram")
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    xlow, xhigh = _box(x, xmin, xmax)
    ylow, yhigh = _box(y, ymin, ymax)
    if not cartesian:
        return make_dataset(x, y, xlow, xhigh, ylow, yhigh, *aux)

    i = np.tile(np.arange(x.size), y.size)
    j = np.repeat(np.arange(y.size), x.size)
    extra = [np.asarray(array).ravel(order="F") for array in aux]
    return make_dataset(x[i], y[j], xlow[i], xhigh[i], ylow[j], yhigh[j], *extra)
