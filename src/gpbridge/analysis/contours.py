"""Contour lines and grid interpolation computed by gnuplot itself.

Both features run gnuplot in table mode (`set table`) on a temporary
session, hence they are not available in dry mode.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence, Union
import numpy as np
from gpbridge.analysis.histogram import Histogram, hist_bins, hist_weights
from gpbridge.data.datablock import arrays_to_datablock
from gpbridge.data.dataset import DatasetText
from gpbridge.utils.logger import get_logger

logger = get_logger(__name__)

CONTOUR_HEADER = "# Contour "
DGRID3D_CURVE_HEADER = "# x y z type"
MINIMUM_PATH_POINTS = 3


@dataclass
class Path2d:
    """A continuous path in 2D."""

    x: list[float] = field(default_factory=list)
    y: list[float] = field(default_factory=list)


@dataclass
class IsoContourLines:
    """
    All contour lines of a given level.

    Attributes:
        paths (list[Path2d]): One entry per continuous path.
        data (DatasetText): All paths as a data block, ready to be plotted.
        z (float): Level of the contour lines.
        prob (float): Fraction of the total weight enclosed by the lines, or
            NaN if the level was not computed from a fraction.
    """

    paths: list[Path2d]
    data: DatasetText
    z: float
    prob: float = math.nan

    @classmethod
    def from_paths(cls, paths: Sequence[Path2d], z: float, prob: float = math.nan) -> "IsoContourLines":
        lines: list[str] = []
        for path in paths:
            lines += arrays_to_datablock(path.x, path.y, [z] * len(path.x))
            lines += ["", ""]
        return cls(list(paths), DatasetText.from_lines(lines), z, prob)


def parse_contour_table(lines: Sequence[str]) -> list["IsoContourLines"]:
    """
    Parse the table written by gnuplot with `set contour base` / `unset surface`.

    Paths with fewer than three points are discarded; paths sharing the
    same level are joined. The result is sorted by increasing level.
    """
    level = math.nan
    path = Path2d()
    found: list[tuple[float, Path2d]] = []
    for line in lines:
        line = line.strip()
        if line == "" or CONTOUR_HEADER in line:
            if len(path.x) >= MINIMUM_PATH_POINTS:
                found.append((level, path))
            path = Path2d()
            if line != "":
                level = float(line.split(":")[1].strip())
            continue
        if line.startswith("#"):
            continue
        numbers = line.split()
        if len(numbers) != 3:
            raise ValueError(f"Unexpected contour table line: {line!r}")
        path.x.append(float(numbers[0]))
        path.y.append(float(numbers[1]))
    if len(path.x) >= MINIMUM_PATH_POINTS:
        found.append((level, path))
    if not found:
        raise ValueError("No contour line found")

    found.sort(key=lambda item: item[0])
    out: list[IsoContourLines] = []
    for z in dict.fromkeys(level for level, _ in found):
        out.append(IsoContourLines.from_paths([p for l, p in found if l == z], z))
    return out


def _levels_from_fractions(z: np.ndarray, fractions: Sequence[float]) -> tuple[list[float], list[float]]:
    if len(fractions) == 0:
        raise ValueError("At least one fraction is required")
    if min(fractions) <= 0 or max(fractions) >= 1:
        raise ValueError("Fractions must be in the open interval (0, 1)")
    sorted_fractions = sorted(fractions, reverse=True)
    ordered = np.sort(z.ravel())[::-1]
    top_fraction = np.cumsum(ordered) / ordered.sum()
    levels = [float(ordered[np.argmax(top_fraction >= f)]) for f in sorted_fractions]
    return levels, sorted_fractions


def contourlines(
    x: Union[Sequence[float], Histogram],
    y: Optional[Sequence[float]] = None,
    z: Optional[Any] = None,
    levels: Union[str, Sequence[float]] = "level auto 4",
) -> list[IsoContourLines]:
    """
    Compute the paths of contour lines for 2D data.

    Args:
        x, y: Coordinates of the grid (a 2D `Histogram` may replace x, y and z).
        z: Values on the grid, with shape `(len(x), len(y))`.
        levels: Either a `cntrparam` setting (e.g. "levels discrete 1, 2"),
            or fractions of the total weight to be enclosed by the lines.

    Returns:
        list[IsoContourLines]: One entry per level, sorted by increasing level.
    """
    from gpbridge.session.manager import write_table

    if isinstance(x, Histogram):
        if y is not None:
            levels = y
        return contourlines(
            hist_bins(x, 0), hist_bins(x, 1), hist_weights(x).astype(float), levels
        )

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    z = np.asarray(z, dtype=float)

    if isinstance(levels, str):
        lines = write_table(
            "set contour base", "unset surface", f"set cntrparam {levels}",
            x, y, z, is3d=True,
        )
        return parse_contour_table(lines)

    discrete, fractions = _levels_from_fractions(z, levels)
    clines = contourlines(
        x, y, z, "levels discrete " + ", ".join(str(level) for level in discrete)
    )
    if len(clines) != len(fractions):
        logger.warning(
            "%d contour levels found for %d fractions", len(clines), len(fractions)
        )
        return clines
    return [
        IsoContourLines(cline.paths, cline.data, cline.z, fraction)
        for cline, fraction in zip(clines, fractions)
    ]


# ---------------------------------------------------------------------
def parse_dgrid3d_table(lines: Sequence[str]) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Parse the table written by gnuplot with `set dgrid3d` into `(gx, gy, gz)`."""
    gx: list[float] = []
    gy: list[float] = []
    gz: list[float] = []
    ix = iy = 0
    for line in lines:
        line = line.strip()
        if line == DGRID3D_CURVE_HEADER:
            ix += 1
            iy = 1
            continue
        if line == "" or line.startswith("#"):
            continue
        x, y, z = (float(token) for token in line.split()[:3])
        if iy == 1:
            gx.append(x)
        if ix == 1:
            gy.append(y)
        gz.append(z)
        iy += 1
    return np.array(gx), np.array(gy), np.array(gz).reshape(len(gx), len(gy))


def dgrid3d(
    x: Sequence[float],
    y: Sequence[float],
    z: Sequence[float],
    opts: str = "",
    extra: bool = True,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Interpolate scattered 2D data onto a regular grid.

    Args:
        x, y, z: Coordinates and values of the function to interpolate.
        opts: Interpolation settings, as accepted by `set dgrid3d`.
        extra: If False, grid cells containing no input point are set to NaN.

    Returns:
        tuple: Grid coordinates `gx`, `gy` and values `gz[ix, iy]`.
    """
    from gpbridge.session.manager import write_table

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    lines = write_table(f"set dgrid3d {opts}", x, y, np.asarray(z, dtype=float), is3d=True)
    gx, gy, gz = parse_dgrid3d_table(lines)
    if not extra:
        dx = abs(gx[1] - gx[0]) / 2
        dy = abs(gy[1] - gy[0]) / 2
        for ix, cx in enumerate(gx):
            inside_x = (cx - dx < x) & (x < cx + dx)
            for iy, cy in enumerate(gy):
                if not np.any(inside_x & (cy - dy < y) & (y < cy + dy)):
                    gz[ix, iy] = math.nan
    return gx, gy, gz
