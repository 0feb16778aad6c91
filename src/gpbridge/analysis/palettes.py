"""gnuplot palettes and line types built from matplotlib colormaps."""

from typing import Union
import numpy as np
from matplotlib import colormaps
from matplotlib.colors import Colormap, to_hex

SMOOTH_LEVEL_COUNT = 256

ColormapLike = Union[str, Colormap]


def palette_names() -> list[str]:
    """Names accepted by `palette`, `palette_levels` and `linetypes`."""
    return sorted(colormaps)


def _colormap(cmap: ColormapLike) -> Colormap:
    if isinstance(cmap, Colormap):
        return cmap
    if cmap not in colormaps:
        raise ValueError(f"Unknown colormap: {cmap!r}")
    return colormaps[cmap]


def palette_levels(
    cmap: ColormapLike, rev: bool = False, smooth: bool = False
) -> tuple[list[float], list[str], int]:
    """
    Sample a colormap into gnuplot palette levels.

    Args:
        cmap: A matplotlib colormap or its name.
        rev: Reverse the palette.
        smooth: Interpolate the palette on 256 levels (otherwise every
            color of the colormap is used).

    Returns:
        tuple: The levels in [0, 1], the corresponding `#rrggbb` colors,
        and the number of distinct colors.
    """
    colormap = _colormap(cmap)
    if rev:
        colormap = colormap.reversed()
    count = SMOOTH_LEVEL_COUNT if smooth else colormap.N
    levels = [float(level) for level in np.linspace(0, 1, count)]
    colors = [to_hex(colormap(level)) for level in levels]
    return levels, colors, count


def palette(cmap: ColormapLike, rev: bool = False, smooth: bool = False) -> str:
    """Return the gnuplot commands defining a palette from a colormap."""
    levels, colors, count = palette_levels(cmap, rev=rev, smooth=smooth)
    defined = ", ".join(f"{level} '{color}'" for level, color in zip(levels, colors))
    return f"set palette defined ({defined})\nset palette maxcol {count}\n"


def linetypes(
    cmap: ColormapLike,
    lw: Union[int, float, str] = 1,
    ps: Union[int, float, str] = 1,
    dashed: bool = False,
    rev: bool = False,
) -> str:
    """
    Return the gnuplot commands setting line type colors from a colormap.

    Line types beyond the number of colors cycle over them. With
    `dashed=True` line type `i` uses dash pattern `i`.
    """
    _, colors, count = palette_levels(cmap, rev=rev)
    out = ["unset for [i=1:256] linetype i"]
    for i, color in enumerate(colors, start=1):
        dash = str(i) if dashed else "solid"
        out.append(f"set linetype {i} lc rgb '{color}' lw {lw} dt {dash} pt {i} ps {ps}")
    return "\n".join(out) + f"\nset linetype cycle {count}\n"
