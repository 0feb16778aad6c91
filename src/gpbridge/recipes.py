"""Implicit recipes: objects that can be passed directly to `gp` / `gsp`."""

import numpy as np
from PIL import Image
from gpbridge.analysis.contours import IsoContourLines
from gpbridge.analysis.histogram import Histogram, hist_bins, hist_weights
from gpbridge.data.dataset import DatasetBin
from gpbridge.session.specs import AbstractGPCommand, parse_specs, recipe

GRAYSCALE_MODES = ("1", "L", "LA", "I", "I;16", "F")


@recipe.register
def _(h: Histogram) -> list[AbstractGPCommand]:
    if h.ndim == 1:
        return parse_specs(
            "set grid",
            hist_bins(h),
            hist_weights(h),
            "w step notit lw 2 lc rgb 'black'",
        )
    return parse_specs(
        "set autoscale fix",
        hist_bins(h, 0),
        hist_bins(h, 1),
        hist_weights(h),
        "w image notit",
    )


@recipe.register
def _(c: IsoContourLines) -> list[AbstractGPCommand]:
    if np.isnan(c.prob):
        return parse_specs(c.data, f"w l t '{c.z}'")
    return parse_specs(c.data, f"w l t '{float(f'{c.prob * 100:.6g}')}%'")


@recipe.register
def _(image: Image.Image, opt: str = "flipy") -> list[AbstractGPCommand]:
    if image.mode in GRAYSCALE_MODES:
        pixels = np.asarray(image.convert("L"))
        data = DatasetBin.from_grids(pixels)
        style = f"{opt} with image notit"
    else:
        pixels = np.asarray(image.convert("RGB"))
        data = DatasetBin.from_grids(pixels[..., 0], pixels[..., 1], pixels[..., 2])
        style = f"{opt} with rgbimage notit"
    return parse_specs("set autoscale fix", "set size ratio -1", data, style)
