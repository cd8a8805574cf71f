"""
Rescale transformed coordinates to a display range and render pseudo-colour
depth maps.

Ranges are computed per axis over valid cells only. A cell with a NaN
coordinate is invalid for all three axes and is drawn with a fixed sentinel
(black).
"""

import logging
from typing import Dict, Tuple

import cv2
import numpy as np

from .coordinate_transformer import TransformedGrid
from .errors import ConfigError, DegenerateRangeError, EmptyRangeError
from .point_cloud import Axis

logger = logging.getLogger(__name__)

DEFAULT_OUT_RANGE = (0, 255)


def colormap_from_name(name) -> int:
    """Resolve 'JET', 'turbo', ... (or an int) to a cv2.COLORMAP_* constant."""
    if isinstance(name, int):
        return name
    attr = f"COLORMAP_{str(name).strip().upper()}"
    if not hasattr(cv2, attr):
        raise ConfigError(f"Unknown colormap: {name}")
    return getattr(cv2, attr)


def compute_range(grid: TransformedGrid, axis) -> Tuple[float, float]:
    """
    Minimum and maximum of one axis over the valid cells of ``grid``.

    Raises:
        EmptyRangeError: The grid has no valid cell
    """
    axis = Axis.parse(axis)
    values = grid.axis_values(axis)[grid.valid]
    if values.size == 0:
        raise EmptyRangeError(f"No valid points to compute the {axis.name} range")
    return float(values.min()), float(values.max())


def normalize(value: float, vmin: float, vmax: float,
              out_range: Tuple[int, int] = DEFAULT_OUT_RANGE) -> int:
    """
    Linearly map ``value`` from [vmin, vmax] onto ``out_range``.

    The result is truncated toward the lower bound and clipped to the output
    range, so ``normalize(vmin) == out_range[0]`` and
    ``normalize(vmax) == out_range[1]``. A NaN ``value`` is an invalid sample
    and maps to ``out_range[0]``.

    Raises:
        DegenerateRangeError: ``vmax`` is not greater than ``vmin``
    """
    _check_range(vmin, vmax)
    lo, hi = out_range
    if np.isnan(value):
        return int(lo)
    scaled = lo + (hi - lo) * (value - vmin) / (vmax - vmin)
    return int(np.clip(np.floor(scaled), lo, hi))


def _check_range(vmin: float, vmax: float):
    if not vmax > vmin:
        raise DegenerateRangeError(
            f"Cannot normalize over a zero-width range [{vmin}, {vmax}]"
        )


class RangeNormalizer:
    """
    Converts transformed grids into 8-bit scalar images and colour maps.

    Args:
        out_range: Target (low, high) integer range
        colormap: OpenCV colormap name or constant used by :meth:`colorize`
        sentinel: Value written to invalid cells of scalar images
    """

    def __init__(self, out_range: Tuple[int, int] = DEFAULT_OUT_RANGE,
                 colormap='JET', sentinel: int = 0):
        lo, hi = (int(v) for v in out_range)
        if hi <= lo:
            raise ConfigError(f"Output range must be increasing, got {out_range}")
        if lo < 0 or hi > 65535:
            raise ConfigError(f"Output range must lie within 0..65535, got {out_range}")
        self.out_range = (lo, hi)
        self.colormap = colormap_from_name(colormap)
        self.sentinel = sentinel
        self._dtype = np.uint8 if hi <= 255 else np.uint16

    def compute_range(self, grid: TransformedGrid, axis) -> Tuple[float, float]:
        return compute_range(grid, axis)

    def normalize(self, value: float, vmin: float, vmax: float) -> int:
        return normalize(value, vmin, vmax, self.out_range)

    def normalize_axis(self, grid: TransformedGrid, axis) -> np.ndarray:
        """
        Scalar image of one axis rescaled to ``out_range``.

        Raises:
            EmptyRangeError: No valid cells
            DegenerateRangeError: All valid cells share one value on this axis
        """
        axis = Axis.parse(axis)
        vmin, vmax = compute_range(grid, axis)
        _check_range(vmin, vmax)

        lo, hi = self.out_range
        image = np.full(grid.shape, self.sentinel, dtype=self._dtype)
        values = grid.axis_values(axis)[grid.valid]
        scaled = lo + (hi - lo) * (values - vmin) / (vmax - vmin)
        image[grid.valid] = np.clip(np.floor(scaled), lo, hi).astype(self._dtype)

        logger.debug("%s range [%.3f, %.3f]", axis.name, vmin, vmax)
        return image

    def normalize_all(self, grid: TransformedGrid) -> Dict[Axis, np.ndarray]:
        """Independent normalization of x, y and z with the shared mask."""
        return {axis: self.normalize_axis(grid, axis) for axis in Axis}

    def colorize(self, image: np.ndarray, valid: np.ndarray) -> np.ndarray:
        """
        Apply the colormap to an 8-bit image and paint invalid cells black.

        Returns:
            (H, W, 3) BGR image
        """
        if image.dtype != np.uint8:
            raise ValueError("Colour maps require an 8-bit image (out_range within 0..255)")
        colored = cv2.applyColorMap(image, self.colormap)
        colored[~valid] = 0
        return colored

    def depth_map(self, grid: TransformedGrid, axis=Axis.Z) -> np.ndarray:
        """Pseudo-colour map of one axis, invalid cells black."""
        return self.colorize(self.normalize_axis(grid, axis), grid.valid)
