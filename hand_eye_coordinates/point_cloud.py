"""
Organized point cloud frames.

A frame is a height x width grid of (x, y, z, r, g, b, contrast) samples as
delivered by a structured-light camera. A NaN coordinate (canonically z)
marks a pixel without a depth return; such samples are invalid for every
downstream computation.
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, Tuple

import numpy as np

from .errors import FrameFileError, GridIndexError, ShapeError

logger = logging.getLogger(__name__)


class Axis(Enum):
    """Spatial axis of a point."""
    X = 0
    Y = 1
    Z = 2

    @property
    def index(self) -> int:
        return self.value

    @classmethod
    def parse(cls, value) -> 'Axis':
        if isinstance(value, Axis):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown axis: {value!r} (expected x, y or z)") from None


@dataclass(frozen=True)
class PointRecord:
    """One sample of an organized point cloud."""
    x: float
    y: float
    z: float
    r: int
    g: int
    b: int
    contrast: float = float('nan')

    @property
    def is_valid(self) -> bool:
        return not (np.isnan(self.x) or np.isnan(self.y) or np.isnan(self.z))

    @property
    def xyz(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def value(self, axis: Axis) -> float:
        return self.xyz[Axis.parse(axis).index]


class PointCloudFrame:
    """
    Immutable organized point cloud.

    Args:
        xyz: (H, W, 3) coordinates, NaN where there is no return
        rgb: (H, W, 3) colours in 0-255, red first
        contrast: (H, W) contrast/confidence values (optional)
    """

    def __init__(self, xyz: np.ndarray, rgb: Optional[np.ndarray] = None,
                 contrast: Optional[np.ndarray] = None):
        xyz = np.array(xyz, dtype=np.float32)
        if xyz.ndim != 3 or xyz.shape[2] != 3:
            raise ShapeError(f"Expected xyz of shape (H, W, 3), got {xyz.shape}")
        height, width = xyz.shape[:2]

        if rgb is None:
            rgb = np.zeros((height, width, 3), dtype=np.uint8)
        else:
            rgb = np.array(rgb, dtype=np.uint8)
            if rgb.shape != (height, width, 3):
                raise ShapeError(f"Expected rgb of shape {(height, width, 3)}, got {rgb.shape}")

        if contrast is None:
            contrast = np.full((height, width), np.nan, dtype=np.float32)
        else:
            contrast = np.array(contrast, dtype=np.float32)
            if contrast.shape != (height, width):
                raise ShapeError(
                    f"Expected contrast of shape {(height, width)}, got {contrast.shape}"
                )

        for arr in (xyz, rgb, contrast):
            arr.setflags(write=False)

        self._xyz = xyz
        self._rgb = rgb
        self._contrast = contrast

    @property
    def xyz(self) -> np.ndarray:
        return self._xyz

    @property
    def rgb(self) -> np.ndarray:
        return self._rgb

    @property
    def contrast(self) -> np.ndarray:
        return self._contrast

    @property
    def height(self) -> int:
        return self._xyz.shape[0]

    @property
    def width(self) -> int:
        return self._xyz.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self._xyz.shape[:2]

    @property
    def size(self) -> int:
        return self.height * self.width

    def __len__(self):
        return self.size

    def at(self, row: int, col: int) -> PointRecord:
        """Bounds-checked access to one sample."""
        if not (0 <= row < self.height and 0 <= col < self.width):
            raise GridIndexError(
                f"Point ({row}, {col}) outside of {self.height}x{self.width} frame"
            )
        x, y, z = self._xyz[row, col]
        r, g, b = self._rgb[row, col]
        return PointRecord(float(x), float(y), float(z), int(r), int(g), int(b),
                           float(self._contrast[row, col]))

    def iter_cells(self) -> Iterator[Tuple[int, int, PointRecord]]:
        """Lazily yield (row, col, point) for every cell in row-major order."""
        for row in range(self.height):
            for col in range(self.width):
                yield row, col, self.at(row, col)

    def for_each_valid(self, fn: Callable[[int, int, PointRecord], None]):
        """
        Call ``fn(row, col, point)`` for every cell in row-major order.

        Cells are not filtered; callers check ``point.is_valid`` themselves.
        """
        for row, col, point in self.iter_cells():
            fn(row, col, point)

    def valid_mask(self) -> np.ndarray:
        """Boolean (H, W) mask, False where any coordinate is NaN."""
        return ~np.isnan(self._xyz).any(axis=-1)

    def invalid_count(self) -> int:
        return self.size - int(np.count_nonzero(self.valid_mask()))

    def with_roi(self, rect: Tuple[int, int, int, int]) -> 'PointCloudFrame':
        """
        Return a copy where every cell outside the rectangle is invalid.

        Args:
            rect: (x, y, width, height) in pixels, x along columns

        Returns:
            New frame; cells outside the ROI have NaN coordinates and black colour
        """
        x, y, w, h = (int(v) for v in rect)
        if w <= 0 or h <= 0:
            raise ValueError(f"ROI must have a positive size, got {w}x{h}")

        mask = np.zeros(self.shape, dtype=bool)
        mask[max(y, 0):max(y + h, 0), max(x, 0):max(x + w, 0)] = True

        xyz = np.array(self._xyz)
        rgb = np.array(self._rgb)
        xyz[~mask] = np.nan
        rgb[~mask] = 0
        logger.debug("ROI %s keeps %d of %d cells", rect, int(mask.sum()), self.size)
        return PointCloudFrame(xyz, rgb, self._contrast)

    def __repr__(self):
        return (f"PointCloudFrame(height={self.height}, width={self.width}, "
                f"invalid={self.invalid_count()})")


def load_frame(path: str) -> PointCloudFrame:
    """Load a frame stored with :func:`save_frame`."""
    if not os.path.isfile(path):
        raise FrameFileError(f"Could not open {path}")
    try:
        with np.load(path) as data:
            xyz = data['xyz']
            rgb = data['rgb'] if 'rgb' in data else None
            contrast = data['contrast'] if 'contrast' in data else None
    except (OSError, ValueError, KeyError) as e:
        raise FrameFileError(f"Could not read point cloud from {path}: {e}") from e
    return PointCloudFrame(xyz, rgb, contrast)


def save_frame(path: str, frame: PointCloudFrame):
    """Save a frame as a compressed .npz archive."""
    np.savez_compressed(path, xyz=frame.xyz, rgb=frame.rgb, contrast=frame.contrast)
