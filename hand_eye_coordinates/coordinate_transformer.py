"""
Map organized point clouds from the camera frame into another frame
(typically the robot base) using a chain of homogeneous transforms.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import GridIndexError, OutputFileError
from .point_cloud import Axis, PointCloudFrame
from .transform import Transform3D, compose_chain

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ('.npz', '.pcd', '.ply')


def export_format(path: str) -> str:
    """
    File suffix selecting the export writer.

    Raises:
        OutputFileError: The suffix is not one of :data:`EXPORT_FORMATS`
    """
    suffix = os.path.splitext(path)[1].lower()
    if suffix not in EXPORT_FORMATS:
        raise OutputFileError(
            f"Unsupported point cloud format for {path} (expected one of {EXPORT_FORMATS})"
        )
    return suffix


@dataclass
class PointCloudExport:
    """Flat, row-major point cloud ready for export (PCL-style, not dense)."""
    positions: np.ndarray  # (N, 3) float32, NaN for invalid points
    colors: np.ndarray     # (N, 3) uint8, red first
    width: int
    height: int
    is_dense: bool = False

    @property
    def num_points(self) -> int:
        return self.positions.shape[0]

    def save(self, path: str) -> str:
        """
        Write the cloud, choosing the format from the file suffix.

        ``.npz`` keeps the organized layout (``width``/``height``). ``.pcd`` and
        ``.ply`` go through open3d as an unorganized cloud with every point,
        invalid ones included, in row-major order.

        Returns:
            The path that was written
        """
        if export_format(path) == '.npz':
            try:
                np.savez_compressed(
                    path,
                    positions=self.positions,
                    colors=self.colors,
                    width=self.width,
                    height=self.height,
                )
            except OSError as e:
                raise OutputFileError(f"Could not write {path}: {e}") from e
        else:
            self._write_open3d(path)
        logger.info("Saved %d points to %s", self.num_points, path)
        return path

    def _write_open3d(self, path: str):
        try:
            import open3d as o3d
        except ImportError as e:
            raise OutputFileError(
                f"Writing {path} requires open3d (pip install hand-eye-coordinates[pcd])"
            ) from e

        cloud = o3d.geometry.PointCloud()
        cloud.points = o3d.utility.Vector3dVector(self.positions.astype(np.float64))
        cloud.colors = o3d.utility.Vector3dVector(self.colors.astype(np.float64) / 255.0)
        if not o3d.io.write_point_cloud(path, cloud):
            raise OutputFileError(f"Could not write {path}")


class TransformedGrid:
    """
    Per-cell transformed coordinates of a frame.

    ``xyz`` holds NaN in every channel of an invalid cell and ``valid`` is the
    mask shared by all three axes.
    """

    def __init__(self, xyz: np.ndarray, valid: np.ndarray, rgb: Optional[np.ndarray] = None):
        self.xyz = xyz
        self.valid = valid
        self.rgb = rgb if rgb is not None else np.zeros(xyz.shape, dtype=np.uint8)
        for arr in (self.xyz, self.valid, self.rgb):
            arr.setflags(write=False)

    @property
    def height(self) -> int:
        return self.xyz.shape[0]

    @property
    def width(self) -> int:
        return self.xyz.shape[1]

    @property
    def shape(self) -> Tuple[int, int]:
        return self.xyz.shape[:2]

    def axis_values(self, axis) -> np.ndarray:
        """(H, W) grid of one coordinate, NaN where invalid."""
        return self.xyz[:, :, Axis.parse(axis).index]

    def at(self, row: int, col: int) -> Optional[Tuple[float, float, float]]:
        """Transformed (x, y, z) of one cell, or None if the cell is invalid."""
        if not (0 <= row < self.height and 0 <= col < self.width):
            raise GridIndexError(
                f"Point ({row}, {col}) outside of {self.height}x{self.width} grid"
            )
        if not self.valid[row, col]:
            return None
        return tuple(float(v) for v in self.xyz[row, col])

    def valid_count(self) -> int:
        return int(np.count_nonzero(self.valid))

    def invalid_count(self) -> int:
        return self.valid.size - self.valid_count()

    def to_export(self) -> PointCloudExport:
        return PointCloudExport(
            positions=self.xyz.reshape(-1, 3).astype(np.float32),
            colors=self.rgb.reshape(-1, 3).astype(np.uint8),
            width=self.width,
            height=self.height,
        )


class CoordinateTransformer:
    """
    Applies a fixed transform to every valid cell of a frame.

    Cells have no dependency on each other, so with ``num_workers > 1`` the
    frame is split into row bands that are transformed concurrently. The
    result does not depend on the number of workers.
    """

    def __init__(self, transform: Transform3D, num_workers: int = 1):
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")
        self.transform = transform
        self.num_workers = num_workers

    @classmethod
    def from_chain(cls, *transforms: Transform3D, num_workers: int = 1) -> 'CoordinateTransformer':
        """
        Build from a chain of transforms, left to right, e.g.
        ``from_chain(T_base_ee, T_ee_cam)`` maps camera points to base.
        """
        return cls(compose_chain(transforms), num_workers=num_workers)

    def transform_point(self, point: Sequence[float]) -> np.ndarray:
        return self.transform.apply(point)

    def transform_frame(self, frame: PointCloudFrame) -> TransformedGrid:
        """
        Transform every cell of ``frame``.

        Args:
            frame: Source point cloud in the transform's source frame

        Returns:
            TransformedGrid with the same shape as the frame
        """
        height, width = frame.shape
        out = np.full((height, width, 3), np.nan, dtype=np.float64)
        valid = frame.valid_mask()

        bands = _row_bands(height, self.num_workers)
        if len(bands) <= 1:
            for start, stop in bands:
                self._transform_band(frame.xyz, valid, out, start, stop)
        else:
            with ThreadPoolExecutor(max_workers=self.num_workers) as executor:
                futures = [
                    executor.submit(self._transform_band, frame.xyz, valid, out, start, stop)
                    for start, stop in bands
                ]
                for future in futures:
                    future.result()

        logger.debug("Transformed %d valid of %d points", int(valid.sum()), frame.size)
        return TransformedGrid(out, valid, np.array(frame.rgb))

    def _transform_band(self, xyz: np.ndarray, valid: np.ndarray, out: np.ndarray,
                        start: int, stop: int):
        band_valid = valid[start:stop]
        band_out = out[start:stop]
        band_out[band_valid] = self.transform.apply_points(xyz[start:stop][band_valid])


def transform_frame(frame: PointCloudFrame, T: Transform3D, num_workers: int = 1) -> TransformedGrid:
    """Transform a frame with ``T``; see :class:`CoordinateTransformer`."""
    return CoordinateTransformer(T, num_workers=num_workers).transform_frame(frame)


def _row_bands(height: int, parts: int):
    parts = max(1, min(parts, height))
    edges = np.linspace(0, height, parts + 1).astype(int)
    return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]
