"""
Checkerboard detection in organized point clouds.

Corners are found in the colour image of the frame, the 3-D point under each
corner is read from the point cloud, and the board pose in the camera frame
is obtained by a rigid fit of the board model onto those points.
"""

import logging
from typing import Any, Dict, Tuple

import cv2
import numpy as np

from .interfaces import DetectionResult, Detector
from .point_cloud import PointCloudFrame
from .transform import Transform3D

logger = logging.getLogger(__name__)

SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.001)


def fit_rigid_transform(source: np.ndarray, target: np.ndarray) -> Tuple[Transform3D, float]:
    """
    Least-squares rigid transform mapping ``source`` points onto ``target``
    (Kabsch / SVD).

    Args:
        source: (N, 3) points, e.g. board model coordinates
        target: (N, 3) measured points

    Returns:
        Tuple of (T_target_source, RMS residual)
    """
    source = np.asarray(source, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    if source.shape != target.shape or source.ndim != 2 or source.shape[1] != 3:
        raise ValueError(f"Point sets must both be (N, 3), got {source.shape} and {target.shape}")
    if source.shape[0] < 3:
        raise ValueError("At least 3 point pairs are required for a rigid fit")

    src_center = source.mean(axis=0)
    tgt_center = target.mean(axis=0)
    H = (source - src_center).T @ (target - tgt_center)
    U, _, Vt = np.linalg.svd(H)

    # Guard against reflections
    d = np.sign(np.linalg.det(Vt.T @ U.T))
    D = np.diag([1.0, 1.0, d if d != 0 else 1.0])
    R = Vt.T @ D @ U.T
    t = tgt_center - R @ src_center

    residual = target - (source @ R.T + t)
    rms = float(np.sqrt(np.mean(np.sum(residual ** 2, axis=1))))
    return Transform3D.from_rotation_translation(R, t), rms


class CheckerboardDetector(Detector):
    """
    Checkerboard detector working on point cloud frames.
    """

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize the detector.

        Args:
            config: Checkerboard configuration with ``columns`` and ``rows``
                (inner corners) and ``square_size`` (same unit as the cloud)
        """
        self.columns = int(config['columns'])
        self.rows = int(config['rows'])
        self.square_size = float(config['square_size'])
        self.max_fit_error = float(config.get('max_fit_error', np.inf))

        if self.columns < 2 or self.rows < 2:
            raise ValueError(f"Checkerboard needs at least 2x2 inner corners, "
                             f"got {self.columns}x{self.rows}")
        if self.square_size <= 0:
            raise ValueError(f"square_size must be positive, got {self.square_size}")

    @property
    def pattern_size(self) -> Tuple[int, int]:
        return (self.columns, self.rows)

    def get_object_points(self) -> np.ndarray:
        """Board model corners in the board frame (z = 0), in detection order."""
        objp = np.zeros((self.columns * self.rows, 3), np.float64)
        objp[:, :2] = np.mgrid[0:self.columns, 0:self.rows].T.reshape(-1, 2)
        return objp * self.square_size

    def detect(self, frame: PointCloudFrame) -> DetectionResult:
        """
        Detect the checkerboard in a frame.

        Args:
            frame: Point cloud with colour image

        Returns:
            DetectionResult; ``target_pose`` is T_camera_board on success
        """
        gray = cv2.cvtColor(np.ascontiguousarray(frame.rgb), cv2.COLOR_RGB2GRAY)

        flags = cv2.CALIB_CB_ADAPTIVE_THRESH + cv2.CALIB_CB_NORMALIZE_IMAGE
        found, corners = cv2.findChessboardCorners(gray, self.pattern_size, flags=flags)
        if not found or corners is None:
            return DetectionResult(success=False, reason='checkerboard_not_found')

        corners = cv2.cornerSubPix(gray, corners, (5, 5), (-1, -1), SUBPIX_CRITERIA)
        corners = corners.reshape(-1, 2)

        points = self._sample_points(frame.xyz, corners)
        if np.isnan(points).any():
            missing = int(np.isnan(points).any(axis=1).sum())
            return DetectionResult(success=False, corners=corners,
                                   num_corners=len(corners),
                                   reason=f'missing_depth ({missing} corners)')

        target_pose, fit_error = fit_rigid_transform(self.get_object_points(), points)
        if fit_error > self.max_fit_error:
            return DetectionResult(success=False, corners=corners, points=points,
                                   num_corners=len(corners), fit_error=fit_error,
                                   reason=f'fit_error {fit_error:.3f} too large')

        logger.debug("Checkerboard found, %d corners, fit error %.4f", len(corners), fit_error)
        return DetectionResult(
            success=True,
            corners=corners,
            points=points,
            target_pose=target_pose,
            num_corners=len(corners),
            fit_error=fit_error,
        )

    @staticmethod
    def _sample_points(xyz: np.ndarray, corners: np.ndarray) -> np.ndarray:
        """Bilinear sample of the point grid at sub-pixel corner positions."""
        height, width = xyz.shape[:2]
        u = corners[:, 0].astype(np.float64)
        v = corners[:, 1].astype(np.float64)

        c0 = np.clip(np.floor(u).astype(int), 0, max(width - 2, 0))
        r0 = np.clip(np.floor(v).astype(int), 0, max(height - 2, 0))
        c1 = np.minimum(c0 + 1, width - 1)
        r1 = np.minimum(r0 + 1, height - 1)
        du = np.clip(u - c0, 0.0, 1.0)[:, None]
        dv = np.clip(v - r0, 0.0, 1.0)[:, None]

        grid = xyz.astype(np.float64)
        return ((1 - du) * (1 - dv) * grid[r0, c0]
                + du * (1 - dv) * grid[r0, c1]
                + (1 - du) * dv * grid[r1, c0]
                + du * dv * grid[r1, c1])

    def generate_board_image(self, square_pixels: int = 80,
                             margin_pixels: int = 50) -> np.ndarray:
        """
        Generate a printable checkerboard image.

        Args:
            square_pixels: Side of one square in pixels
            margin_pixels: White margin around the board

        Returns:
            Grayscale board image as numpy array
        """
        squares_x = self.columns + 1
        squares_y = self.rows + 1

        ys, xs = np.indices((squares_y * square_pixels, squares_x * square_pixels))
        board = (((ys // square_pixels) + (xs // square_pixels)) % 2).astype(np.uint8) * 255

        result = np.ones((board.shape[0] + 2 * margin_pixels,
                          board.shape[1] + 2 * margin_pixels), dtype=np.uint8) * 255
        result[margin_pixels:margin_pixels + board.shape[0],
               margin_pixels:margin_pixels + board.shape[1]] = board
        return result
