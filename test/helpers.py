"""
Shared builders for the unit tests.
"""

import numpy as np
from scipy.spatial.transform import Rotation

from hand_eye_coordinates.point_cloud import PointCloudFrame
from hand_eye_coordinates.transform import Transform3D


def make_transform(euler_deg=(0.0, 0.0, 0.0), translation=(0.0, 0.0, 0.0)) -> Transform3D:
    R = Rotation.from_euler('xyz', euler_deg, degrees=True).as_matrix()
    return Transform3D.from_rotation_translation(R, translation)


def translation(x=0.0, y=0.0, z=0.0) -> Transform3D:
    T = np.eye(4)
    T[:3, 3] = [x, y, z]
    return Transform3D(T)


def make_frame(height=4, width=5, invalid=(), z=500.0) -> PointCloudFrame:
    """
    Frame with x = col, y = row, z = z + row * width + col and a
    deterministic colour; cells listed in ``invalid`` get NaN z.
    """
    rows, cols = np.indices((height, width)).astype(np.float32)
    xyz = np.stack([cols, rows, z + rows * width + cols], axis=-1)
    for row, col in invalid:
        xyz[row, col, 2] = np.nan
    rgb = np.zeros((height, width, 3), dtype=np.uint8)
    rgb[..., 0] = (rows * 10).astype(np.uint8)
    rgb[..., 1] = (cols * 10).astype(np.uint8)
    rgb[..., 2] = 200
    return PointCloudFrame(xyz, rgb, np.ones((height, width), dtype=np.float32))
