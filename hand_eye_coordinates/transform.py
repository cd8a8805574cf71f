"""
Homogeneous 4x4 transforms and their persisted form.

A Transform3D ``T_a_b`` maps coordinates expressed in frame ``b`` into frame
``a``. Composition follows the matrix product, so ``T_a_c = T_a_b @ T_b_c``
applies ``T_b_c`` first and ``T_a_b`` second.
"""

import logging
import os
from functools import reduce
from typing import Iterable, List, Sequence, Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

from .errors import BlockNotFoundError, ShapeError, TransformFileError

logger = logging.getLogger(__name__)

DEFAULT_TRANSFORM_KEY = "PoseState"


class Transform3D:
    """
    Immutable 4x4 homogeneous transform.

    The rotation block is not required to be orthonormal; any affine 4x4
    content loaded from a file is accepted as-is.
    """

    __slots__ = ('_matrix',)

    def __init__(self, matrix):
        try:
            block = np.array(matrix, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise ShapeError(f"Transform block is not a numeric matrix: {e}") from e

        if block.shape != (4, 4):
            raise ShapeError(f"Expected 4x4 matrix, but got {_shape_str(block.shape)}")

        block.setflags(write=False)
        self._matrix = block

    @classmethod
    def from_block(cls, block) -> 'Transform3D':
        """Build a transform from a 4x4 nested sequence or array."""
        return cls(block)

    @classmethod
    def identity(cls) -> 'Transform3D':
        return cls(np.eye(4))

    @classmethod
    def from_rotation_translation(cls, R: np.ndarray, t: Sequence[float]) -> 'Transform3D':
        """Create a transform from a 3x3 rotation block and a translation."""
        T = np.eye(4)
        T[:3, :3] = R
        T[:3, 3] = np.asarray(t, dtype=np.float64).reshape(3)
        return cls(T)

    @property
    def matrix(self) -> np.ndarray:
        """Read-only view of the underlying 4x4 array."""
        return self._matrix

    @property
    def rotation(self) -> np.ndarray:
        return self._matrix[:3, :3]

    @property
    def translation(self) -> np.ndarray:
        return self._matrix[:3, 3]

    def to_array(self) -> np.ndarray:
        """Writable copy of the matrix."""
        return np.array(self._matrix)

    def to_rows(self) -> List[List[float]]:
        return self._matrix.tolist()

    def compose(self, other: 'Transform3D') -> 'Transform3D':
        """Return ``self @ other`` (apply ``other`` first)."""
        return Transform3D(self._matrix @ other._matrix)

    def __matmul__(self, other: 'Transform3D') -> 'Transform3D':
        if not isinstance(other, Transform3D):
            return NotImplemented
        return self.compose(other)

    def apply(self, point: Sequence[float]) -> np.ndarray:
        """
        Map a single 3-D point through the transform.

        NaN input coordinates propagate to the output, no exception is raised.

        Args:
            point: (x, y, z)

        Returns:
            Transformed (x, y, z) as a length-3 array
        """
        p = np.ones(4)
        p[:3] = np.asarray(point, dtype=np.float64).reshape(3)
        return (self._matrix @ p)[:3]

    def apply_points(self, points: np.ndarray) -> np.ndarray:
        """
        Vectorised form of :meth:`apply` for an array of shape (..., 3).

        Evaluated element-wise, so a point's result does not depend on how
        many other points are passed along with it.
        """
        pts = np.asarray(points, dtype=np.float64)
        if pts.shape[-1] != 3:
            raise ShapeError(f"Expected points with 3 coordinates, got shape {pts.shape}")
        M = self._matrix
        return (pts[..., 0:1] * M[:3, 0]
                + pts[..., 1:2] * M[:3, 1]
                + pts[..., 2:3] * M[:3, 2]
                + M[:3, 3])

    def inverse(self) -> 'Transform3D':
        """General matrix inverse (valid for affine content as well)."""
        return Transform3D(np.linalg.inv(self._matrix))

    def to_translation_quaternion(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Extract translation and quaternion [x, y, z, w].

        The rotation block is projected onto the nearest rotation first, so
        slightly non-orthonormal results of a solver still convert.
        """
        quaternion = Rotation.from_matrix(nearest_rotation(self.rotation)).as_quat()
        return np.array(self.translation), quaternion

    def allclose(self, other: 'Transform3D', atol: float = 1e-9) -> bool:
        return bool(np.allclose(self._matrix, other._matrix, atol=atol))

    def __eq__(self, other):
        if not isinstance(other, Transform3D):
            return NotImplemented
        return bool(np.array_equal(self._matrix, other._matrix))

    def __hash__(self):
        return hash(self._matrix.tobytes())

    def __repr__(self):
        rows = np.array2string(self._matrix, precision=6, suppress_small=True)
        return f"Transform3D(\n{rows})"

    def __str__(self):
        return np.array2string(self._matrix, precision=6, suppress_small=True)


def nearest_rotation(M: np.ndarray) -> np.ndarray:
    """Closest proper rotation matrix to a 3x3 block (SVD projection)."""
    U, _, Vt = np.linalg.svd(M)
    R = U @ Vt
    if np.linalg.det(R) < 0:
        U[:, -1] = -U[:, -1]
        R = U @ Vt
    return R


def compose(A: Transform3D, B: Transform3D) -> Transform3D:
    """Compose two transforms: A * B (B is applied first)."""
    return A.compose(B)


def compose_chain(transforms: Iterable[Transform3D]) -> Transform3D:
    """
    Compose a chain left to right, e.g.
    ``compose_chain([T_base_ee, T_ee_cam]) == T_base_cam``.
    """
    return reduce(compose, transforms, Transform3D.identity())


def apply(T: Transform3D, point: Sequence[float]) -> np.ndarray:
    return T.apply(point)


def parse_pose_line(line: str) -> Transform3D:
    """
    Parse a robot pose entered as 16 whitespace separated values
    describing a row-major 4x4 matrix.
    """
    tokens = line.split()
    if len(tokens) != 16:
        raise ShapeError(f"Expected 16 values for a 4x4 pose, but got {len(tokens)}")
    try:
        values = [float(tok) for tok in tokens]
    except ValueError as e:
        raise ShapeError(f"Pose contains a non-numeric value: {e}") from e
    return Transform3D(np.array(values).reshape(4, 4))


def load_transform(file_name: str, key: str = DEFAULT_TRANSFORM_KEY) -> Transform3D:
    """
    Read a named 4x4 block from an OpenCV FileStorage document.

    Args:
        file_name: YAML/XML/JSON file written by cv2.FileStorage
        key: Name of the matrix node

    Returns:
        Transform3D

    Raises:
        TransformFileError: File does not exist or cannot be opened
        BlockNotFoundError: ``key`` is not present in the file
        ShapeError: The block is not a 4x4 matrix
    """
    if not os.path.isfile(file_name):
        raise TransformFileError(f"Could not open {file_name}")

    try:
        fs = cv2.FileStorage(file_name, cv2.FILE_STORAGE_READ)
    except cv2.error as e:
        raise TransformFileError(f"Could not open {file_name}: {e}") from e

    try:
        if not fs.isOpened():
            raise TransformFileError(f"Could not open {file_name}")

        node = fs.getNode(key)
        if node.empty():
            raise BlockNotFoundError(f"{key} not found in file {file_name}")

        block = node.mat()
        if block is None:
            block = _read_sequence_block(node)
        if block is None:
            raise ShapeError(f"Expected 4x4 matrix in {file_name}, but {key} is not a matrix")

        block = np.asarray(block, dtype=np.float64)
        if block.shape != (4, 4):
            raise ShapeError(
                f"Expected 4x4 matrix in {file_name}, but got {_shape_str(block.shape)}"
            )
        logger.debug("Loaded %s from %s", key, file_name)
        return Transform3D(block)
    finally:
        fs.release()


def save_transform(file_name: str, transform: Transform3D,
                   key: str = DEFAULT_TRANSFORM_KEY):
    """Write a transform as a named matrix node with cv2.FileStorage."""
    try:
        fs = cv2.FileStorage(file_name, cv2.FILE_STORAGE_WRITE)
    except cv2.error as e:
        raise TransformFileError(f"Could not open {file_name} for writing: {e}") from e

    try:
        if not fs.isOpened():
            raise TransformFileError(f"Could not open {file_name} for writing")
        fs.write(key, transform.to_array())
    finally:
        fs.release()
    logger.info("Saved %s to %s", key, file_name)


def _read_sequence_block(node):
    """Read a nested sequence node (e.g. ``[[1, 0, 0, 0], ...]``) into an array."""
    if not node.isSeq():
        return None
    rows = []
    for i in range(node.size()):
        row = node.at(i)
        if not row.isSeq():
            return None
        rows.append([row.at(j).real() for j in range(row.size())])
    if len({len(r) for r in rows}) > 1:
        raise ShapeError(f"Ragged matrix block with row lengths {[len(r) for r in rows]}")
    return np.array(rows, dtype=np.float64)


def _shape_str(shape) -> str:
    if len(shape) == 2:
        return f"{shape[0]}x{shape[1]}"
    return "x".join(str(s) for s in shape) or "scalar"
