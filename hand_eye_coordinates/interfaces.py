"""
Data passed between the calibration session and its collaborators, and the
interfaces those collaborators implement.

The session only ever sees these types; camera acquisition, target
detection and the hand-eye solver can be swapped for other implementations
or test doubles.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .point_cloud import PointCloudFrame
from .transform import Transform3D


@dataclass
class DetectionResult:
    """Result of detecting the calibration target in a frame."""
    success: bool
    corners: Optional[np.ndarray] = None       # (N, 2) image positions of the features
    points: Optional[np.ndarray] = None        # (N, 3) feature points in the camera frame
    target_pose: Optional[Transform3D] = None  # T_camera_target
    num_corners: int = 0
    fit_error: float = float('inf')            # RMS of the rigid target fit
    reason: str = ''

    def __bool__(self):
        return self.success


@dataclass(frozen=True)
class CalibrationSample:
    """One robot pose paired with a successful detection."""
    pose_id: int
    robot_pose: Transform3D  # T_base_endeffector at capture time
    detection: DetectionResult


@dataclass
class HandEyeCalibrationResult:
    """Result of a hand-eye solve."""
    success: bool
    transform: Optional[Transform3D] = None
    mode: str = ''
    num_samples_used: int = 0
    translation_spread: float = float('inf')  # norm of per-axis std of the fixed frame
    rotation_spread_deg: float = float('inf')  # largest deviation of the fixed frame
    reason: str = ''

    def __bool__(self):
        return self.success


class FrameSource(ABC):
    """Something that can capture point cloud frames (camera, file list, ...)."""

    @abstractmethod
    def capture(self) -> PointCloudFrame:
        """Capture one frame; raise on acquisition errors."""


class Detector(ABC):
    """Calibration target detector."""

    @abstractmethod
    def detect(self, frame: PointCloudFrame) -> DetectionResult:
        """Detect the target; return an unsuccessful result if it is not found."""


class Solver(ABC):
    """Hand-eye calibration solver."""

    @abstractmethod
    def calibrate(self, samples: Sequence[CalibrationSample]) -> HandEyeCalibrationResult:
        """Solve for the fixed camera transform from the ordered samples."""
