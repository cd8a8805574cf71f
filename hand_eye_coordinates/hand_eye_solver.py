"""
Hand-eye calibration solver built on cv2.calibrateHandEye.

Eye-in-hand: the camera is mounted on the end-effector and the result is
T_endeffector_camera. Eye-to-hand: the camera is static and the result is
T_base_camera.
"""

import logging
from typing import List, Sequence, Tuple

import cv2
import numpy as np
from scipy.spatial.transform import Rotation

from .interfaces import CalibrationSample, HandEyeCalibrationResult, Solver
from .transform import Transform3D, nearest_rotation

logger = logging.getLogger(__name__)

EYE_IN_HAND = 'eye_in_hand'
EYE_TO_HAND = 'eye_to_hand'
MODES = (EYE_IN_HAND, EYE_TO_HAND)

METHOD_MAP = {
    'TSAI': cv2.CALIB_HAND_EYE_TSAI,
    'PARK': cv2.CALIB_HAND_EYE_PARK,
    'HORAUD': cv2.CALIB_HAND_EYE_HORAUD,
    'ANDREFF': cv2.CALIB_HAND_EYE_ANDREFF,
    'DANIILIDIS': cv2.CALIB_HAND_EYE_DANIILIDIS,
}


class HandEyeSolver(Solver):
    """
    Solver for the fixed camera transform from (robot pose, target pose) pairs.
    """

    MIN_SAMPLES = 3

    def __init__(self, mode: str = EYE_IN_HAND, method: str = 'TSAI'):
        """
        Args:
            mode: 'eye_in_hand' or 'eye_to_hand'
            method: Name of the OpenCV hand-eye method (TSAI, PARK, ...)
        """
        if mode not in MODES:
            raise ValueError(f"Unknown hand-eye mode: {mode} (expected one of {MODES})")
        method_name = str(method).upper()
        if method_name not in METHOD_MAP:
            raise ValueError(f"Unknown hand-eye method: {method}")
        self.mode = mode
        self.method_name = method_name
        self.method = METHOD_MAP[method_name]

    def calibrate(self, samples: Sequence[CalibrationSample]) -> HandEyeCalibrationResult:
        """
        Compute the hand-eye transform.

        Args:
            samples: Ordered samples with successful detections

        Returns:
            HandEyeCalibrationResult
        """
        usable = [s for s in samples
                  if s.detection.success and s.detection.target_pose is not None]

        if len(usable) < self.MIN_SAMPLES:
            logger.warning("Insufficient samples for hand-eye calibration: %d < %d",
                           len(usable), self.MIN_SAMPLES)
            return HandEyeCalibrationResult(
                success=False,
                mode=self.mode,
                num_samples_used=len(usable),
                reason=f'insufficient_samples ({len(usable)} < {self.MIN_SAMPLES})'
            )

        R_robot, t_robot = [], []
        R_target, t_target = [], []
        for sample in usable:
            robot = sample.robot_pose
            if self.mode == EYE_TO_HAND:
                # calibrateHandEye expects base->gripper for a static camera
                robot = robot.inverse()
            R_robot.append(robot.to_array()[:3, :3])
            t_robot.append(robot.to_array()[:3, 3].reshape(3, 1))

            target = sample.detection.target_pose
            R_target.append(target.to_array()[:3, :3])
            t_target.append(target.to_array()[:3, 3].reshape(3, 1))

        try:
            R, t = cv2.calibrateHandEye(R_robot, t_robot, R_target, t_target,
                                        method=self.method)
        except cv2.error as e:
            logger.error("cv2.calibrateHandEye failed: %s", e)
            return HandEyeCalibrationResult(
                success=False, mode=self.mode, num_samples_used=len(usable),
                reason=f'solver_error: {e}'
            )

        if R is None or t is None or not (np.all(np.isfinite(R)) and np.all(np.isfinite(t))):
            return HandEyeCalibrationResult(
                success=False, mode=self.mode, num_samples_used=len(usable),
                reason='solver returned no finite solution'
            )

        X = Transform3D.from_rotation_translation(R, t.flatten())
        translation_spread, rotation_spread = self._consistency(usable, X)

        logger.info("Hand-eye (%s, %s): %d samples, spread %.4f / %.4f deg",
                    self.mode, self.method_name, len(usable),
                    translation_spread, rotation_spread)

        return HandEyeCalibrationResult(
            success=True,
            transform=X,
            mode=self.mode,
            num_samples_used=len(usable),
            translation_spread=translation_spread,
            rotation_spread_deg=rotation_spread,
        )

    def _fixed_frames(self, samples: Sequence[CalibrationSample],
                      X: Transform3D) -> List[np.ndarray]:
        """
        Target pose in the frame that should not move across samples:
        the base for eye-in-hand, the end-effector for eye-to-hand.
        """
        frames = []
        for sample in samples:
            target = sample.detection.target_pose
            if self.mode == EYE_IN_HAND:
                T = sample.robot_pose @ X @ target
            else:
                T = sample.robot_pose.inverse() @ X @ target
            frames.append(T.to_array())
        return frames

    def _consistency(self, samples: Sequence[CalibrationSample],
                     X: Transform3D) -> Tuple[float, float]:
        frames = self._fixed_frames(samples, X)

        translations = np.array([T[:3, 3] for T in frames])
        translation_spread = float(np.linalg.norm(np.std(translations, axis=0)))

        rotations = Rotation.from_matrix(np.array([nearest_rotation(T[:3, :3]) for T in frames]))
        mean_rotation = rotations.mean()
        angles = (mean_rotation.inv() * rotations).magnitude()
        rotation_spread = float(np.degrees(np.max(angles)))

        return translation_spread, rotation_spread

