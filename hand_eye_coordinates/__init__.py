# hand_eye_coordinates package
"""
Hand-eye calibration and camera-to-robot coordinate transformation.

This package collects robot pose / calibration target samples, solves for
the camera mounting transform, and maps organized point clouds from the
camera frame into the robot base frame for visualization and export.
"""

from .transform import Transform3D, compose, compose_chain, load_transform, save_transform
from .point_cloud import Axis, PointCloudFrame, PointRecord
from .coordinate_transformer import CoordinateTransformer, TransformedGrid
from .range_normalizer import RangeNormalizer, compute_range, normalize
from .session import CalibrationSession
from .checkerboard_detector import CheckerboardDetector
from .hand_eye_solver import HandEyeSolver

__all__ = [
    'Transform3D',
    'compose',
    'compose_chain',
    'load_transform',
    'save_transform',
    'Axis',
    'PointCloudFrame',
    'PointRecord',
    'CoordinateTransformer',
    'TransformedGrid',
    'RangeNormalizer',
    'compute_range',
    'normalize',
    'CalibrationSession',
    'CheckerboardDetector',
    'HandEyeSolver',
]
