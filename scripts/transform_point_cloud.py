#!/usr/bin/env python3
"""
Transform a point cloud capture from the camera frame into the robot base
frame and save a pseudo-colour depth map.

Usage:
    python3 transform_point_cloud.py \
        --frame capture.npz \
        --hand-eye handEyeTransform.yaml \
        --robot robotTransform.yaml \
        --depth-map depth_map.png
"""

import os
import sys

# Add package to path for standalone execution
try:
    from hand_eye_coordinates.cli import transform_main
except ImportError:
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    from hand_eye_coordinates.cli import transform_main


if __name__ == '__main__':
    sys.exit(transform_main())
