#!/usr/bin/env python3
"""
Interactive hand-eye calibration.

For every robot pose, enter ``p`` followed by the 16 values of the
end-effector pose (row-major 4x4); the next saved capture is loaded and the
checkerboard detected in it. Enter ``c`` to solve.

Usage:
    python3 run_hand_eye_calibration.py \
        --captures-dir /path/to/captures \
        --config /path/to/hand_eye.yaml \
        --output handEyeTransform.yaml
"""

import os
import sys

# Add package to path for standalone execution
try:
    from hand_eye_coordinates.cli import calibrate_main
except ImportError:
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    from hand_eye_coordinates.cli import calibrate_main


if __name__ == '__main__':
    sys.exit(calibrate_main())
