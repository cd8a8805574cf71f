#!/usr/bin/env python3
"""
Generate a printable checkerboard matching the calibration config.

Usage:
    python3 generate_checkerboard.py --config hand_eye.yaml --output checkerboard.png
"""

import argparse
import os
import sys

import cv2

# Add package to path for standalone execution
try:
    from hand_eye_coordinates.checkerboard_detector import CheckerboardDetector
    from hand_eye_coordinates.config import load_config
except ImportError:
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    from hand_eye_coordinates.checkerboard_detector import CheckerboardDetector
    from hand_eye_coordinates.config import load_config


def main():
    parser = argparse.ArgumentParser(description='Generate a printable checkerboard')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to hand_eye.yaml config file')
    parser.add_argument('--dpi', type=int, default=300,
                        help='Print resolution (default: 300)')
    parser.add_argument('--margin', type=float, default=20.0,
                        help='White margin in mm (default: 20)')
    parser.add_argument('--output', '-o', type=str, default='checkerboard.png',
                        help='Output image (default: checkerboard.png)')
    args = parser.parse_args()

    config = load_config(args.config)
    detector = CheckerboardDetector(config['checkerboard'])

    # square_size is in mm
    pixels_per_mm = args.dpi / 25.4
    square_pixels = int(round(detector.square_size * pixels_per_mm))
    margin_pixels = int(round(args.margin * pixels_per_mm))

    board = detector.generate_board_image(square_pixels=square_pixels,
                                          margin_pixels=margin_pixels)
    cv2.imwrite(args.output, board)

    print(f"Checkerboard: {detector.columns}x{detector.rows} inner corners, "
          f"{detector.square_size} mm squares")
    print(f"Image size:   {board.shape[1]}x{board.shape[0]} px at {args.dpi} DPI")
    print(f"Saved to:     {args.output}")


if __name__ == '__main__':
    main()
