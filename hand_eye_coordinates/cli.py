"""
Command-line entry points.

``hand-eye-calibrate`` runs the interactive calibration session over saved
captures; ``hand-eye-transform-cloud`` maps a capture into the robot base
frame and renders a pseudo-colour depth map.
"""

import argparse
import logging
import sys

import cv2
import numpy as np

from .checkerboard_detector import CheckerboardDetector
from .config import load_config
from .coordinate_transformer import CoordinateTransformer, export_format
from .errors import HandEyeError, NormalizationError, OutputFileError
from .frame_source import FileFrameSource
from .hand_eye_solver import EYE_TO_HAND, MODES, HandEyeSolver
from .point_cloud import Axis, load_frame
from .range_normalizer import RangeNormalizer
from .session import CalibrationSession
from .transform import load_transform, save_transform

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
        stream=sys.stderr,
    )


def _write_image(path: str, image: np.ndarray):
    try:
        written = cv2.imwrite(path, image)
    except cv2.error as e:
        raise OutputFileError(f"Could not write {path}: {e}") from e
    if not written:
        raise OutputFileError(f"Could not write {path}")


def calibrate_main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Interactive hand-eye calibration from saved point cloud captures'
    )
    parser.add_argument('--captures-dir', type=str, required=True,
                        help='Directory with .npz captures, consumed in sorted order')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to hand_eye.yaml config file')
    parser.add_argument('--output', '-o', type=str, default='handEyeTransform.yaml',
                        help='Output transform file (default: handEyeTransform.yaml)')
    parser.add_argument('--mode', choices=MODES, default=None,
                        help='Override calibration.mode from the config')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        calib_cfg = config['calibration']
        mode = args.mode or calib_cfg['mode']

        detector = CheckerboardDetector(config['checkerboard'])
        solver = HandEyeSolver(mode=mode, method=calib_cfg['method'])
        source = FileFrameSource.from_directory(args.captures_dir)

        session = CalibrationSession(source, detector, solver)
        transform = session.run()
        save_transform(args.output, transform, key=calib_cfg['transform_key'])
    except (HandEyeError, ValueError) as e:
        print(f"\nError: {e}", file=sys.stderr)
        return 1

    translation, quaternion = transform.to_translation_quaternion()
    result = session.result
    print("\n" + "=" * 60)
    print(f"CALIBRATION RESULT ({mode})")
    print("=" * 60)
    print(f"  Samples:     {result.num_samples_used}")
    print(f"  Translation: [{translation[0]:.6f}, {translation[1]:.6f}, {translation[2]:.6f}]")
    print(f"  Quaternion:  [{quaternion[0]:.6f}, {quaternion[1]:.6f}, "
          f"{quaternion[2]:.6f}, {quaternion[3]:.6f}]")
    print(f"  Spread:      {result.translation_spread:.4f} / {result.rotation_spread_deg:.4f} deg")
    print(f"\n✓ Transform saved to: {args.output}")
    return 0


def transform_main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description='Transform a point cloud capture from camera to robot base frame'
    )
    parser.add_argument('--frame', type=str, required=True,
                        help='Point cloud capture (.npz)')
    parser.add_argument('--hand-eye', type=str, default='handEyeTransform.yaml',
                        help='Hand-eye calibration result (default: handEyeTransform.yaml)')
    parser.add_argument('--robot', type=str, default='robotTransform.yaml',
                        help='End-effector pose in base frame (default: robotTransform.yaml)')
    parser.add_argument('--config', type=str, default=None,
                        help='Path to hand_eye.yaml config file')
    parser.add_argument('--output-cloud', type=str, default='transformed_cloud.npz',
                        help='Transformed point cloud export, .npz, .pcd or .ply '
                             '(default: transformed_cloud.npz)')
    parser.add_argument('--depth-map', type=str, default='depth_map.png',
                        help='Pseudo-colour depth map image (default: depth_map.png)')
    parser.add_argument('--masked-rgb', type=str, default=None,
                        help='Also write the colour image after ROI masking')
    parser.add_argument('--axis', type=str, default=None,
                        help='Axis rendered in the depth map (x, y or z)')
    parser.add_argument('--roi', type=int, nargs=4, default=None,
                        metavar=('X', 'Y', 'WIDTH', 'HEIGHT'),
                        help='Keep only this pixel rectangle of the capture')
    parser.add_argument('--point', type=float, nargs=3, default=None,
                        metavar=('X', 'Y', 'Z'),
                        help='Also print this camera-frame point in the base frame')
    parser.add_argument('--workers', type=int, default=None,
                        help='Number of worker threads for the transform')
    parser.add_argument('--show', action='store_true',
                        help='Show the depth map in a window')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        config = load_config(args.config)
        vis_cfg = config['visualization']
        key = config['calibration']['transform_key']
        axis = Axis.parse(args.axis or vis_cfg['axis'])
        roi = args.roi or vis_cfg['roi']
        workers = (args.workers if args.workers is not None
                   else int(config['processing']['workers']))
        export_format(args.output_cloud)

        hand_eye = load_transform(args.hand_eye, key)
        if config['calibration']['mode'] == EYE_TO_HAND:
            # Eye-to-hand results are already T_base_camera
            transformer = CoordinateTransformer(hand_eye, num_workers=workers)
        else:
            robot_pose = load_transform(args.robot, key)
            transformer = CoordinateTransformer.from_chain(robot_pose, hand_eye,
                                                           num_workers=workers)

        print("Camera pose in robot base frame:")
        print(transformer.transform)

        if args.point is not None:
            point = transformer.transform_point(args.point)
            print(f"Point coordinates in robot base frame: "
                  f"[{point[0]:.3f}, {point[1]:.3f}, {point[2]:.3f}]")

        print(f"Reading {args.frame} point cloud")
        frame = load_frame(args.frame)
        if roi is not None:
            frame = frame.with_roi(tuple(roi))

        grid = transformer.transform_frame(frame)
        normalizer = RangeNormalizer(out_range=tuple(vis_cfg['out_range']),
                                     colormap=vis_cfg['colormap'])
    except (HandEyeError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Point cloud information:")
    print(f"  Number of points: {frame.size}")
    print(f"  Height: {frame.height}, Width: {frame.width}")
    print(f"  Valid points: {grid.valid_count()}")

    try:
        saved = grid.to_export().save(args.output_cloud)
        print(f"Saved transformed point cloud to {saved}")
        if args.masked_rgb:
            _write_image(args.masked_rgb, cv2.cvtColor(np.ascontiguousarray(frame.rgb),
                                                       cv2.COLOR_RGB2BGR))
            print(f"Saved masked RGB image to {args.masked_rgb}")
    except HandEyeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        depth_map = normalizer.depth_map(grid, axis)
    except NormalizationError as e:
        logger.warning("Depth map skipped: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 0

    try:
        _write_image(args.depth_map, depth_map)
    except OutputFileError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    print(f"Saved {axis.name} depth map to {args.depth_map}")

    if args.show:
        cv2.namedWindow('Depth map', cv2.WINDOW_AUTOSIZE)
        cv2.imshow('Depth map', depth_map)
        cv2.waitKey(0)
        cv2.destroyAllWindows()

    return 0
