#!/usr/bin/env python3
"""
Unit tests for point cloud coordinate transformation.
"""

import importlib.util
import os
import shutil
import sys
import tempfile
import unittest

import numpy as np

# Add package to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hand_eye_coordinates.coordinate_transformer import (
    CoordinateTransformer, export_format, transform_frame
)
from hand_eye_coordinates.errors import GridIndexError, OutputFileError
from hand_eye_coordinates.point_cloud import Axis, PointCloudFrame
from hand_eye_coordinates.transform import Transform3D

from helpers import make_frame, make_transform, translation


class TestCoordinateTransformer(unittest.TestCase):
    """Test per-cell transformation of frames."""

    def test_translation(self):
        frame = make_frame(height=2, width=3)
        grid = transform_frame(frame, translation(100.0, 0.0, 50.0))

        self.assertEqual(grid.shape, (2, 3))
        np.testing.assert_array_almost_equal(
            grid.at(1, 2), (2.0 + 100.0, 1.0, 500.0 + 5 + 50.0)
        )

    def test_matches_single_point_apply(self):
        frame = make_frame(height=3, width=4)
        T = make_transform((20, -10, 75), (12.0, -30.0, 400.0))
        grid = CoordinateTransformer(T).transform_frame(frame)

        for row, col, point in frame.iter_cells():
            np.testing.assert_allclose(grid.at(row, col), T.apply(point.xyz), atol=1e-6)

    def test_invalid_count_preserved(self):
        invalid = [(0, 0), (1, 3), (2, 2), (3, 4)]
        frame = make_frame(height=4, width=5, invalid=invalid)
        grid = transform_frame(frame, make_transform((0, 30, 0), (1.0, 2.0, 3.0)))

        self.assertEqual(grid.invalid_count(), len(invalid))
        self.assertEqual(grid.invalid_count(), frame.invalid_count())
        for row, col in invalid:
            self.assertIsNone(grid.at(row, col))
            self.assertTrue(np.isnan(grid.xyz[row, col]).all())

    def test_nan_z_invalidates_finite_xy(self):
        xyz = np.array([[[1.0, 2.0, np.nan], [3.0, 4.0, 5.0]]])
        grid = transform_frame(PointCloudFrame(xyz), Transform3D.identity())

        self.assertFalse(grid.valid[0, 0])
        self.assertTrue(np.isnan(grid.axis_values(Axis.X)[0, 0]))
        self.assertEqual(grid.axis_values('x')[0, 1], 3.0)

    def test_nan_x_or_y_invalidates_cell(self):
        xyz = np.array([[[np.nan, 1.0, 10.0], [2.0, np.nan, 20.0], [3.0, 3.0, 30.0]]])
        frame = PointCloudFrame(xyz)
        grid = transform_frame(frame, translation(z=5.0))

        np.testing.assert_array_equal(grid.valid, [[False, False, True]])
        self.assertEqual(grid.invalid_count(), 2)
        self.assertIsNone(grid.at(0, 0))
        self.assertIsNone(grid.at(0, 1))
        self.assertEqual(grid.at(0, 2), (3.0, 3.0, 35.0))

    def test_parallel_matches_serial(self):
        rng = np.random.default_rng(3)
        xyz = rng.uniform(-500, 500, size=(37, 23, 3))
        xyz[rng.random((37, 23)) < 0.2, 2] = np.nan
        frame = PointCloudFrame(xyz)
        T = make_transform((5, 10, 15), (1.0, 2.0, 3.0))

        serial = CoordinateTransformer(T, num_workers=1).transform_frame(frame)
        for workers in (2, 4, 7, 64):
            parallel = CoordinateTransformer(T, num_workers=workers).transform_frame(frame)
            np.testing.assert_array_equal(parallel.xyz, serial.xyz)
            np.testing.assert_array_equal(parallel.valid, serial.valid)

    def test_from_chain(self):
        hand_eye = translation(z=50.0)
        robot = translation(x=100.0)
        transformer = CoordinateTransformer.from_chain(robot, hand_eye)
        np.testing.assert_array_almost_equal(transformer.transform_point((0, 0, 0)),
                                             [100.0, 0.0, 50.0])

    def test_invalid_workers(self):
        with self.assertRaises(ValueError):
            CoordinateTransformer(Transform3D.identity(), num_workers=0)

    def test_at_out_of_range(self):
        grid = transform_frame(make_frame(height=2, width=2), Transform3D.identity())
        with self.assertRaises(GridIndexError):
            grid.at(2, 0)

    def test_export(self):
        frame = make_frame(height=2, width=3, invalid=[(1, 0)])
        export = transform_frame(frame, Transform3D.identity()).to_export()

        self.assertEqual(export.num_points, 6)
        self.assertEqual((export.height, export.width), (2, 3))
        self.assertFalse(export.is_dense)
        self.assertEqual(export.positions.dtype, np.float32)
        self.assertTrue(np.isnan(export.positions[3]).all())  # row-major index of (1, 0)
        np.testing.assert_array_equal(export.colors[4], frame.rgb[1, 1])


class TestPointCloudExport(unittest.TestCase):
    """Test writing transformed clouds to disk."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        frame = make_frame(height=2, width=3, invalid=[(1, 0)])
        self.export = transform_frame(frame, translation(z=10.0)).to_export()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_export_format(self):
        self.assertEqual(export_format('cloud.npz'), '.npz')
        self.assertEqual(export_format('cloud.PCD'), '.pcd')
        with self.assertRaises(OutputFileError):
            export_format('cloud')
        with self.assertRaises(OutputFileError):
            export_format('cloud.txt')

    def test_save_npz(self):
        path = os.path.join(self.tmpdir, 'cloud.npz')
        self.assertEqual(self.export.save(path), path)

        with np.load(path) as data:
            np.testing.assert_array_equal(data['positions'], self.export.positions)
            np.testing.assert_array_equal(data['colors'], self.export.colors)
            self.assertEqual((int(data['height']), int(data['width'])), (2, 3))

    def test_unknown_suffix_writes_nothing(self):
        path = os.path.join(self.tmpdir, 'cloud')
        with self.assertRaises(OutputFileError):
            self.export.save(path)
        self.assertEqual(os.listdir(self.tmpdir), [])

    @unittest.skipUnless(importlib.util.find_spec('open3d'), "open3d not installed")
    def test_save_pcd(self):
        import open3d as o3d

        path = os.path.join(self.tmpdir, 'cloud.pcd')
        self.export.save(path)

        cloud = o3d.io.read_point_cloud(path)
        points = np.asarray(cloud.points)
        self.assertEqual(len(points), 6)
        valid = ~np.isnan(self.export.positions).any(axis=1)
        np.testing.assert_allclose(points[valid], self.export.positions[valid], atol=1e-5)
        np.testing.assert_allclose(np.asarray(cloud.colors)[valid] * 255.0,
                                   self.export.colors[valid], atol=1.0)


if __name__ == '__main__':
    unittest.main()
