#!/usr/bin/env python3
"""
Unit tests for configuration loading.
"""

import os
import shutil
import sys
import tempfile
import unittest

# Add package to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hand_eye_coordinates.config import DEFAULT_CONFIG, load_config
from hand_eye_coordinates.errors import ConfigError

REPO_CONFIG = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                           'config', 'hand_eye.yaml')


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def _write(self, text):
        path = os.path.join(self.tmpdir, 'config.yaml')
        with open(path, 'w') as f:
            f.write(text)
        return path

    def test_defaults(self):
        config = load_config()
        self.assertEqual(config, DEFAULT_CONFIG)
        self.assertIsNot(config['checkerboard'], DEFAULT_CONFIG['checkerboard'])

    def test_repository_config(self):
        config = load_config(REPO_CONFIG)
        self.assertEqual(config['calibration']['transform_key'], 'PoseState')

    def test_partial_override(self):
        path = self._write(
            "checkerboard:\n"
            "  square_size: 25.0\n"
            "calibration:\n"
            "  mode: eye_to_hand\n"
        )
        config = load_config(path)
        self.assertEqual(config['checkerboard']['square_size'], 25.0)
        self.assertEqual(config['checkerboard']['columns'], 9)
        self.assertEqual(config['calibration']['mode'], 'eye_to_hand')
        self.assertEqual(config['calibration']['method'], 'TSAI')

    def test_invalid_values(self):
        cases = [
            "calibration:\n  mode: eye_on_shoulder\n",
            "calibration:\n  method: GUESS\n",
            "checkerboard:\n  square_size: -1\n",
            "visualization:\n  colormap: NOT_A_COLORMAP\n",
            "visualization:\n  axis: w\n",
            "visualization:\n  out_range: [255, 0]\n",
            "visualization:\n  roi: [0, 0, 10]\n",
            "processing:\n  workers: 0\n",
            "visualization:\n  out_range: 255\n",
            "visualization:\n  roi: 5\n",
            "visualization:\n  out_range: [low, high]\n",
            "processing:\n  workers: null\n",
            "checkerboard: 5\n",
            "- just\n- a list\n",
        ]
        for text in cases:
            with self.subTest(text=text):
                with self.assertRaises(ConfigError):
                    load_config(self._write(text))

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_config(os.path.join(self.tmpdir, 'missing.yaml'))


if __name__ == '__main__':
    unittest.main()
