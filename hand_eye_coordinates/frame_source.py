"""
Frame sources backed by capture files on disk.
"""

import glob
import logging
import os
from typing import List, Sequence

from .interfaces import FrameSource
from .point_cloud import PointCloudFrame, load_frame

logger = logging.getLogger(__name__)


class FileFrameSource(FrameSource):
    """
    Replays saved captures (``.npz`` written by ``save_frame``) in order,
    one per ``capture()`` call.
    """

    def __init__(self, paths: Sequence[str]):
        self.paths: List[str] = list(paths)
        self._next = 0

    @classmethod
    def from_directory(cls, directory: str, pattern: str = '*.npz') -> 'FileFrameSource':
        paths = sorted(glob.glob(os.path.join(directory, pattern)))
        logger.info("Found %d captures in %s", len(paths), directory)
        return cls(paths)

    @property
    def remaining(self) -> int:
        return len(self.paths) - self._next

    def capture(self) -> PointCloudFrame:
        if self._next >= len(self.paths):
            raise RuntimeError("No more captures available")
        path = self.paths[self._next]
        self._next += 1
        logger.info("Loading capture %s", path)
        return load_frame(path)
