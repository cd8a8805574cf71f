"""
Interactive hand-eye calibration session.

The operator alternates between moving the robot and entering its pose
(``p``), and finally requests the calibration (``c``). Every pose for which
the calibration target was detected becomes one sample for the solver.
"""

import logging
import sys
from dataclasses import dataclass
from enum import Enum
from typing import Optional, TextIO, Tuple

from .errors import SessionAborted, SessionStateError, SolverFailure
from .interfaces import (
    CalibrationSample, Detector, FrameSource, HandEyeCalibrationResult, Solver
)
from .transform import Transform3D, parse_pose_line

logger = logging.getLogger(__name__)

COMMAND_PROMPT = "Enter command, p (to add robot pose) or c (to perform calibration): "
POSE_PROMPT = ("Enter pose with id (a line with 16 space separated values "
               "describing 4x4 row-major matrix) : {pose_id}\n")


class CommandType(Enum):
    ADD_POSE = 'add_pose'
    CALIBRATE = 'calibrate'
    UNKNOWN = 'unknown'


def parse_command(line: str) -> CommandType:
    command = line.strip()
    if command in ('p', 'P'):
        return CommandType.ADD_POSE
    if command in ('c', 'C'):
        return CommandType.CALIBRATE
    return CommandType.UNKNOWN


class SessionState(Enum):
    COLLECTING = 'collecting'
    CALIBRATING = 'calibrating'


@dataclass
class DetectionFailure:
    """Why a pose did not produce a sample."""
    pose_id: int
    reason: str


@dataclass
class AddPoseOutcome:
    """Result of one add-pose step: a stored sample or a failure."""
    sample: Optional[CalibrationSample] = None
    failure: Optional[DetectionFailure] = None

    @property
    def ok(self) -> bool:
        return self.sample is not None


class CalibrationSession:
    """
    Collects (robot pose, detection) samples and runs the solver once.

    Args:
        frame_source: Captures a frame for every entered pose
        detector: Finds the calibration target in a frame
        solver: Computes the hand-eye transform from the samples
        input_stream: Operator input, one command or pose per line
        output: Stream for prompts and progress messages
    """

    def __init__(self, frame_source: FrameSource, detector: Detector, solver: Solver,
                 input_stream: Optional[TextIO] = None, output: Optional[TextIO] = None):
        self.frame_source = frame_source
        self.detector = detector
        self.solver = solver
        self.input = input_stream if input_stream is not None else sys.stdin
        self.output = output if output is not None else sys.stdout

        self._samples = []
        self._pose_id = 0
        self._state = SessionState.COLLECTING
        self.result: Optional[HandEyeCalibrationResult] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def pose_id(self) -> int:
        """Id the next successfully detected pose will get."""
        return self._pose_id

    @property
    def samples(self) -> Tuple[CalibrationSample, ...]:
        return tuple(self._samples)

    def add_pose(self, robot_pose: Transform3D) -> AddPoseOutcome:
        """
        Capture a frame for ``robot_pose`` and store a sample if the target
        is detected.

        Capture and detection errors are reported as a failed outcome; the
        session keeps collecting.
        """
        if self._state is not SessionState.COLLECTING:
            raise SessionStateError(f"Cannot add poses in state {self._state.value}")

        try:
            frame = self.frame_source.capture()
            detection = self.detector.detect(frame)
        except Exception as e:
            logger.error("Pose %d: capture failed: %s", self._pose_id, e)
            return AddPoseOutcome(failure=DetectionFailure(self._pose_id, f"capture_error: {e}"))

        if not detection.success:
            logger.warning("Pose %d: calibration target not detected (%s)",
                           self._pose_id, detection.reason or 'unknown')
            return AddPoseOutcome(failure=DetectionFailure(
                self._pose_id, detection.reason or 'detection_failed'))

        sample = CalibrationSample(pose_id=self._pose_id, robot_pose=robot_pose,
                                   detection=detection)
        self._samples.append(sample)
        self._pose_id += 1
        logger.info("Pose %d added (%d samples)", sample.pose_id, len(self._samples))
        return AddPoseOutcome(sample=sample)

    def calibrate(self) -> Transform3D:
        """
        Run the solver once over all collected samples.

        Raises:
            SessionStateError: Calibration was already requested
            SolverFailure: The solver did not produce a transform
        """
        if self._state is not SessionState.COLLECTING:
            raise SessionStateError("Calibration was already performed for this session")
        self._state = SessionState.CALIBRATING

        logger.info("Performing hand-eye calibration with %d samples", len(self._samples))
        try:
            result = self.solver.calibrate(tuple(self._samples))
        except SolverFailure:
            raise
        except Exception as e:
            raise SolverFailure(f"Hand-eye solver raised an error: {e}") from e

        self.result = result
        if not result.success or result.transform is None:
            raise SolverFailure(f"Hand-eye calibration failed: {result.reason or 'no solution'}")
        return result.transform

    def step(self) -> Optional[Transform3D]:
        """
        Read and execute one operator command.

        Returns:
            The calibration result after a calibrate command, otherwise None
        """
        command = parse_command(self._read_line(COMMAND_PROMPT))

        if command is CommandType.ADD_POSE:
            self._interactive_add_pose()
        elif command is CommandType.CALIBRATE:
            return self._interactive_calibrate()
        else:
            self._write("Error: Unknown command\n")
        return None

    def run(self) -> Transform3D:
        """
        Operator loop; returns the hand-eye transform.

        Raises:
            SessionAborted: Input ended before a calibrate command
            SolverFailure: Calibration failed
        """
        while True:
            transform = self.step()
            if transform is not None:
                return transform

    def _interactive_add_pose(self) -> AddPoseOutcome:
        self._write(POSE_PROMPT.format(pose_id=self._pose_id))
        try:
            robot_pose = parse_pose_line(self._read_line())
        except SessionAborted:
            raise
        except Exception as e:
            logger.error("Invalid pose entered: %s", e)
            self._write(f"Error: {e}\n")
            return AddPoseOutcome(failure=DetectionFailure(self._pose_id, f"input_error: {e}"))

        self._write(f"The following pose was entered: \n{robot_pose}\n")
        self._write("Capturing and detecting calibration target... ")
        outcome = self.add_pose(robot_pose)
        if outcome.ok:
            self._write("OK\n")
        else:
            self._write(f"FAILED ({outcome.failure.reason})\n")
        return outcome

    def _interactive_calibrate(self) -> Transform3D:
        self._write("Performing hand-eye calibration ... ")
        try:
            transform = self.calibrate()
        except SolverFailure:
            self._write("\nFAILED\n")
            raise
        self._write(f"OK\nResult:\n{transform}\n")
        return transform

    def _read_line(self, prompt: str = '') -> str:
        if prompt:
            self._write(prompt)
        line = self.input.readline()
        if line == '':
            raise SessionAborted("Input ended before calibration was requested")
        return line.rstrip('\r\n')

    def _write(self, text: str):
        self.output.write(text)
        self.output.flush()
