#!/usr/bin/env python3
"""
Unit tests for the interactive calibration session.
"""

import io
import os
import sys
import unittest

# Add package to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from hand_eye_coordinates.errors import SessionAborted, SessionStateError, SolverFailure
from hand_eye_coordinates.interfaces import (
    DetectionResult, Detector, FrameSource, HandEyeCalibrationResult, Solver
)
from hand_eye_coordinates.session import (
    CalibrationSession, CommandType, SessionState, parse_command
)
from hand_eye_coordinates.transform import Transform3D

from helpers import make_frame, translation

POSE_LINE = "1 0 0 100 0 1 0 0 0 0 1 0 0 0 0 1\n"


class FakeFrameSource(FrameSource):

    def __init__(self, errors=()):
        self.errors = set(errors)
        self.calls = 0

    def capture(self):
        self.calls += 1
        if self.calls in self.errors:
            raise RuntimeError("camera disconnected")
        return make_frame()


class FakeDetector(Detector):
    """Succeeds unless the call number is listed in ``failures``."""

    def __init__(self, failures=()):
        self.failures = set(failures)
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        if self.calls in self.failures:
            return DetectionResult(success=False, reason='checkerboard_not_found')
        return DetectionResult(success=True, target_pose=Transform3D.identity(), num_corners=54)


class FakeSolver(Solver):

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.calls = []

    def calibrate(self, samples):
        self.calls.append(samples)
        if not self.succeed:
            return HandEyeCalibrationResult(success=False, reason='insufficient_samples')
        return HandEyeCalibrationResult(success=True, transform=translation(z=50.0),
                                        num_samples_used=len(samples))


def make_session(text='', detector=None, solver=None, source=None):
    output = io.StringIO()
    session = CalibrationSession(
        source or FakeFrameSource(),
        detector or FakeDetector(),
        solver or FakeSolver(),
        input_stream=io.StringIO(text),
        output=output,
    )
    return session, output


class TestParseCommand(unittest.TestCase):

    def test_commands(self):
        self.assertIs(parse_command('p'), CommandType.ADD_POSE)
        self.assertIs(parse_command('P'), CommandType.ADD_POSE)
        self.assertIs(parse_command('c\n'), CommandType.CALIBRATE)
        self.assertIs(parse_command('C'), CommandType.CALIBRATE)
        self.assertIs(parse_command('pose'), CommandType.UNKNOWN)
        self.assertIs(parse_command(''), CommandType.UNKNOWN)


class TestCalibrationSession(unittest.TestCase):
    """Test the session state machine."""

    def test_failed_detection_not_stored(self):
        session, _ = make_session(detector=FakeDetector(failures=[2]))

        outcomes = [session.add_pose(translation(x=float(i))) for i in range(3)]

        self.assertEqual([o.ok for o in outcomes], [True, False, True])
        self.assertEqual(len(session.samples), 2)
        self.assertEqual(session.pose_id, 2)
        self.assertEqual([s.pose_id for s in session.samples], [0, 1])
        self.assertEqual(outcomes[1].failure.pose_id, 1)
        self.assertEqual(outcomes[1].failure.reason, 'checkerboard_not_found')
        self.assertIs(session.state, SessionState.COLLECTING)

    def test_capture_error_is_not_fatal(self):
        session, _ = make_session(source=FakeFrameSource(errors=[1]))

        with self.assertLogs('hand_eye_coordinates.session', level='ERROR'):
            outcome = session.add_pose(Transform3D.identity())
        self.assertFalse(outcome.ok)
        self.assertTrue(outcome.failure.reason.startswith('capture_error'))

        self.assertTrue(session.add_pose(Transform3D.identity()).ok)
        self.assertEqual(session.pose_id, 1)

    def test_calibrate_uses_all_samples_once(self):
        solver = FakeSolver()
        session, _ = make_session(solver=solver, detector=FakeDetector(failures=[1]))
        for i in range(4):
            session.add_pose(translation(x=float(i)))

        result = session.calibrate()

        self.assertTrue(result.allclose(translation(z=50.0)))
        self.assertEqual(len(solver.calls), 1)
        self.assertEqual(len(solver.calls[0]), 3)
        self.assertTrue(all(s.detection.success for s in solver.calls[0]))
        self.assertIs(session.state, SessionState.CALIBRATING)

    def test_calibrate_with_no_samples_reaches_solver(self):
        solver = FakeSolver()
        session, _ = make_session(solver=solver)
        session.calibrate()
        self.assertEqual(solver.calls, [()])

    def test_solver_failure(self):
        session, _ = make_session(solver=FakeSolver(succeed=False))
        with self.assertRaises(SolverFailure):
            session.calibrate()
        self.assertIs(session.state, SessionState.CALIBRATING)
        self.assertFalse(session.result.success)

    def test_no_commands_after_calibration(self):
        session, _ = make_session()
        session.calibrate()
        with self.assertRaises(SessionStateError):
            session.calibrate()
        with self.assertRaises(SessionStateError):
            session.add_pose(Transform3D.identity())


class TestInteractiveSession(unittest.TestCase):
    """Test the operator loop."""

    def test_run(self):
        text = "p\n" + POSE_LINE + "x\n" + "P\n" + POSE_LINE + "c\n"
        session, output = make_session(text)

        result = session.run()

        self.assertTrue(result.allclose(translation(z=50.0)))
        self.assertEqual(session.pose_id, 2)
        log = output.getvalue()
        self.assertIn("Error: Unknown command", log)
        self.assertIn("Enter pose with id", log)
        self.assertIn("The following pose was entered", log)
        self.assertIn("Result:", log)

    def test_failed_detection_reported(self):
        text = "p\n" + POSE_LINE + "p\n" + POSE_LINE + "p\n" + POSE_LINE + "c\n"
        session, output = make_session(text, detector=FakeDetector(failures=[2]))

        session.run()

        self.assertEqual(len(session.samples), 2)
        self.assertEqual(session.pose_id, 2)
        self.assertIn("FAILED", output.getvalue())

    def test_invalid_pose_continues(self):
        text = "p\n1 2 3\n" + "p\n" + POSE_LINE + "c\n"
        session, output = make_session(text)

        with self.assertLogs('hand_eye_coordinates.session', level='ERROR'):
            session.run()

        self.assertEqual(session.pose_id, 1)
        self.assertIn("Error: Expected 16 values", output.getvalue())

    def test_end_of_input(self):
        session, _ = make_session("p\n" + POSE_LINE)
        with self.assertRaises(SessionAborted):
            session.run()
        self.assertEqual(session.pose_id, 1)
        self.assertIs(session.state, SessionState.COLLECTING)

    def test_end_of_input_during_pose_entry(self):
        session, _ = make_session("p\n")
        with self.assertRaises(SessionAborted):
            session.run()

    def test_solver_failure_is_fatal(self):
        session, output = make_session("c\n", solver=FakeSolver(succeed=False))
        with self.assertRaises(SolverFailure):
            session.run()
        self.assertIn("FAILED", output.getvalue())

    def test_step(self):
        session, _ = make_session("p\n" + POSE_LINE + "c\n")
        self.assertIsNone(session.step())
        self.assertIsNotNone(session.step())


if __name__ == '__main__':
    unittest.main()
