"""
Exceptions raised by camcalib.

Solvers raise these; CalibrationSession turns them into SolveOutcome values
for the operator-facing layer.
"""


class CalibrationError(Exception):
    """Base class for all camcalib errors."""


class DeviceUnavailable(CalibrationError, RuntimeError):
    """The capture device could not be opened."""


class InsufficientFrames(CalibrationError, ValueError):
    """A solve was requested before enough frames were accepted."""

    def __init__(self, have: int, need: int):
        super().__init__(f"Insufficient frames for calibration: {have} (need at least {need})")
        self.have = have
        self.need = need


class InvalidState(CalibrationError, RuntimeError):
    """An operation is not permitted in the session's current state."""


class DetectionMismatch(CalibrationError, ValueError):
    """Detected corner count does not match the board geometry."""

    def __init__(self, found: int, expected: int):
        super().__init__(f"Detected {found} corners, board has {expected}")
        self.found = found
        self.expected = expected


class PoorConditioning(CalibrationError, RuntimeError):
    """The intrinsic optimization is ill-conditioned or did not converge."""


class PoseNotFound(CalibrationError, RuntimeError):
    """No pose hypothesis reached the minimum inlier support."""


class MalformedFile(CalibrationError, ValueError):
    """A matrix file is unreadable or inconsistent with its declared dimensions."""
