"""
Capture loop for interactive calibration.

The loop pulls one frame at a time, detects the chessboard, shows an
overlay and waits briefly for a single operator command:

    space   capture the current frame (only if the board was found)
    enter   solve and write the intrinsics
    escape  end the session

Frame sources and displays are small protocols so the loop can be driven
by a webcam window or by fakes in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

import cv2
import numpy as np

from .calibration.intrinsic import detect_chessboard_corners, draw_detection
from .errors import DeviceUnavailable
from .session import CalibrationSession, SolveOutcome
from .types import CaptureConfig

logger = logging.getLogger(__name__)

WINDOW_NAME = "Webcam"


class Command(Enum):
    CAPTURE = "capture"
    SOLVE = "solve"
    EXIT = "exit"

    @classmethod
    def from_key(cls, key: int) -> Command | None:
        """Map a cv2.waitKey code to a command (None for other keys)."""
        if key < 0:
            return None
        return _KEY_COMMANDS.get(key & 0xFF)


_KEY_COMMANDS = {
    32: Command.CAPTURE,  # space
    13: Command.SOLVE,  # enter
    10: Command.SOLVE,  # enter (some platforms)
    27: Command.EXIT,  # escape
}


# ============================================================================
# Collaborators
# ============================================================================


class FrameSource(Protocol):
    def read(self) -> np.ndarray | None:
        """Next frame, or None when no more frames are available."""
        ...


class Display(Protocol):
    def show(self, image: np.ndarray) -> None:
        ...

    def poll(self, wait_ms: int) -> Command | None:
        """Wait up to wait_ms for at most one command."""
        ...


class VideoCaptureSource:
    """
    Webcam frame source.

    Use as a context manager; the device is always released on exit.
    """

    def __init__(self, config: CaptureConfig = CaptureConfig()):
        self.config = config
        self._capture: cv2.VideoCapture | None = None

    def open(self) -> None:
        capture = cv2.VideoCapture(self.config.device)
        if not capture.isOpened():
            capture.release()
            raise DeviceUnavailable(f"Could not open video device {self.config.device}")

        if self.config.change_resolution:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.height)
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.width)

        self._capture = capture
        logger.info("Opened video device %d", self.config.device)

    def read(self) -> np.ndarray | None:
        if self._capture is None:
            raise RuntimeError("Video source not opened")
        ok, frame = self._capture.read()
        if not ok:
            return None
        return frame

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Released video device %d", self.config.device)

    def __enter__(self) -> VideoCaptureSource:
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class OpenCVDisplay:
    """HighGUI window that doubles as the keyboard command source."""

    def __init__(self, window_name: str = WINDOW_NAME):
        self.window_name = window_name
        cv2.namedWindow(self.window_name, cv2.WINDOW_AUTOSIZE)

    def show(self, image: np.ndarray) -> None:
        cv2.imshow(self.window_name, image)

    def poll(self, wait_ms: int) -> Command | None:
        return Command.from_key(cv2.waitKey(wait_ms))

    def close(self) -> None:
        cv2.destroyWindow(self.window_name)


# ============================================================================
# Loop
# ============================================================================


@dataclass
class LoopResult:
    """Summary of one run of the capture loop."""

    frames_read: int = 0
    accepted: int = 0
    solves: list[SolveOutcome] = field(default_factory=list)
    exited: bool = False  # True if the operator ended the session


def run_capture_loop(
    session: CalibrationSession,
    source: FrameSource,
    display: Display,
    rotate: bool = False,
    fps: int = 20,
) -> LoopResult:
    """
    Drive a calibration session from a frame source and display.

    Args:
        session: Session that receives accepted frames
        source: Frame source (loop ends when it returns None)
        display: Overlay sink and command source
        rotate: Rotate each frame 90 degrees clockwise before detection
        fps: Sets the per-iteration command wait (1000 / fps ms)

    Returns:
        LoopResult
    """
    wait_ms = max(1, 1000 // fps)
    result = LoopResult()

    while True:
        frame = source.read()
        if frame is None:
            logger.info("Frame source exhausted")
            break
        result.frames_read += 1

        if rotate:
            frame = cv2.rotate(frame, cv2.ROTATE_90_CLOCKWISE)

        found, corners = detect_chessboard_corners(frame, session.board)
        display.show(draw_detection(frame, session.board, corners, found) if found else frame)

        command = display.poll(wait_ms)

        if command is Command.CAPTURE:
            if found:
                outcome = session.accept(frame, found, corners)
                if outcome.accepted:
                    result.accepted += 1
                    logger.info("Found image and saved it: %s", outcome.image_path)
        elif command is Command.SOLVE:
            outcome = session.solve()
            result.solves.append(outcome)
            if outcome.ok:
                logger.info("Calibration saved to %s", outcome.path)
            else:
                logger.warning("Calibration not saved (%s): %s", outcome.status.value, outcome.message)
        elif command is Command.EXIT:
            result.exited = True
            break

    return result
