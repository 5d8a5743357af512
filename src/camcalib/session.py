"""
Interactive intrinsic calibration session.

CalibrationSession accumulates accepted chessboard views, then solves and
persists the intrinsic model. Solver failures come back as SolveOutcome
values so the operator-facing layer can report them without try/except.

States:
    IDLE          no frames accepted
    ACCUMULATING  fewer than min_frames accepted
    READY         enough frames to solve
    SOLVED        intrinsics solved and written (terminal)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable

import cv2
import numpy as np

from .calibration.chessboard import create_world_pattern, replicate_world_pattern
from .calibration.intrinsic import calibrate_intrinsics
from .errors import DetectionMismatch, InsufficientFrames, InvalidState, PoorConditioning
from .matrix_file import INTRINSICS_FILENAME, save_intrinsics, timestamp_name
from .types import (
    BoardConfig,
    CalibrationFrame,
    IntrinsicModel,
    SessionConfig,
    SolverConfig,
)

logger = logging.getLogger(__name__)


class SessionState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    READY = "ready"
    SOLVED = "solved"


class CaptureStatus(Enum):
    ACCEPTED = "accepted"
    DETECTION_FAILED = "detection_failed"


class SolveStatus(Enum):
    SOLVED = "solved"
    INSUFFICIENT_FRAMES = "insufficient_frames"
    INVALID_STATE = "invalid_state"
    POOR_CONDITIONING = "poor_conditioning"
    IO_FAILURE = "io_failure"


@dataclass(frozen=True)
class CaptureOutcome:
    """Result of offering a frame to the session."""

    status: CaptureStatus
    frame: CalibrationFrame | None = None
    image_path: Path | None = None
    image_saved: bool = False

    @property
    def accepted(self) -> bool:
        return self.status is CaptureStatus.ACCEPTED


@dataclass(frozen=True)
class SolveOutcome:
    """
    Result of a solve request.

    intrinsics is set for SOLVED and IO_FAILURE (solved but not written).
    """

    status: SolveStatus
    intrinsics: IntrinsicModel | None = None
    path: Path | None = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is SolveStatus.SOLVED


class CalibrationSession:
    """
    Accumulates chessboard views and solves camera intrinsics.

    The session directory is created on the first accepted frame and
    holds every saved frame image and the intrinsic result.
    """

    def __init__(
        self,
        board: BoardConfig,
        config: SessionConfig = SessionConfig(),
        solver: SolverConfig = SolverConfig(),
        clock: Callable[[], datetime] = datetime.now,
    ):
        if config.min_frames < 1:
            raise ValueError(f"min_frames must be at least 1, got {config.min_frames}")

        self.board = board
        self.config = config
        self.solver = solver
        self._clock = clock

        self._frames: list[CalibrationFrame] = []
        self._directory: Path | None = None
        self._intrinsics: IntrinsicModel | None = None
        self._intrinsics_path: Path | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        if self._intrinsics_path is not None:
            return SessionState.SOLVED
        if not self._frames:
            return SessionState.IDLE
        if len(self._frames) < self.config.min_frames:
            return SessionState.ACCUMULATING
        return SessionState.READY

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def frames(self) -> tuple[CalibrationFrame, ...]:
        return tuple(self._frames)

    @property
    def directory(self) -> Path | None:
        """Session output directory, None until the first accepted frame."""
        return self._directory

    @property
    def intrinsics(self) -> IntrinsicModel | None:
        return self._intrinsics

    @property
    def image_size(self) -> tuple[int, int] | None:
        if not self._frames:
            return None
        return self._frames[0].image_size

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    def accept(self, image: np.ndarray, found: bool, corners: np.ndarray) -> CaptureOutcome:
        """
        Store a frame if its chessboard detection succeeded.

        Args:
            image: Captured BGR frame
            found: Detection result for this frame
            corners: (rows * cols, 2) detected corners

        Returns:
            CaptureOutcome (DETECTION_FAILED leaves the session unchanged)

        Raises:
            InvalidState: If the session is already solved
            DetectionMismatch: If the corner count doesn't match the board
            ValueError: If the frame size differs from earlier frames
            OSError: If the session directory cannot be created
        """
        if self.state is SessionState.SOLVED:
            raise InvalidState("Session is solved; start a new session to capture more frames")

        if not found:
            logger.debug("Ignoring capture: chessboard not detected")
            return CaptureOutcome(status=CaptureStatus.DETECTION_FAILED)

        corners = np.asarray(corners, dtype=np.float32).reshape(-1, 2)
        if len(corners) != self.board.corner_count:
            raise DetectionMismatch(len(corners), self.board.corner_count)

        size = (image.shape[1], image.shape[0])
        if self.image_size is not None and size != self.image_size:
            raise ValueError(f"Frame size {size} differs from session frame size {self.image_size}")

        # Raises OSError before the frame is counted
        directory = self._ensure_directory()

        frame = CalibrationFrame(
            index=len(self._frames) + 1,
            image=image.copy(),
            corners=corners.copy(),
        )
        self._frames.append(frame)

        image_path = directory / f"{frame.index}.{self.config.image_format}"
        saved = self._write_image(image_path, frame.image)

        logger.info(
            "Accepted frame %d (%d/%d needed)", frame.index, len(self._frames), self.config.min_frames
        )

        return CaptureOutcome(
            status=CaptureStatus.ACCEPTED,
            frame=frame,
            image_path=image_path,
            image_saved=saved,
        )

    def _ensure_directory(self) -> Path:
        if self._directory is None:
            directory = Path(self.config.output_dir) / timestamp_name(self._clock())
            directory.mkdir(parents=True, exist_ok=True)
            self._directory = directory
            logger.info("Session directory: %s", directory)
        return self._directory

    @staticmethod
    def _write_image(path: Path, image: np.ndarray) -> bool:
        try:
            ok = bool(cv2.imwrite(str(path), image))
        except cv2.error as e:
            logger.error("Failed to write %s: %s", path, e)
            return False
        if not ok:
            logger.error("Failed to write %s", path)
        return ok

    # ------------------------------------------------------------------
    # Solve
    # ------------------------------------------------------------------

    def solve(self) -> SolveOutcome:
        """
        Solve intrinsics from the accepted frames and write the result.

        Returns:
            SolveOutcome; only SOLVED changes the session state
        """
        state = self.state

        if state is SessionState.SOLVED:
            message = "Session already solved"
            logger.warning(message)
            return SolveOutcome(status=SolveStatus.INVALID_STATE, message=message)

        if len(self._frames) < self.config.min_frames:
            message = str(InsufficientFrames(len(self._frames), self.config.min_frames))
            logger.warning("Not enough images: %s", message)
            return SolveOutcome(status=SolveStatus.INSUFFICIENT_FRAMES, message=message)

        # Board is rigid: one pattern shared by every view
        pattern = create_world_pattern(self.board)
        object_points = replicate_world_pattern(pattern, len(self._frames))
        image_points = [frame.corners for frame in self._frames]

        logger.info("Starting calibration with %d frames", len(self._frames))
        try:
            intrinsics = calibrate_intrinsics(
                image_points, object_points, self.image_size, self.solver
            )
        except PoorConditioning as e:
            logger.warning("Calibration rejected: %s", e)
            return SolveOutcome(status=SolveStatus.POOR_CONDITIONING, message=str(e))

        path = self._ensure_directory() / INTRINSICS_FILENAME
        if not save_intrinsics(intrinsics, path):
            return SolveOutcome(
                status=SolveStatus.IO_FAILURE,
                intrinsics=intrinsics,
                message=f"Could not write {path}",
            )

        self._intrinsics = intrinsics
        self._intrinsics_path = path
        return SolveOutcome(status=SolveStatus.SOLVED, intrinsics=intrinsics, path=path)
