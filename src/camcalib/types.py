"""
Core data structures for camcalib.

All types are frozen dataclasses for immutability.
Logic is in separate pure functions - these are data containers only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import numpy as np


DISTORTION_COEFFICIENT_COUNT = 8  # k1, k2, p1, p2, k3, k4, k5, k6


# ============================================================================
# Board Configuration
# ============================================================================


@dataclass(frozen=True, slots=True)
class BoardConfig:
    """
    Geometry of the chessboard calibration pattern.

    rows and cols count inner corners, not squares.
    """

    rows: int = 6
    cols: int = 9
    square_size: float = 0.01908  # Square edge length in meters

    @property
    def pattern_size(self) -> tuple[int, int]:
        """OpenCV pattern size (corners per row, corners per column)."""
        return (self.cols, self.rows)

    @property
    def corner_count(self) -> int:
        return self.rows * self.cols


# ============================================================================
# Capture Data
# ============================================================================


@dataclass(frozen=True, slots=True)
class CalibrationFrame:
    """
    An accepted image and its detected chessboard corners.

    corners is ordered row-major over the board grid.
    """

    index: int  # 1-based position within the session
    image: np.ndarray  # BGR image (h, w, 3)
    corners: np.ndarray  # (rows * cols, 2) image coordinates

    @property
    def image_size(self) -> tuple[int, int]:
        """(width, height) of the captured image."""
        return (self.image.shape[1], self.image.shape[0])


# ============================================================================
# Calibration Results
# ============================================================================


def _read_only(value, dtype=None) -> np.ndarray:
    """Private copy of an array that cannot be modified in place."""
    array = np.array(value, dtype=dtype)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, slots=True)
class IntrinsicModel:
    """
    Intrinsic parameters for a camera.
    """

    matrix: np.ndarray  # 3x3 camera matrix
    distortion: np.ndarray  # Distortion coefficients (8,)
    rms: float = 0.0  # RMSE of reprojection in pixels
    frame_count: int = 0  # Number of views used in calibration
    image_size: tuple[int, int] | None = None  # (width, height)

    def __post_init__(self):
        object.__setattr__(self, "matrix", _read_only(self.matrix, np.float64))
        object.__setattr__(self, "distortion", _read_only(self.distortion, np.float64))

    @property
    def focal_length(self) -> tuple[float, float]:
        return (float(self.matrix[0, 0]), float(self.matrix[1, 1]))

    @property
    def principal_point(self) -> tuple[float, float]:
        return (float(self.matrix[0, 2]), float(self.matrix[1, 2]))


@dataclass(frozen=True, slots=True)
class ExtrinsicModel:
    """
    Camera pose relative to the world frame.
    """

    rotation: np.ndarray  # 3x3 rotation matrix
    translation: np.ndarray  # (3,) translation vector
    inliers: np.ndarray = field(default_factory=lambda: np.array([], dtype=np.int32))
    rms: float = 0.0  # Reprojection RMSE over inliers

    def __post_init__(self):
        object.__setattr__(self, "rotation", _read_only(self.rotation, np.float64))
        object.__setattr__(self, "translation", _read_only(self.translation, np.float64))
        object.__setattr__(self, "inliers", _read_only(self.inliers))

    @property
    def matrix(self) -> np.ndarray:
        """3x4 [R | t] matrix."""
        return extrinsics_to_matrix(self)


# ============================================================================
# Correspondences
# ============================================================================


@dataclass(frozen=True, slots=True)
class Correspondence:
    """A single world point and where it appears in the image."""

    world: tuple[float, float, float]
    image: tuple[float, float]


@dataclass(frozen=True, slots=True)
class CorrespondenceSet:
    """
    Fixed list of 3D-2D pairs used for extrinsic solving.
    """

    pairs: tuple[Correspondence, ...]

    def __len__(self) -> int:
        return len(self.pairs)

    @property
    def world_points(self) -> np.ndarray:
        """(n, 3) world coordinates."""
        return np.array([p.world for p in self.pairs], dtype=np.float64).reshape(-1, 3)

    @property
    def image_points(self) -> np.ndarray:
        """(n, 2) image coordinates."""
        return np.array([p.image for p in self.pairs], dtype=np.float64).reshape(-1, 2)

    @classmethod
    def from_arrays(cls, world: np.ndarray, image: np.ndarray) -> CorrespondenceSet:
        world = np.asarray(world, dtype=np.float64).reshape(-1, 3)
        image = np.asarray(image, dtype=np.float64).reshape(-1, 2)
        if len(world) != len(image):
            raise ValueError(
                f"Mismatched correspondences: {len(world)} world vs {len(image)} image points"
            )
        return cls(
            pairs=tuple(
                Correspondence(world=tuple(map(float, w)), image=tuple(map(float, i)))
                for w, i in zip(world, image)
            )
        )


# ============================================================================
# Configuration
# ============================================================================


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Settings for an interactive calibration session."""

    min_frames: int = 11
    output_dir: Path = Path(".")
    image_format: str = "png"


@dataclass(frozen=True, slots=True)
class CaptureConfig:
    """Settings for the video device and capture loop."""

    device: int = 0
    fps: int = 20
    rotate: bool = True  # Rotate frames 90 degrees clockwise
    change_resolution: bool = True
    width: int = 800
    height: int = 600


@dataclass(frozen=True, slots=True)
class SolverConfig:
    """
    Acceptance thresholds for the intrinsic solve.

    A solve that violates any of these is reported as poorly conditioned.
    """

    max_rms_px: float = 2.0
    max_relative_std: float = 0.1
    min_distinct_views: int = 3
    min_view_separation_px: float = 2.0
    rational_model: bool = True
    max_iterations: int = 100


@dataclass(frozen=True, slots=True)
class PoseConfig:
    """RANSAC parameters for the extrinsic solve."""

    iterations: int = 100
    reprojection_error: float = 2.0  # Inlier threshold in pixels
    confidence: float = 0.99
    min_inliers: int = 3
    seed: int | None = 0


@dataclass(frozen=True, slots=True)
class ProjectConfig:
    """
    Complete project configuration.
    Loaded from TOML file.
    """

    board: BoardConfig = field(default_factory=BoardConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    solver: SolverConfig = field(default_factory=SolverConfig)
    pose: PoseConfig = field(default_factory=PoseConfig)
    correspondences: Path | None = None  # CSV of X,Y,Z,u,v rows


# ============================================================================
# Pure functions for computed properties
# ============================================================================


def extrinsics_to_matrix(extrinsics: ExtrinsicModel) -> np.ndarray:
    """
    Horizontally concatenate rotation and translation into a 3x4 matrix.
    """
    return np.hstack([
        np.asarray(extrinsics.rotation, dtype=np.float64).reshape(3, 3),
        np.asarray(extrinsics.translation, dtype=np.float64).reshape(3, 1),
    ])


def extrinsics_from_matrix(matrix: np.ndarray) -> ExtrinsicModel:
    """
    Split a 3x4 [R | t] matrix back into an ExtrinsicModel.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape != (3, 4):
        raise ValueError(f"Expected a 3x4 matrix, got {matrix.shape}")
    return ExtrinsicModel(rotation=matrix[:, 0:3].copy(), translation=matrix[:, 3].copy())


def extrinsics_to_vector(extrinsics: ExtrinsicModel) -> np.ndarray:
    """
    Convert extrinsics to 6-element vector.
    [rodrigues_x, rodrigues_y, rodrigues_z, tx, ty, tz]
    """
    import cv2

    rodrigues = cv2.Rodrigues(np.asarray(extrinsics.rotation, dtype=np.float64))[0][:, 0]
    return np.hstack([rodrigues, np.asarray(extrinsics.translation, dtype=np.float64).ravel()])


def extrinsics_from_vector(vector: np.ndarray) -> ExtrinsicModel:
    """
    Create extrinsics from 6-element vector.
    """
    import cv2

    vector = np.asarray(vector, dtype=np.float64).ravel()
    rotation = cv2.Rodrigues(vector[0:3])[0]
    translation = vector[3:6].copy()
    return ExtrinsicModel(rotation=rotation, translation=translation)
