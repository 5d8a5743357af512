"""
Intrinsic camera calibration.

Pure functions - no threading, no state. Caller manages frame collection.
"""

from __future__ import annotations

import logging

import cv2
import numpy as np

from ..errors import InsufficientFrames, PoorConditioning
from ..types import (
    DISTORTION_COEFFICIENT_COUNT,
    BoardConfig,
    IntrinsicModel,
    SolverConfig,
)

logger = logging.getLogger(__name__)

FIND_FLAGS = cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_NORMALIZE_IMAGE
SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 30, 0.001)


# ============================================================================
# Chessboard Detection
# ============================================================================


def detect_chessboard_corners(
    frame: np.ndarray,
    board: BoardConfig,
) -> tuple[bool, np.ndarray]:
    """
    Detect the inner corners of the chessboard in a single frame.

    Args:
        frame: BGR image (h, w, 3) or grayscale (h, w)
        board: BoardConfig for the pattern

    Returns:
        (found, corners) where corners is (rows * cols, 2) float32 when
        found and an empty (0, 2) array otherwise
    """
    gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame

    found, corners = cv2.findChessboardCorners(gray, board.pattern_size, None, FIND_FLAGS)

    if not found or corners is None:
        logger.debug("Chessboard %dx%d not found", board.cols, board.rows)
        return False, np.array([], dtype=np.float32).reshape(0, 2)

    # Sub-pixel refinement
    try:
        corners = cv2.cornerSubPix(gray, corners, (11, 11), (-1, -1), SUBPIX_CRITERIA)
    except cv2.error:
        logger.debug("Sub-pixel refinement failed, using raw corners")

    return True, corners.reshape(-1, 2).astype(np.float32)


def draw_detection(
    frame: np.ndarray,
    board: BoardConfig,
    corners: np.ndarray,
    found: bool,
) -> np.ndarray:
    """
    Return a copy of the frame with detected corners drawn on it.

    Diagnostic only - the original frame is left untouched.
    """
    overlay = frame.copy()
    if corners is not None and len(corners) > 0:
        cv2.drawChessboardCorners(
            overlay,
            board.pattern_size,
            np.asarray(corners, dtype=np.float32).reshape(-1, 1, 2),
            found,
        )
    return overlay


# ============================================================================
# Calibration
# ============================================================================


def count_distinct_views(
    image_points: list[np.ndarray],
    min_separation_px: float = 2.0,
) -> int:
    """
    Count views that differ meaningfully from each other.

    Two views are the same when their mean corner displacement is below
    min_separation_px.
    """
    representatives: list[np.ndarray] = []
    for points in image_points:
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        is_new = all(
            np.mean(np.linalg.norm(points - rep, axis=1)) >= min_separation_px
            for rep in representatives
        )
        if is_new:
            representatives.append(points)
    return len(representatives)


def calibrate_intrinsics(
    image_points: list[np.ndarray],
    object_points: list[np.ndarray],
    image_size: tuple[int, int],
    config: SolverConfig = SolverConfig(),
) -> IntrinsicModel:
    """
    Calibrate camera intrinsics from chessboard views.

    Minimizes reprojection error over all views and corners at once.
    Distortion starts at zero for all 8 coefficients. Per-view poses
    are computed by the optimization and discarded.

    Args:
        image_points: List of (n, 2) detected corners, one per view
        object_points: List of (n, 3) board points, one per view
        image_size: (width, height) of captured frames
        config: Acceptance thresholds

    Returns:
        IntrinsicModel with calibration results

    Raises:
        InsufficientFrames: If no views are given
        PoorConditioning: If the views lack diversity or the solve
            does not meet the acceptance thresholds
    """
    if len(image_points) != len(object_points):
        raise ValueError(
            f"Got {len(image_points)} image point sets but {len(object_points)} object point sets"
        )
    if len(image_points) < 1:
        raise InsufficientFrames(0, 1)

    valid_img = []
    valid_obj = []
    for img, obj in zip(image_points, object_points):
        img = np.asarray(img, dtype=np.float32).reshape(-1, 2)
        obj = np.asarray(obj, dtype=np.float32).reshape(-1, 3)
        if len(img) != len(obj):
            raise ValueError(f"View has {len(img)} image points but {len(obj)} object points")
        valid_img.append(img)
        valid_obj.append(obj)

    distinct = count_distinct_views(valid_img, config.min_view_separation_px)
    if distinct < config.min_distinct_views:
        raise PoorConditioning(
            f"Views lack diversity: {distinct} distinct of {len(valid_img)} "
            f"(need at least {config.min_distinct_views})"
        )

    width, height = image_size
    distortion = np.zeros((DISTORTION_COEFFICIENT_COUNT, 1), dtype=np.float64)
    flags = cv2.CALIB_RATIONAL_MODEL if config.rational_model else 0
    criteria = (
        cv2.TERM_CRITERIA_COUNT + cv2.TERM_CRITERIA_EPS,
        config.max_iterations,
        np.finfo(np.float64).eps,
    )

    # Run OpenCV calibration
    try:
        error, matrix, dist, _rvecs, _tvecs, std_intrinsics, _std_extrinsics, _per_view = (
            cv2.calibrateCameraExtended(
                valid_obj,
                valid_img,
                (width, height),
                None,
                distortion,
                flags=flags,
                criteria=criteria,
            )
        )
    except cv2.error as e:
        raise PoorConditioning(f"Calibration failed: {e}") from e

    matrix = np.asarray(matrix, dtype=np.float64)
    coefficients = np.zeros(DISTORTION_COEFFICIENT_COUNT, dtype=np.float64)
    dist = np.asarray(dist, dtype=np.float64).ravel()[:DISTORTION_COEFFICIENT_COUNT]
    coefficients[: dist.size] = dist

    _check_convergence(
        error, matrix, coefficients, np.asarray(std_intrinsics).ravel(), image_size, config
    )

    logger.info(
        "Calibrated from %d views: fx=%.2f fy=%.2f cx=%.2f cy=%.2f rms=%.4f",
        len(valid_img), matrix[0, 0], matrix[1, 1], matrix[0, 2], matrix[1, 2], error,
    )

    return IntrinsicModel(
        matrix=matrix,
        distortion=coefficients,
        rms=float(error),
        frame_count=len(valid_img),
        image_size=(width, height),
    )


def _check_convergence(
    error: float,
    matrix: np.ndarray,
    distortion: np.ndarray,
    std_intrinsics: np.ndarray,
    image_size: tuple[int, int],
    config: SolverConfig,
) -> None:
    """
    Reject solves that are degenerate, non-finite or poorly constrained.
    """
    width, height = image_size

    if not (np.isfinite(error) and np.all(np.isfinite(matrix)) and np.all(np.isfinite(distortion))):
        raise PoorConditioning("Calibration produced non-finite values")

    fx, fy = matrix[0, 0], matrix[1, 1]
    cx, cy = matrix[0, 2], matrix[1, 2]

    if fx <= 0 or fy <= 0:
        raise PoorConditioning(f"Non-positive focal length: fx={fx:.3f} fy={fy:.3f}")
    if not (0 <= cx <= width and 0 <= cy <= height):
        raise PoorConditioning(f"Principal point ({cx:.1f}, {cy:.1f}) outside the image")
    if error > config.max_rms_px:
        raise PoorConditioning(
            f"Reprojection error {error:.3f}px exceeds {config.max_rms_px}px"
        )

    # fx, fy, cx, cy lead the OpenCV standard deviation vector
    if std_intrinsics.size >= 4:
        std = std_intrinsics[:4]
        if not np.all(np.isfinite(std)):
            raise PoorConditioning("Intrinsic uncertainty is not finite")
        relative = std / np.abs(np.array([fx, fy, cx, cy]))
        if np.any(relative > config.max_relative_std):
            raise PoorConditioning(
                f"Intrinsics poorly constrained: relative std {relative.max():.3f} "
                f"exceeds {config.max_relative_std}"
            )


def compute_reprojection_error(
    corners: np.ndarray,
    world_pattern: np.ndarray,
    intrinsics: IntrinsicModel,
) -> float | None:
    """
    Compute reprojection error for a single view.

    Args:
        corners: (n, 2) detected corners
        world_pattern: (n, 3) board points
        intrinsics: Camera intrinsics

    Returns:
        RMS reprojection error in pixels, or None if can't compute
    """
    if corners is None or len(corners) == 0:
        return None

    corners = np.asarray(corners, dtype=np.float64).reshape(-1, 2)
    world_pattern = np.asarray(world_pattern, dtype=np.float64).reshape(-1, 3)

    # Use solvePnP to get pose
    success, rvec, tvec = cv2.solvePnP(
        world_pattern,
        corners,
        intrinsics.matrix,
        intrinsics.distortion,
    )

    if not success:
        return None

    # Project points back
    projected, _ = cv2.projectPoints(
        world_pattern,
        rvec,
        tvec,
        intrinsics.matrix,
        intrinsics.distortion,
    )
    projected = projected[:, 0, :]

    error = np.sqrt(np.mean(np.sum((corners - projected) ** 2, axis=1)))
    return float(error)
