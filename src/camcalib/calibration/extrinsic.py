"""
Extrinsic camera calibration from fixed 3D-2D correspondences.

Pure functions - no classes, no state.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime
from pathlib import Path

import cv2
import numpy as np
from scipy.optimize import least_squares

from ..errors import PoseNotFound
from ..matrix_file import save_extrinsics
from ..types import (
    Correspondence,
    CorrespondenceSet,
    ExtrinsicModel,
    IntrinsicModel,
    PoseConfig,
    extrinsics_from_vector,
)

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 3  # Minimal set for P3P
MIN_CORRESPONDENCES = 4


# EM tracker positions (mm) and where they appear in the calibration image
DEFAULT_CORRESPONDENCES = CorrespondenceSet(
    pairs=(
        Correspondence(world=(-104.562, -103.861, 86.281), image=(112.25, 46.5)),
        Correspondence(world=(76.7444, -98.59, 89.09), image=(460.25, 52.0)),
        Correspondence(world=(85.2069, -423.835, 113.24), image=(511.25, 700.75)),
        Correspondence(world=(-97.4618, -419.716, 115.433), image=(126.5, 715.0)),
    )
)


# ============================================================================
# Reprojection
# ============================================================================


def reprojection_errors(
    world_points: np.ndarray,
    image_points: np.ndarray,
    rvec: np.ndarray,
    tvec: np.ndarray,
    intrinsics: IntrinsicModel,
) -> np.ndarray:
    """
    Per-point reprojection error in pixels.

    Points that land behind the camera get an infinite error.
    """
    rvec = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
    tvec = np.asarray(tvec, dtype=np.float64).reshape(3, 1)

    projected, _ = cv2.projectPoints(
        world_points, rvec, tvec, intrinsics.matrix, intrinsics.distortion
    )
    errors = np.linalg.norm(projected[:, 0, :] - image_points, axis=1)

    rotation = cv2.Rodrigues(rvec)[0]
    depth = (world_points @ rotation.T + tvec.ravel())[:, 2]
    errors[depth <= 0] = np.inf
    return errors


def _pose_residuals(
    params: np.ndarray,
    world_points: np.ndarray,
    image_points: np.ndarray,
    intrinsics: IntrinsicModel,
) -> np.ndarray:
    projected, _ = cv2.projectPoints(
        world_points, params[0:3], params[3:6], intrinsics.matrix, intrinsics.distortion
    )
    return (projected[:, 0, :] - image_points).ravel()


# ============================================================================
# RANSAC Pose
# ============================================================================


def _hypotheses(
    world_points: np.ndarray,
    image_points: np.ndarray,
    intrinsics: IntrinsicModel,
) -> list[tuple[np.ndarray, np.ndarray]]:
    """All P3P poses for a three-point sample (empty if degenerate)."""
    try:
        n_solutions, rvecs, tvecs = cv2.solveP3P(
            world_points.reshape(-1, 1, 3),
            image_points.reshape(-1, 1, 2),
            intrinsics.matrix,
            intrinsics.distortion,
            flags=cv2.SOLVEPNP_P3P,
        )
    except cv2.error:
        return []
    if not n_solutions:
        return []
    return [(np.asarray(r).ravel(), np.asarray(t).ravel()) for r, t in zip(rvecs, tvecs)]


def _required_iterations(inlier_ratio: float, confidence: float, limit: int) -> int:
    """Iterations needed to draw an all-inlier sample with the given confidence."""
    p_good = inlier_ratio ** SAMPLE_SIZE
    if p_good >= 1.0:
        return 0
    if p_good <= 0.0:
        return limit
    needed = math.log(1.0 - confidence) / math.log(1.0 - p_good)
    return min(limit, int(math.ceil(needed)))


def solve_pose_ransac(
    correspondences: CorrespondenceSet,
    intrinsics: IntrinsicModel,
    config: PoseConfig = PoseConfig(),
) -> ExtrinsicModel:
    """
    Estimate camera pose with random-sample consensus.

    Repeatedly samples three correspondences, hypothesizes poses with P3P,
    and scores every correspondence under the reprojection threshold. The
    pose with the most inliers (lowest inlier error on ties) is refined on
    its inliers with least squares.

    Args:
        correspondences: At least 4 world/image pairs
        intrinsics: Camera matrix and distortion
        config: RANSAC parameters

    Returns:
        ExtrinsicModel with rotation, translation and inlier indices

    Raises:
        ValueError: If fewer than 4 correspondences are given
        PoseNotFound: If no hypothesis reaches config.min_inliers
    """
    n = len(correspondences)
    if n < MIN_CORRESPONDENCES:
        raise ValueError(
            f"Insufficient correspondences for pose: {n} (need at least {MIN_CORRESPONDENCES})"
        )

    world = correspondences.world_points
    image = correspondences.image_points
    threshold = config.reprojection_error
    rng = np.random.default_rng(config.seed)

    best_inliers = np.array([], dtype=np.int32)
    best_error = np.inf
    best_params = None

    iteration_limit = config.iterations
    iteration = 0
    while iteration < iteration_limit:
        iteration += 1
        sample = rng.choice(n, size=SAMPLE_SIZE, replace=False)

        for rvec, tvec in _hypotheses(world[sample], image[sample], intrinsics):
            errors = reprojection_errors(world, image, rvec, tvec, intrinsics)
            inliers = np.flatnonzero(errors <= threshold)
            if len(inliers) == 0:
                continue
            mean_error = float(np.mean(errors[inliers]))

            if len(inliers) > len(best_inliers) or (
                len(inliers) == len(best_inliers) and mean_error < best_error
            ):
                best_inliers = inliers
                best_error = mean_error
                best_params = np.hstack([rvec, tvec])
                iteration_limit = min(
                    iteration_limit,
                    _required_iterations(len(inliers) / n, config.confidence, config.iterations),
                )

    if best_params is None or len(best_inliers) < config.min_inliers:
        raise PoseNotFound(
            f"Best pose has {len(best_inliers)} inliers (need at least {config.min_inliers})"
        )

    params, inliers = _refine(world, image, best_params, best_inliers, intrinsics, threshold)

    residuals = _pose_residuals(params, world[inliers], image[inliers], intrinsics)
    rms = float(np.sqrt(np.mean(np.sum(residuals.reshape(-1, 2) ** 2, axis=1))))

    logger.info(
        "Pose found after %d iterations: %d/%d inliers, rms=%.4f",
        iteration, len(inliers), n, rms,
    )

    model = extrinsics_from_vector(params)
    return ExtrinsicModel(
        rotation=model.rotation,
        translation=model.translation,
        inliers=inliers.astype(np.int32),
        rms=rms,
    )


def _refine(
    world: np.ndarray,
    image: np.ndarray,
    params: np.ndarray,
    inliers: np.ndarray,
    intrinsics: IntrinsicModel,
    threshold: float,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Least-squares refinement of a pose on its inliers.

    Falls back to the unrefined pose if refinement loses support.
    """
    result = least_squares(
        _pose_residuals,
        params,
        method="trf",
        ftol=1e-10,
        xtol=1e-10,
        args=(world[inliers], image[inliers], intrinsics),
    )

    errors = reprojection_errors(world, image, result.x[0:3], result.x[3:6], intrinsics)
    refined_inliers = np.flatnonzero(errors <= threshold)
    if len(refined_inliers) < len(inliers):
        return params, inliers
    return result.x, refined_inliers


# ============================================================================
# Solve + Persist
# ============================================================================


def solve_extrinsics(
    intrinsics: IntrinsicModel,
    correspondences: CorrespondenceSet = DEFAULT_CORRESPONDENCES,
    output_dir: Path | None = None,
    config: PoseConfig = PoseConfig(),
    when: datetime | None = None,
) -> tuple[ExtrinsicModel, Path | None]:
    """
    Solve the camera pose and write it to Extrinsics<timestamp>.csv.

    Args:
        intrinsics: Previously solved intrinsic model
        correspondences: Fixed world/image pairs
        output_dir: Directory for the result file (None skips writing)
        config: RANSAC parameters
        when: Timestamp for the file name (default: now)

    Returns:
        (extrinsics, path) where path is None if nothing was written

    Raises:
        PoseNotFound: If no supported pose exists
    """
    extrinsics = solve_pose_ransac(correspondences, intrinsics, config)

    path = None
    if output_dir is not None:
        path = save_extrinsics(extrinsics, output_dir, when)
        if path is None:
            logger.warning("Extrinsics solved but could not be written to %s", output_dir)

    return extrinsics, path
