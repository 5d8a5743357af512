"""
Tests for camcalib.calibration.extrinsic.
"""

import cv2
import numpy as np
import pytest

from camcalib.calibration.extrinsic import (
    DEFAULT_CORRESPONDENCES,
    reprojection_errors,
    solve_extrinsics,
    solve_pose_ransac,
)
from camcalib.errors import PoseNotFound
from camcalib.matrix_file import load_extrinsics
from camcalib.types import CorrespondenceSet, PoseConfig


TRUE_RVEC = np.array([0.1, -0.2, 0.05])
TRUE_TVEC = np.array([0.05, -0.02, 1.5])

WORLD_POINTS = np.array([
    [-0.20, -0.10, 0.00],
    [0.20, -0.15, 0.10],
    [0.15, 0.20, -0.05],
    [-0.10, 0.18, 0.08],
    [0.00, 0.00, 0.12],
    [-0.18, 0.05, -0.07],
    [0.08, -0.20, -0.03],
    [0.22, 0.08, 0.04],
])


def _project(world, intrinsics, rvec=TRUE_RVEC, tvec=TRUE_TVEC):
    projected, _ = cv2.projectPoints(world, rvec, tvec, intrinsics.matrix, intrinsics.distortion)
    return projected[:, 0, :]


class TestSolvePoseRansac:
    def test_four_exact_correspondences(self, sample_intrinsics):
        world = WORLD_POINTS[:4]
        image = _project(world, sample_intrinsics)
        correspondences = CorrespondenceSet.from_arrays(world, image)

        extrinsics = solve_pose_ransac(correspondences, sample_intrinsics)

        rvec = cv2.Rodrigues(extrinsics.rotation)[0]
        errors = reprojection_errors(world, image, rvec, extrinsics.translation, sample_intrinsics)
        assert np.all(errors < 0.5)
        assert len(extrinsics.inliers) == 4
        assert extrinsics.matrix.shape == (3, 4)

    def test_recovers_ground_truth(self, sample_intrinsics):
        image = _project(WORLD_POINTS, sample_intrinsics)
        correspondences = CorrespondenceSet.from_arrays(WORLD_POINTS, image)

        extrinsics = solve_pose_ransac(correspondences, sample_intrinsics)

        np.testing.assert_allclose(extrinsics.rotation, cv2.Rodrigues(TRUE_RVEC)[0], atol=1e-5)
        np.testing.assert_allclose(extrinsics.translation, TRUE_TVEC, atol=1e-5)
        assert extrinsics.rms < 1e-3

    def test_rotation_is_orthonormal(self, sample_intrinsics):
        image = _project(WORLD_POINTS, sample_intrinsics)
        extrinsics = solve_pose_ransac(
            CorrespondenceSet.from_arrays(WORLD_POINTS, image), sample_intrinsics
        )

        np.testing.assert_allclose(extrinsics.rotation @ extrinsics.rotation.T, np.eye(3), atol=1e-9)
        assert np.linalg.det(extrinsics.rotation) == pytest.approx(1.0)

    def test_rejects_gross_outlier(self, sample_intrinsics):
        image = _project(WORLD_POINTS, sample_intrinsics)
        image[2] += [200.0, 0.0]
        correspondences = CorrespondenceSet.from_arrays(WORLD_POINTS, image)

        extrinsics = solve_pose_ransac(correspondences, sample_intrinsics)

        assert 2 not in extrinsics.inliers
        assert len(extrinsics.inliers) == len(WORLD_POINTS) - 1
        np.testing.assert_allclose(extrinsics.translation, TRUE_TVEC, atol=1e-5)

    def test_four_correspondences_with_one_outlier(self, sample_intrinsics):
        """The returned pose is supported by exactly three pairs."""
        world = WORLD_POINTS[:4]
        image = _project(world, sample_intrinsics)
        image[3] += [200.0, 0.0]
        correspondences = CorrespondenceSet.from_arrays(world, image)

        extrinsics = solve_pose_ransac(correspondences, sample_intrinsics)

        assert len(extrinsics.inliers) == 3
        rvec = cv2.Rodrigues(extrinsics.rotation)[0]
        errors = reprojection_errors(world, image, rvec, extrinsics.translation, sample_intrinsics)
        assert np.all(errors[extrinsics.inliers] < 0.5)

    def test_pose_not_found(self, sample_intrinsics):
        rng = np.random.default_rng(7)
        image = rng.uniform(0, 600, size=(len(WORLD_POINTS), 2))
        correspondences = CorrespondenceSet.from_arrays(WORLD_POINTS, image)

        with pytest.raises(PoseNotFound):
            solve_pose_ransac(correspondences, sample_intrinsics, PoseConfig(min_inliers=6))

    def test_requires_four_correspondences(self, sample_intrinsics):
        world = WORLD_POINTS[:3]
        image = _project(world, sample_intrinsics)

        with pytest.raises(ValueError, match="at least 4"):
            solve_pose_ransac(CorrespondenceSet.from_arrays(world, image), sample_intrinsics)

    def test_seeded_runs_match(self, sample_intrinsics):
        image = _project(WORLD_POINTS, sample_intrinsics)
        image[5] += [0.0, 150.0]
        correspondences = CorrespondenceSet.from_arrays(WORLD_POINTS, image)

        a = solve_pose_ransac(correspondences, sample_intrinsics, PoseConfig(seed=11))
        b = solve_pose_ransac(correspondences, sample_intrinsics, PoseConfig(seed=11))
        np.testing.assert_array_equal(a.matrix, b.matrix)


class TestReprojectionErrors:
    def test_points_behind_camera(self, sample_intrinsics):
        world = np.array([[0.0, 0.0, -2.0], [0.0, 0.0, 0.0]])
        image = np.array([[400.0, 300.0], [400.0, 300.0]])
        errors = reprojection_errors(world, image, np.zeros(3), np.array([0.0, 0.0, 1.0]), sample_intrinsics)

        assert np.isinf(errors[0])
        assert errors[1] == pytest.approx(0.0)


class TestSolveExtrinsics:
    def test_writes_timestamped_file(self, sample_intrinsics, temp_dir, fixed_time):
        image = _project(WORLD_POINTS, sample_intrinsics)
        correspondences = CorrespondenceSet.from_arrays(WORLD_POINTS, image)

        extrinsics, path = solve_extrinsics(
            sample_intrinsics, correspondences, output_dir=temp_dir, when=fixed_time
        )

        assert path == temp_dir / "ExtrinsicsOct-18-2026-14-03-22.csv"
        lines = path.read_text().splitlines()
        assert lines[0] == "3"
        assert lines[1] == "4"
        assert len(lines) == 2 + 12

        loaded = load_extrinsics(path)
        np.testing.assert_array_equal(loaded.matrix, extrinsics.matrix)

    def test_no_output_dir(self, sample_intrinsics):
        image = _project(WORLD_POINTS, sample_intrinsics)
        _, path = solve_extrinsics(
            sample_intrinsics, CorrespondenceSet.from_arrays(WORLD_POINTS, image)
        )
        assert path is None

    def test_unwritable_directory(self, sample_intrinsics, temp_dir):
        image = _project(WORLD_POINTS, sample_intrinsics)
        extrinsics, path = solve_extrinsics(
            sample_intrinsics,
            CorrespondenceSet.from_arrays(WORLD_POINTS, image),
            output_dir=temp_dir / "missing",
        )
        assert extrinsics is not None
        assert path is None


class TestDefaultCorrespondences:
    def test_four_pairs(self):
        assert len(DEFAULT_CORRESPONDENCES) == 4
        assert DEFAULT_CORRESPONDENCES.world_points.shape == (4, 3)
        assert DEFAULT_CORRESPONDENCES.image_points.shape == (4, 2)
