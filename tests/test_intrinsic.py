"""
Tests for camcalib.calibration.intrinsic.
"""

import numpy as np
import pytest

from camcalib.calibration.chessboard import (
    board_image_corners,
    create_world_pattern,
    generate_board_image,
)
from camcalib.calibration.intrinsic import (
    calibrate_intrinsics,
    compute_reprojection_error,
    count_distinct_views,
    detect_chessboard_corners,
    draw_detection,
)
from camcalib.errors import InsufficientFrames, PoorConditioning
from camcalib.types import SolverConfig


class TestDetectChessboardCorners:
    def test_detect_in_synthetic_image(self, board_config):
        """Detection should find every inner corner of a clean board image."""
        img = generate_board_image(board_config, square_px=40)

        found, corners = detect_chessboard_corners(img, board_config)

        assert found
        assert corners.shape == (board_config.corner_count, 2)
        assert corners.dtype == np.float32

    def test_detected_corners_match_board(self, board_config):
        img = generate_board_image(board_config, square_px=40)
        expected = board_image_corners(board_config, square_px=40)

        found, corners = detect_chessboard_corners(img, board_config)
        assert found

        # Every expected corner has a detection within a pixel
        distances = np.linalg.norm(expected[:, None, :] - corners[None, :, :], axis=2)
        assert np.all(distances.min(axis=1) < 1.0)

    def test_accepts_grayscale(self, board_config):
        img = generate_board_image(board_config, square_px=40)[:, :, 0]
        found, corners = detect_chessboard_corners(img, board_config)
        assert found
        assert len(corners) == board_config.corner_count

    def test_not_found_on_blank_image(self, board_config):
        blank = np.full((480, 640, 3), 255, dtype=np.uint8)
        found, corners = detect_chessboard_corners(blank, board_config)

        assert not found
        assert corners.shape == (0, 2)

    def test_deterministic(self, board_config):
        img = generate_board_image(board_config, square_px=40)
        _, a = detect_chessboard_corners(img, board_config)
        _, b = detect_chessboard_corners(img, board_config)
        np.testing.assert_array_equal(a, b)


class TestDrawDetection:
    def test_does_not_modify_input(self, board_config):
        img = generate_board_image(board_config, square_px=40)
        original = img.copy()
        found, corners = detect_chessboard_corners(img, board_config)

        overlay = draw_detection(img, board_config, corners, found)

        np.testing.assert_array_equal(img, original)
        assert overlay.shape == img.shape
        assert not np.array_equal(overlay, img)

    def test_empty_corners(self, board_config):
        img = np.zeros((100, 100, 3), dtype=np.uint8)
        overlay = draw_detection(img, board_config, np.zeros((0, 2), dtype=np.float32), False)
        np.testing.assert_array_equal(overlay, img)


class TestCountDistinctViews:
    def test_identical_views(self, synthetic_views):
        view = synthetic_views["image_points"][0]
        assert count_distinct_views([view] * 12) == 1

    def test_distinct_views(self, synthetic_views):
        assert count_distinct_views(synthetic_views["image_points"]) == 12

    def test_small_jitter_is_same_view(self, synthetic_views):
        view = synthetic_views["image_points"][0]
        assert count_distinct_views([view, view + 0.5]) == 1
        assert count_distinct_views([view, view + 5.0]) == 2


class TestCalibrateIntrinsics:
    def test_recovers_ground_truth(self, synthetic_views):
        """Noise-free views should recover the camera matrix closely."""
        intrinsics = calibrate_intrinsics(
            synthetic_views["image_points"],
            synthetic_views["object_points"],
            synthetic_views["image_size"],
        )

        truth = synthetic_views["matrix"]
        assert intrinsics.matrix.shape == (3, 3)
        np.testing.assert_allclose(intrinsics.matrix[0, 0], truth[0, 0], rtol=0.01)
        np.testing.assert_allclose(intrinsics.matrix[1, 1], truth[1, 1], rtol=0.01)
        np.testing.assert_allclose(intrinsics.matrix[0, 2], truth[0, 2], atol=4.0)
        np.testing.assert_allclose(intrinsics.matrix[1, 2], truth[1, 2], atol=4.0)
        assert intrinsics.rms < 0.1

    def test_result_metadata(self, synthetic_views):
        intrinsics = calibrate_intrinsics(
            synthetic_views["image_points"],
            synthetic_views["object_points"],
            synthetic_views["image_size"],
        )

        assert intrinsics.distortion.shape == (8,)
        assert np.all(np.isfinite(intrinsics.distortion))
        assert intrinsics.frame_count == 12
        assert intrinsics.image_size == (800, 600)
        assert intrinsics.matrix[0, 1] == pytest.approx(0.0)
        assert intrinsics.matrix[2, 2] == pytest.approx(1.0)

    def test_reprojection_error_per_view(self, synthetic_views):
        intrinsics = calibrate_intrinsics(
            synthetic_views["image_points"],
            synthetic_views["object_points"],
            synthetic_views["image_size"],
        )

        error = compute_reprojection_error(
            synthetic_views["image_points"][0],
            synthetic_views["object_points"][0],
            intrinsics,
        )
        assert error is not None
        assert error < 0.1

    def test_identical_views_are_poorly_conditioned(self, synthetic_views):
        view = synthetic_views["image_points"][0]
        pattern = synthetic_views["object_points"][0]

        with pytest.raises(PoorConditioning, match="diversity"):
            calibrate_intrinsics([view] * 12, [pattern] * 12, (800, 600))

    def test_rms_threshold(self, synthetic_views):
        """A tight RMS bound rejects views with corner noise."""
        rng = np.random.default_rng(3)
        noisy = [v + rng.normal(0, 1.5, v.shape).astype(np.float32)
                 for v in synthetic_views["image_points"]]

        with pytest.raises(PoorConditioning):
            calibrate_intrinsics(
                noisy,
                synthetic_views["object_points"],
                synthetic_views["image_size"],
                SolverConfig(max_rms_px=0.05),
            )

    def test_requires_views(self):
        with pytest.raises(InsufficientFrames):
            calibrate_intrinsics([], [], (800, 600))

    def test_mismatched_inputs(self, synthetic_views, board_config):
        with pytest.raises(ValueError):
            calibrate_intrinsics(
                synthetic_views["image_points"],
                synthetic_views["object_points"][:3],
                (800, 600),
            )

        short = [v[:10] for v in synthetic_views["image_points"]]
        pattern = create_world_pattern(board_config)
        with pytest.raises(ValueError):
            calibrate_intrinsics(short, [pattern] * len(short), (800, 600))


class TestComputeReprojectionError:
    def test_empty_corners(self, sample_intrinsics, board_config):
        pattern = create_world_pattern(board_config)
        assert compute_reprojection_error(np.zeros((0, 2)), pattern, sample_intrinsics) is None
