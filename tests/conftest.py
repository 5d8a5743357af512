"""
Pytest configuration and shared fixtures.
"""

import tempfile
from datetime import datetime
from pathlib import Path

import cv2
import numpy as np
import pytest


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after test."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def fixed_time():
    """Capture-start time used for session directory names."""
    return datetime(2026, 10, 18, 14, 3, 22)


@pytest.fixture
def sample_intrinsics_matrix():
    """Typical camera intrinsics matrix for an 800x600 image."""
    return np.array([
        [800.0, 0.0, 400.0],
        [0.0, 800.0, 300.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)


@pytest.fixture
def sample_distortion():
    """Typical distortion coefficients (k1, k2, p1, p2, k3, k4, k5, k6)."""
    return np.array([0.1, -0.25, 0.001, -0.001, 0.1, 0.0, 0.0, 0.0], dtype=np.float64)


@pytest.fixture
def board_config():
    """9x6 inner-corner chessboard with 19.08mm squares."""
    from camcalib.types import BoardConfig
    return BoardConfig(rows=6, cols=9, square_size=0.01908)


@pytest.fixture
def sample_intrinsics(sample_intrinsics_matrix):
    """Distortion-free IntrinsicModel."""
    from camcalib.types import IntrinsicModel
    return IntrinsicModel(
        matrix=sample_intrinsics_matrix,
        distortion=np.zeros(8, dtype=np.float64),
        rms=0.2,
        frame_count=12,
        image_size=(800, 600),
    )


# Board tilts (radians) for the synthetic views
VIEW_ROTATIONS = [
    (0.30, 0.00, 0.00),
    (-0.30, 0.00, 0.00),
    (0.00, 0.30, 0.00),
    (0.00, -0.30, 0.00),
    (0.20, 0.20, 0.10),
    (-0.20, 0.20, -0.10),
    (0.20, -0.20, 0.20),
    (-0.20, -0.20, -0.20),
    (0.35, 0.10, 0.00),
    (0.10, -0.35, 0.05),
    (-0.25, 0.15, 0.30),
    (0.15, 0.30, -0.30),
]


@pytest.fixture
def synthetic_views(board_config, sample_intrinsics_matrix):
    """
    Noise-free projections of the board from 12 distinct poses.

    Returns dict with image_points, object_points, matrix and image_size.
    """
    from camcalib.calibration.chessboard import create_world_pattern

    pattern = create_world_pattern(board_config).astype(np.float64)
    center = pattern.mean(axis=0)

    image_points = []
    for i, angles in enumerate(VIEW_ROTATIONS):
        rvec = np.array(angles, dtype=np.float64)
        rotation = cv2.Rodrigues(rvec)[0]
        offset = np.array([
            0.02 * ((i % 3) - 1),
            0.015 * ((i % 2) * 2 - 1),
            0.40 + 0.03 * (i % 4),
        ])
        tvec = offset - rotation @ center

        projected, _ = cv2.projectPoints(
            pattern, rvec, tvec, sample_intrinsics_matrix, np.zeros(5)
        )
        image_points.append(projected[:, 0, :].astype(np.float32))

    return {
        "image_points": image_points,
        "object_points": [pattern.astype(np.float32)] * len(image_points),
        "matrix": sample_intrinsics_matrix,
        "image_size": (800, 600),
    }
