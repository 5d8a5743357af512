"""
Calibration module for camcalib.

All functions are pure - they take dataclasses and arrays and return dataclasses.
No threading, no state management. CalibrationSession handles accumulation.
"""

from .chessboard import (
    board_image_corners,
    create_world_pattern,
    generate_board_image,
    replicate_world_pattern,
)

from .intrinsic import (
    detect_chessboard_corners,
    draw_detection,
    count_distinct_views,
    calibrate_intrinsics,
    compute_reprojection_error,
)

from .extrinsic import (
    DEFAULT_CORRESPONDENCES,
    reprojection_errors,
    solve_pose_ransac,
    solve_extrinsics,
)

__all__ = [
    # Chessboard
    "board_image_corners",
    "create_world_pattern",
    "generate_board_image",
    "replicate_world_pattern",
    # Intrinsic
    "detect_chessboard_corners",
    "draw_detection",
    "count_distinct_views",
    "calibrate_intrinsics",
    "compute_reprojection_error",
    # Extrinsic
    "DEFAULT_CORRESPONDENCES",
    "reprojection_errors",
    "solve_pose_ransac",
    "solve_extrinsics",
]
