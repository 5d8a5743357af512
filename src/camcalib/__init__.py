# camcalib - chessboard camera calibration and pose estimation

__version__ = "0.1.0"

# Core types
from camcalib.types import (
    BoardConfig,
    CalibrationFrame,
    IntrinsicModel,
    ExtrinsicModel,
    Correspondence,
    CorrespondenceSet,
    SessionConfig,
    CaptureConfig,
    SolverConfig,
    PoseConfig,
    ProjectConfig,
)

# Errors
from camcalib.errors import (
    CalibrationError,
    DeviceUnavailable,
    InsufficientFrames,
    InvalidState,
    DetectionMismatch,
    PoorConditioning,
    PoseNotFound,
    MalformedFile,
)

# Matrix files
from camcalib.matrix_file import (
    encode_matrix,
    decode_matrix,
    save_intrinsics,
    load_intrinsics,
    save_extrinsics,
    load_extrinsics,
)

# Configuration
from camcalib.config import (
    load_project_config,
    save_project_config,
    load_correspondences,
)

# Calibration
from camcalib.calibration import (
    create_world_pattern,
    detect_chessboard_corners,
    calibrate_intrinsics,
    solve_pose_ransac,
    solve_extrinsics,
)

# Session
from camcalib.session import (
    CalibrationSession,
    SessionState,
    SolveOutcome,
    SolveStatus,
)

__all__ = [
    # Core types
    "BoardConfig",
    "CalibrationFrame",
    "IntrinsicModel",
    "ExtrinsicModel",
    "Correspondence",
    "CorrespondenceSet",
    "SessionConfig",
    "CaptureConfig",
    "SolverConfig",
    "PoseConfig",
    "ProjectConfig",
    # Errors
    "CalibrationError",
    "DeviceUnavailable",
    "InsufficientFrames",
    "InvalidState",
    "DetectionMismatch",
    "PoorConditioning",
    "PoseNotFound",
    "MalformedFile",
    # Matrix files
    "encode_matrix",
    "decode_matrix",
    "save_intrinsics",
    "load_intrinsics",
    "save_extrinsics",
    "load_extrinsics",
    # Configuration
    "load_project_config",
    "save_project_config",
    "load_correspondences",
    # Calibration
    "create_world_pattern",
    "detect_chessboard_corners",
    "calibrate_intrinsics",
    "solve_pose_ransac",
    "solve_extrinsics",
    # Session
    "CalibrationSession",
    "SessionState",
    "SolveOutcome",
    "SolveStatus",
]
