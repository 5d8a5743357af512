"""
Configuration loading/saving.

Pure functions operating on dataclasses.
- TOML for project configuration
- CSV for extrinsic correspondence sets
"""

from __future__ import annotations

import csv
from pathlib import Path

import rtoml

from .types import (
    BoardConfig,
    CaptureConfig,
    Correspondence,
    CorrespondenceSet,
    PoseConfig,
    ProjectConfig,
    SessionConfig,
    SolverConfig,
)


# ============================================================================
# TOML Project Configuration
# ============================================================================


def load_project_config(path: Path) -> ProjectConfig:
    """
    Load project configuration from TOML file.

    Missing sections and keys fall back to defaults. A relative
    correspondences path is resolved against the config file's directory.

    Args:
        path: Path to config.toml file

    Returns:
        ProjectConfig dataclass
    """
    data = rtoml.load(Path(path))

    board_data = data.get("board", {})
    defaults = BoardConfig()
    board = BoardConfig(
        rows=int(board_data.get("rows", defaults.rows)),
        cols=int(board_data.get("cols", defaults.cols)),
        square_size=float(board_data.get("square_size", defaults.square_size)),
    )

    session_data = data.get("session", {})
    session = SessionConfig(
        min_frames=int(session_data.get("min_frames", 11)),
        output_dir=Path(session_data.get("output_dir", ".")),
        image_format=session_data.get("image_format", "png"),
    )

    capture_data = data.get("capture", {})
    capture = CaptureConfig(
        device=int(capture_data.get("device", 0)),
        fps=int(capture_data.get("fps", 20)),
        rotate=bool(capture_data.get("rotate", True)),
        change_resolution=bool(capture_data.get("change_resolution", True)),
        width=int(capture_data.get("width", 800)),
        height=int(capture_data.get("height", 600)),
    )

    solver_data = data.get("solver", {})
    solver = SolverConfig(
        max_rms_px=float(solver_data.get("max_rms_px", 2.0)),
        max_relative_std=float(solver_data.get("max_relative_std", 0.1)),
        min_distinct_views=int(solver_data.get("min_distinct_views", 3)),
        min_view_separation_px=float(solver_data.get("min_view_separation_px", 2.0)),
        rational_model=bool(solver_data.get("rational_model", True)),
        max_iterations=int(solver_data.get("max_iterations", 100)),
    )

    pose_data = data.get("pose", {})
    seed = pose_data.get("seed", 0)
    pose = PoseConfig(
        iterations=int(pose_data.get("iterations", 100)),
        reprojection_error=float(pose_data.get("reprojection_error", 2.0)),
        confidence=float(pose_data.get("confidence", 0.99)),
        min_inliers=int(pose_data.get("min_inliers", 3)),
        seed=None if seed is None or seed == "random" else int(seed),
    )

    correspondences = data.get("correspondences")
    if correspondences is not None:
        correspondences = Path(correspondences)
        if not correspondences.is_absolute():
            correspondences = Path(path).parent / correspondences

    return ProjectConfig(
        board=board,
        session=session,
        capture=capture,
        solver=solver,
        pose=pose,
        correspondences=correspondences,
    )


def save_project_config(config: ProjectConfig, path: Path) -> None:
    """
    Save project configuration to TOML file.

    Args:
        config: ProjectConfig dataclass
        path: Path to save config.toml
    """
    data = {
        "board": {
            "rows": config.board.rows,
            "cols": config.board.cols,
            "square_size": config.board.square_size,
        },
        "session": {
            "min_frames": config.session.min_frames,
            "output_dir": str(config.session.output_dir),
            "image_format": config.session.image_format,
        },
        "capture": {
            "device": config.capture.device,
            "fps": config.capture.fps,
            "rotate": config.capture.rotate,
            "change_resolution": config.capture.change_resolution,
            "width": config.capture.width,
            "height": config.capture.height,
        },
        "solver": {
            "max_rms_px": config.solver.max_rms_px,
            "max_relative_std": config.solver.max_relative_std,
            "min_distinct_views": config.solver.min_distinct_views,
            "min_view_separation_px": config.solver.min_view_separation_px,
            "rational_model": config.solver.rational_model,
            "max_iterations": config.solver.max_iterations,
        },
        "pose": {
            "iterations": config.pose.iterations,
            "reprojection_error": config.pose.reprojection_error,
            "confidence": config.pose.confidence,
            "min_inliers": config.pose.min_inliers,
            "seed": "random" if config.pose.seed is None else config.pose.seed,
        },
    }

    if config.correspondences is not None:
        data["correspondences"] = str(config.correspondences)

    # Ensure parent directory exists
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        rtoml.dump(data, f)


def create_default_project_config() -> ProjectConfig:
    """
    Create a default project configuration.

    Matches the 9x6 inner-corner board with 19.08mm squares.
    """
    return ProjectConfig()


# ============================================================================
# Correspondence CSV
# ============================================================================


def load_correspondences(path: Path) -> CorrespondenceSet:
    """
    Load world/image pairs from a CSV of X,Y,Z,u,v rows.

    A non-numeric first row is treated as a header. Blank lines and
    lines starting with # are skipped.

    Raises:
        ValueError: If a row does not have five numeric fields
    """
    pairs = []
    with open(path, newline="") as f:
        reader = csv.reader(f)
        for line_no, row in enumerate(reader, start=1):
            if not row or not "".join(row).strip() or row[0].lstrip().startswith("#"):
                continue
            try:
                values = [float(v) for v in row]
            except ValueError:
                if line_no == 1:
                    continue  # Header
                raise ValueError(f"{path}:{line_no}: non-numeric correspondence {row}") from None
            if len(values) != 5:
                raise ValueError(f"{path}:{line_no}: expected 5 fields (X,Y,Z,u,v), got {len(values)}")
            pairs.append(Correspondence(world=tuple(values[0:3]), image=tuple(values[3:5])))

    return CorrespondenceSet(pairs=tuple(pairs))


def save_correspondences(correspondences: CorrespondenceSet, path: Path) -> None:
    """Write world/image pairs as X,Y,Z,u,v rows with a header."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(["X", "Y", "Z", "u", "v"])
        for pair in correspondences.pairs:
            writer.writerow([*pair.world, *pair.image])
