#!/usr/bin/env python3
"""
camcalib CLI - chessboard intrinsic calibration and extrinsic pose solving.

Usage:
    camcalib calibrate [-c config.toml]          - Interactive webcam calibration
    camcalib extrinsics INTRINSICS [-c ...]      - Solve camera pose from correspondences
    camcalib board [-o board.png]                - Render the chessboard pattern
    camcalib init-config PATH                    - Write a default config file
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from .types import ProjectConfig


def _load_config(path: Path | None) -> ProjectConfig:
    from .config import create_default_project_config, load_project_config

    if path is None:
        return create_default_project_config()
    return load_project_config(path)


def _cmd_calibrate(args: argparse.Namespace) -> int:
    import cv2

    from .capture import OpenCVDisplay, VideoCaptureSource, run_capture_loop
    from .errors import DeviceUnavailable
    from .session import CalibrationSession

    config = _load_config(args.config)
    session_config = config.session
    if args.output is not None:
        session_config = dataclasses.replace(session_config, output_dir=args.output)
    if args.min_frames is not None:
        session_config = dataclasses.replace(session_config, min_frames=args.min_frames)
    capture_config = config.capture
    if args.device is not None:
        capture_config = dataclasses.replace(capture_config, device=args.device)

    session = CalibrationSession(config.board, session_config, config.solver)

    print("Space: capture frame | Enter: calibrate and save | Esc: exit")
    try:
        with VideoCaptureSource(capture_config) as source:
            display = OpenCVDisplay()
            try:
                result = run_capture_loop(
                    session,
                    source,
                    display,
                    rotate=capture_config.rotate,
                    fps=capture_config.fps,
                )
            finally:
                display.close()
    except DeviceUnavailable as e:
        print(f"ERROR: {e}")
        return 1
    except cv2.error as e:
        print(f"ERROR: {e}")
        return 1
    except OSError as e:
        print(f"ERROR: could not save session files: {e}")
        return 1

    print(f"\nFrames read: {result.frames_read}, accepted: {result.accepted}")
    if session.intrinsics is not None:
        fx, fy = session.intrinsics.focal_length
        cx, cy = session.intrinsics.principal_point
        print(f"  fx={fx:.2f} fy={fy:.2f} cx={cx:.2f} cy={cy:.2f} rms={session.intrinsics.rms:.4f}")
        print(f"  Saved to {session.directory}")
    return 0


def _cmd_extrinsics(args: argparse.Namespace) -> int:
    from .calibration.extrinsic import DEFAULT_CORRESPONDENCES, solve_extrinsics
    from .config import load_correspondences
    from .errors import MalformedFile, PoseNotFound
    from .matrix_file import load_intrinsics

    config = _load_config(args.config)

    try:
        intrinsics = load_intrinsics(args.intrinsics)
    except MalformedFile as e:
        print(f"ERROR: {e}")
        return 1

    correspondence_path = args.correspondences or config.correspondences
    if correspondence_path is not None:
        try:
            correspondences = load_correspondences(correspondence_path)
        except (OSError, ValueError) as e:
            print(f"ERROR: {e}")
            return 1
    else:
        correspondences = DEFAULT_CORRESPONDENCES

    try:
        extrinsics, path = solve_extrinsics(
            intrinsics,
            correspondences,
            output_dir=args.output,
            config=config.pose,
        )
    except (PoseNotFound, ValueError) as e:
        print(f"ERROR: {e}")
        return 1

    print("Extrinsic matrix [R | t]:")
    for row in extrinsics.matrix:
        print("  " + "  ".join(f"{v: .6f}" for v in row))
    print(f"Inliers: {len(extrinsics.inliers)}/{len(correspondences)} (rms={extrinsics.rms:.4f}px)")
    if path is None:
        print("ERROR: could not write extrinsics file")
        return 1
    print(f"Saved to {path}")
    return 0


def _cmd_board(args: argparse.Namespace) -> int:
    import cv2

    from .calibration.chessboard import generate_board_image

    config = _load_config(args.config)
    img = generate_board_image(config.board, square_px=args.square_px)
    if not cv2.imwrite(str(args.output), img):
        print(f"ERROR: could not write {args.output}")
        return 1
    print(f"Wrote {config.board.cols}x{config.board.rows} board to {args.output}")
    return 0


def _cmd_init_config(args: argparse.Namespace) -> int:
    from .config import create_default_project_config, save_project_config

    save_project_config(create_default_project_config(), args.path)
    print(f"Wrote default config to {args.path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="camcalib",
        description="Chessboard camera calibration and pose estimation",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    calibrate = subparsers.add_parser("calibrate", help="Interactive webcam calibration")
    calibrate.add_argument("-c", "--config", type=Path, help="Project config TOML")
    calibrate.add_argument("-o", "--output", type=Path, help="Root directory for session folders")
    calibrate.add_argument("-d", "--device", type=int, help="Video device index")
    calibrate.add_argument("--min-frames", type=int, help="Frames required before solving")
    calibrate.set_defaults(func=_cmd_calibrate)

    extrinsics = subparsers.add_parser("extrinsics", help="Solve camera pose")
    extrinsics.add_argument("intrinsics", type=Path, help="IntrinsicMatrixOpenCV.txt file")
    extrinsics.add_argument("-c", "--config", type=Path, help="Project config TOML")
    extrinsics.add_argument("--correspondences", type=Path, help="CSV of X,Y,Z,u,v rows")
    extrinsics.add_argument("-o", "--output", type=Path, default=Path("."),
                            help="Directory for Extrinsics<timestamp>.csv (default: .)")
    extrinsics.set_defaults(func=_cmd_extrinsics)

    board = subparsers.add_parser("board", help="Render the chessboard pattern")
    board.add_argument("-c", "--config", type=Path, help="Project config TOML")
    board.add_argument("-o", "--output", type=Path, default=Path("board.png"),
                       help="Output image (default: board.png)")
    board.add_argument("--square-px", type=int, default=80, help="Square size in pixels")
    board.set_defaults(func=_cmd_board)

    init_config = subparsers.add_parser("init-config", help="Write a default config file")
    init_config.add_argument("path", type=Path, help="Destination TOML path")
    init_config.set_defaults(func=_cmd_init_config)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command is None:
        print(__doc__)
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
