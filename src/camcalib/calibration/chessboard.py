"""
Chessboard pattern geometry and utilities.

Pure functions - no classes, no state.
"""

from __future__ import annotations

import cv2
import numpy as np

from ..types import BoardConfig


# ============================================================================
# World Pattern
# ============================================================================


def create_world_pattern(board: BoardConfig) -> np.ndarray:
    """
    Generate the 3D corner positions of the board in its own frame.

    Corners are ordered row-major: index i * cols + j sits at
    (j * square_size, i * square_size, 0).

    Args:
        board: BoardConfig with grid dimensions and square size

    Returns:
        (rows * cols, 3) float32 array
    """
    if board.rows <= 0 or board.cols <= 0:
        raise ValueError(f"Board must have positive dimensions, got {board.rows}x{board.cols}")

    jj, ii = np.meshgrid(np.arange(board.cols), np.arange(board.rows))
    pattern = np.zeros((board.corner_count, 3), dtype=np.float32)
    pattern[:, 0] = jj.ravel() * board.square_size
    pattern[:, 1] = ii.ravel() * board.square_size
    return pattern


def replicate_world_pattern(pattern: np.ndarray, count: int) -> list[np.ndarray]:
    """
    Repeat one world pattern for each of `count` views.

    The board is rigid, so every view shares the same object points.
    """
    return [pattern] * count


# ============================================================================
# Board Image
# ============================================================================


def generate_board_image(
    board: BoardConfig,
    square_px: int = 40,
    margin_px: int | None = None,
) -> np.ndarray:
    """
    Render an image of the chessboard.

    The board has (rows + 1) x (cols + 1) squares with a black square in the
    top-left corner, surrounded by a white margin (needed for detection).

    Args:
        board: BoardConfig with grid dimensions
        square_px: Edge length of one square in pixels
        margin_px: White border width (defaults to one square)

    Returns:
        BGR image as numpy array
    """
    if margin_px is None:
        margin_px = square_px

    squares_x = board.cols + 1
    squares_y = board.rows + 1
    height = squares_y * square_px + 2 * margin_px
    width = squares_x * square_px + 2 * margin_px

    img = np.full((height, width), 255, dtype=np.uint8)
    for i in range(squares_y):
        for j in range(squares_x):
            if (i + j) % 2 == 0:
                y0 = margin_px + i * square_px
                x0 = margin_px + j * square_px
                img[y0:y0 + square_px, x0:x0 + square_px] = 0

    return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)


def board_image_corners(
    board: BoardConfig,
    square_px: int = 40,
    margin_px: int | None = None,
) -> np.ndarray:
    """
    Pixel positions of the inner corners in an image from generate_board_image.

    Returns:
        (rows * cols, 2) array, row-major
    """
    if margin_px is None:
        margin_px = square_px

    # Square edges fall between pixels, so corners sit half a pixel up-left
    jj, ii = np.meshgrid(np.arange(1, board.cols + 1), np.arange(1, board.rows + 1))
    x = margin_px + jj.ravel() * square_px - 0.5
    y = margin_px + ii.ravel() * square_px - 0.5
    return np.stack([x, y], axis=1).astype(np.float32)
