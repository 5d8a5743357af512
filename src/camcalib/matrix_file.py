"""
Plain-text matrix files.

Each matrix is written as its row count, its column count and then its
values in row-major order, one token per line:

    3
    3
    800.0
    0.0
    ...

Values are formatted with repr(float), the shortest decimal string that
reads back to the identical double, so a save/load cycle is exact and does
not depend on locale. A file may hold several matrices back to back; the
intrinsic file holds the camera matrix followed by the distortion column.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path

import numpy as np

from .errors import MalformedFile
from .types import (
    DISTORTION_COEFFICIENT_COUNT,
    ExtrinsicModel,
    IntrinsicModel,
    extrinsics_from_matrix,
)

logger = logging.getLogger(__name__)

INTRINSICS_FILENAME = "IntrinsicMatrixOpenCV.txt"
TIMESTAMP_FORMAT = "%b-%d-%Y-%H-%M-%S"


# ============================================================================
# Encoding
# ============================================================================


def _as_2d(matrix: np.ndarray) -> np.ndarray:
    arr = np.asarray(matrix, dtype=np.float64)
    if arr.ndim == 1:
        arr = arr.reshape(-1, 1)  # Vectors are stored as columns
    if arr.ndim != 2 or arr.size == 0:
        raise ValueError(f"Cannot encode array of shape {np.shape(matrix)}")
    return arr


def encode_matrix(matrix: np.ndarray) -> str:
    """
    Encode one matrix as text.

    Args:
        matrix: 2D array (1D arrays are written as n x 1 columns)

    Returns:
        Newline-terminated text block
    """
    arr = _as_2d(matrix)
    rows, cols = arr.shape
    lines = [str(rows), str(cols)]
    lines.extend(repr(float(v)) for v in arr.ravel(order="C"))
    return "\n".join(lines) + "\n"


def encode_matrices(matrices: list[np.ndarray]) -> str:
    """Encode several matrices back to back."""
    return "".join(encode_matrix(m) for m in matrices)


# ============================================================================
# Decoding
# ============================================================================


def _parse_dimension(token: str) -> int:
    try:
        value = int(token)
    except ValueError:
        raise MalformedFile(f"Invalid dimension token: {token!r}") from None
    if value <= 0:
        raise MalformedFile(f"Dimension must be positive, got {value}")
    return value


def decode_matrices(text: str, count: int | None = None) -> list[np.ndarray]:
    """
    Decode every matrix block in text.

    Args:
        text: File contents
        count: Exact number of blocks expected (None accepts any number >= 1)

    Returns:
        List of float64 arrays

    Raises:
        MalformedFile: If a block declares more values than are present,
            a token cannot be parsed, or the block count is wrong
    """
    tokens = text.split()
    matrices = []
    pos = 0

    while pos < len(tokens):
        if count is not None and len(matrices) == count:
            raise MalformedFile(
                f"Unexpected trailing data after {count} matrices: {len(tokens) - pos} tokens"
            )
        if pos + 2 > len(tokens):
            raise MalformedFile("Truncated matrix header")

        rows = _parse_dimension(tokens[pos])
        cols = _parse_dimension(tokens[pos + 1])
        pos += 2

        expected = rows * cols
        available = len(tokens) - pos
        if available < expected:
            raise MalformedFile(
                f"Matrix declares {rows}x{cols} = {expected} values but only {available} present"
            )

        try:
            values = [float(t) for t in tokens[pos:pos + expected]]
        except ValueError as e:
            raise MalformedFile(f"Invalid matrix value: {e}") from e
        pos += expected

        matrices.append(np.array(values, dtype=np.float64).reshape(rows, cols))

    if not matrices:
        raise MalformedFile("No matrix data")
    if count is not None and len(matrices) != count:
        raise MalformedFile(f"Expected {count} matrices, found {len(matrices)}")

    return matrices


def decode_matrix(text: str) -> np.ndarray:
    """Decode a single matrix block."""
    return decode_matrices(text, count=1)[0]


# ============================================================================
# Files
# ============================================================================


def save_matrices(path: Path, matrices: list[np.ndarray]) -> bool:
    """
    Write matrices to a file.

    Returns:
        True on success, False if the file could not be written
    """
    text = encode_matrices(matrices)
    try:
        with open(path, "w") as f:
            f.write(text)
    except OSError as e:
        logger.error("Failed to write %s: %s", path, e)
        return False
    return True


def load_matrices(path: Path, count: int | None = None) -> list[np.ndarray]:
    """
    Read matrices from a file.

    Raises:
        MalformedFile: If the file can't be opened or its contents are inconsistent
    """
    try:
        with open(path) as f:
            text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedFile(f"Cannot open {path}: {e}") from e
    return decode_matrices(text, count=count)


def timestamp_name(when: datetime | None = None) -> str:
    """Human-readable timestamp used for directory and file names."""
    return (when or datetime.now()).strftime(TIMESTAMP_FORMAT)


# ============================================================================
# Calibration Results
# ============================================================================


def save_intrinsics(intrinsics: IntrinsicModel, path: Path) -> bool:
    """
    Save camera matrix and distortion coefficients to one file.

    Args:
        intrinsics: IntrinsicModel to persist
        path: Destination file

    Returns:
        True on success, False if the file could not be written
    """
    ok = save_matrices(
        path,
        [intrinsics.matrix, np.asarray(intrinsics.distortion).reshape(-1, 1)],
    )
    if ok:
        logger.info("Saved intrinsics to %s", path)
    return ok


def load_intrinsics(path: Path) -> IntrinsicModel:
    """
    Load intrinsics written by save_intrinsics.

    Raises:
        MalformedFile: If the file is unreadable or the matrices have the wrong shape
    """
    matrix, distortion = load_matrices(path, count=2)

    if matrix.shape != (3, 3):
        raise MalformedFile(f"Camera matrix must be 3x3, got {matrix.shape[0]}x{matrix.shape[1]}")
    if 1 not in distortion.shape or distortion.size > DISTORTION_COEFFICIENT_COUNT:
        raise MalformedFile(
            f"Distortion must be a vector of at most {DISTORTION_COEFFICIENT_COUNT} values, "
            f"got {distortion.shape[0]}x{distortion.shape[1]}"
        )

    # Older files may carry the 5-coefficient model
    coefficients = np.zeros(DISTORTION_COEFFICIENT_COUNT, dtype=np.float64)
    coefficients[: distortion.size] = distortion.ravel()

    return IntrinsicModel(matrix=matrix, distortion=coefficients)


def save_extrinsics(
    extrinsics: ExtrinsicModel,
    directory: Path,
    when: datetime | None = None,
) -> Path | None:
    """
    Save the 3x4 [R | t] matrix to Extrinsics<timestamp>.csv.

    Returns:
        Path of the written file, or None if it could not be written
    """
    path = Path(directory) / f"Extrinsics{timestamp_name(when)}.csv"
    if not save_matrices(path, [extrinsics.matrix]):
        return None
    logger.info("Saved extrinsics to %s", path)
    return path


def load_extrinsics(path: Path) -> ExtrinsicModel:
    """
    Load a 3x4 extrinsic matrix.

    Raises:
        MalformedFile: If the file is unreadable or not 3x4
    """
    matrix = load_matrices(path, count=1)[0]
    if matrix.shape != (3, 4):
        raise MalformedFile(f"Extrinsic matrix must be 3x4, got {matrix.shape[0]}x{matrix.shape[1]}")
    return extrinsics_from_matrix(matrix)
