"""
Camera intrinsics loading and saving.

File layout (whitespace-delimited text):

    rows cols
    rows*cols values      camera matrix, row-major
    rows cols
    rows*cols values      distortion coefficients, row-major
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import numpy as np

logger = logging.getLogger(__name__)


class CalibrationError(RuntimeError):
    """Camera intrinsics could not be loaded."""


class CalibrationMissing(CalibrationError):
    pass


class CalibrationMalformed(CalibrationError):
    pass


@dataclass(frozen=True)
class CameraIntrinsics:
    matrix: np.ndarray
    distortion: np.ndarray
    resolution: tuple[int, int]

    def __post_init__(self):
        matrix = np.array(self.matrix, dtype=np.float64)
        distortion = np.array(self.distortion, dtype=np.float64)
        if distortion.ndim == 1:
            distortion = distortion.reshape(1, -1)
        object.__setattr__(self, "matrix", matrix)
        object.__setattr__(self, "distortion", distortion)
        object.__setattr__(
            self, "resolution", (int(self.resolution[0]), int(self.resolution[1]))
        )


def _read_block(tokens: Iterator[str], what: str, path: str) -> np.ndarray:
    try:
        rows_raw = next(tokens)
        cols_raw = next(tokens)
    except StopIteration:
        raise CalibrationMalformed(f"{path}: missing {what} dimensions") from None
    try:
        rows, cols = int(rows_raw), int(cols_raw)
    except ValueError as exc:
        raise CalibrationMalformed(
            f"{path}: invalid {what} dimensions {rows_raw!r} {cols_raw!r}"
        ) from exc
    if rows <= 0 or cols <= 0:
        raise CalibrationMalformed(f"{path}: invalid {what} dimensions {rows}x{cols}")

    values = np.empty(rows * cols, dtype=np.float64)
    for i in range(rows * cols):
        try:
            raw = next(tokens)
        except StopIteration:
            raise CalibrationMalformed(
                f"{path}: {what} declares {rows}x{cols} but only {i} values follow"
            ) from None
        try:
            values[i] = float(raw)
        except ValueError as exc:
            raise CalibrationMalformed(f"{path}: non-numeric {what} value {raw!r}") from exc
    return values.reshape(rows, cols)


def parse_calibration(text: str, resolution: tuple[int, int], path: str = "<text>") -> CameraIntrinsics:
    tokens = iter(text.split())
    matrix = _read_block(tokens, "camera matrix", path)
    distortion = _read_block(tokens, "distortion", path)
    leftover = sum(1 for _ in tokens)
    if leftover:
        raise CalibrationMalformed(f"{path}: {leftover} unexpected trailing values")

    if matrix.shape != (3, 3):
        raise CalibrationMalformed(f"{path}: camera matrix must be 3x3, got {matrix.shape}")
    if not np.isfinite(matrix).all() or matrix[0, 0] <= 0.0 or matrix[1, 1] <= 0.0:
        raise CalibrationMalformed(f"{path}: camera matrix focal terms must be positive")
    return CameraIntrinsics(matrix=matrix, distortion=distortion, resolution=resolution)


def load_calibration(path: str, resolution: tuple[int, int] = (640, 480)) -> CameraIntrinsics:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise CalibrationMissing(f"Cannot find or load calibration file '{p}': {exc}") from exc

    intrinsics = parse_calibration(text, resolution, str(p))
    logger.info(
        "[CALIB] loaded %s (fx=%.2f fy=%.2f cx=%.2f cy=%.2f, %d distortion terms)",
        p,
        intrinsics.matrix[0, 0],
        intrinsics.matrix[1, 1],
        intrinsics.matrix[0, 2],
        intrinsics.matrix[1, 2],
        intrinsics.distortion.size,
    )
    return intrinsics


def _format_block(values: np.ndarray) -> list[str]:
    rows, cols = values.shape
    lines = [f"{rows} {cols}"]
    for r in range(rows):
        lines.append(" ".join(repr(float(v)) for v in values[r]))
    return lines


def format_calibration(intrinsics: CameraIntrinsics) -> str:
    lines = _format_block(intrinsics.matrix) + _format_block(intrinsics.distortion)
    return "\n".join(lines) + "\n"


def save_calibration(path: str, intrinsics: CameraIntrinsics) -> None:
    Path(path).write_text(format_calibration(intrinsics), encoding="utf-8")


__all__ = [
    "CalibrationError",
    "CalibrationMalformed",
    "CalibrationMissing",
    "CameraIntrinsics",
    "format_calibration",
    "load_calibration",
    "parse_calibration",
    "save_calibration",
]
