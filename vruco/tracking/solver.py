"""Perspective-n-Point extrinsic solver."""

from __future__ import annotations

from typing import Optional, Tuple

import cv2
import numpy as np

from .calibration import CameraIntrinsics


class RansacPnpSolver:
    """
    solvePnPRansac with a sticky previous-solution seed.

    After the first successful solve every later call passes the last
    (rvec, tvec) as an extrinsic guess, which keeps consecutive frames from
    flipping between near-equivalent planar solutions. A failed solve keeps
    the old seed; reset() drops it (e.g. after the room frame changes).
    """

    def __init__(
        self,
        reprojection_error: float = 8.0,
        iterations: int = 100,
        confidence: float = 0.99,
    ):
        self.reprojection_error = float(reprojection_error)
        self.iterations = int(iterations)
        self.confidence = float(confidence)
        self.has_previous = False
        self._rvec: Optional[np.ndarray] = None
        self._tvec: Optional[np.ndarray] = None

    def reset(self) -> None:
        self.has_previous = False
        self._rvec = None
        self._tvec = None

    def solve(
        self,
        room_points: np.ndarray,
        image_points: np.ndarray,
        intrinsics: CameraIntrinsics,
    ) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """Return (rvec, tvec) mapping room points into the camera, or None."""
        object_points = np.ascontiguousarray(room_points, dtype=np.float64).reshape(-1, 1, 3)
        pixels = np.ascontiguousarray(image_points, dtype=np.float64).reshape(-1, 1, 2)
        if len(object_points) < 4:
            return None

        if self.has_previous:
            rvec0 = self._rvec.copy()
            tvec0 = self._tvec.copy()
        else:
            rvec0 = None
            tvec0 = None

        try:
            ok, rvec, tvec, _ = cv2.solvePnPRansac(
                object_points,
                pixels,
                intrinsics.matrix,
                intrinsics.distortion,
                rvec0,
                tvec0,
                self.has_previous,
                self.iterations,
                self.reprojection_error,
                self.confidence,
            )
        except cv2.error:
            return None
        if not ok or rvec is None or tvec is None:
            return None
        rvec = np.asarray(rvec, dtype=np.float64).reshape(3, 1)
        tvec = np.asarray(tvec, dtype=np.float64).reshape(3, 1)
        if not (np.isfinite(rvec).all() and np.isfinite(tvec).all()):
            return None

        self._rvec = rvec
        self._tvec = tvec
        self.has_previous = True
        return rvec.reshape(3), tvec.reshape(3)
