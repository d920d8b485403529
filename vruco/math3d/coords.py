"""Camera-solver to consumer coordinate convention.

Single source of truth for how an OpenCV extrinsic solution (room points
expressed in camera space) turns into the pose the VR driver consumes:

- position: camera centre in room space, -(R^T . t)
- orientation: Qref * angleAxis(|rvec|, rvec/|rvec|), Qref = 180 deg
  about +X, published as [x, y, z, -w]

The 180 deg reference rotation and the negated w map "camera facing a
wall of markers" to "head upright, looking forward" for the consumer
(Y up). Do not rearrange this without re-deriving the consumer frame.
"""

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from .quaternion import axis_angle_to_q, q_mul

# [w, x, y, z]
_REFERENCE_FLIP = np.array([0.0, 1.0, 0.0, 0.0], dtype=np.float64)

# Below this angle the rotation axis is undefined.
MIN_ROTATION_ANGLE = 1e-9


def camera_position_from_extrinsics(rvec: np.ndarray, tvec: np.ndarray) -> np.ndarray:
    R, _ = cv2.Rodrigues(np.asarray(rvec, dtype=np.float64).reshape(3, 1))
    t = np.asarray(tvec, dtype=np.float64).reshape(3)
    return -(R.T @ t)


def rvec_to_consumer_quaternion(rvec: np.ndarray) -> Optional[np.ndarray]:
    """Return the consumer quaternion [x, y, z, w], or None if rvec is ~zero."""
    r = np.asarray(rvec, dtype=np.float64).reshape(3)
    theta = float(np.linalg.norm(r))
    if not np.isfinite(theta) or theta < MIN_ROTATION_ANGLE:
        return None

    q = q_mul(_REFERENCE_FLIP, axis_angle_to_q(r / theta, theta))
    w, x, y, z = q
    return np.array([x, y, z, -w], dtype=np.float64)
