"""ArUco marker detection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from .calibration import CameraIntrinsics


@dataclass(slots=True)
class MarkerDetection:
    """
    One decoded marker in one frame.

    image_points: (4, 2) float32 corners in OpenCV ArUco order
      (top-left, top-right, bottom-right, bottom-left).
    rvec/tvec: single-marker pose (marker -> camera) when the detector
      estimated one. Only room setup uses it.
    """

    id: int
    image_points: np.ndarray
    rvec: Optional[np.ndarray] = None
    tvec: Optional[np.ndarray] = None


def marker_object_points(marker_size: float) -> np.ndarray:
    """Marker-local corners matching the detection winding (z = 0 plane)."""
    h = float(marker_size) / 2.0
    return np.array(
        [[-h, h, 0.0], [h, h, 0.0], [h, -h, 0.0], [-h, -h, 0.0]],
        dtype=np.float32,
    )


def resolve_dictionary(name: str) -> int:
    key = name.strip().upper()
    if not key.startswith("DICT_"):
        key = "DICT_" + key
    value = getattr(cv2.aruco, key, None)
    if value is None:
        raise ValueError(f"unknown ArUco dictionary {name!r}")
    return int(value)


class ArucoMarkerDetector:
    """cv2.aruco detector returning MarkerDetection records with per-marker poses."""

    def __init__(self, dictionary: str = "ARUCO_MIP_36h12"):
        self.dictionary_name = dictionary
        aruco_dict = cv2.aruco.getPredefinedDictionary(resolve_dictionary(dictionary))
        parameters = cv2.aruco.DetectorParameters()
        parameters.cornerRefinementMethod = cv2.aruco.CORNER_REFINE_SUBPIX
        self._detector = cv2.aruco.ArucoDetector(aruco_dict, parameters)

    def detect(
        self,
        frame: np.ndarray,
        intrinsics: Optional[CameraIntrinsics],
        marker_size: float,
    ) -> list[MarkerDetection]:
        gray = frame if frame.ndim == 2 else cv2.cvtColor(frame, cv2.COLOR_RGB2GRAY)
        corners, ids, _ = self._detector.detectMarkers(gray)
        if ids is None or len(ids) == 0:
            return []

        object_points = marker_object_points(marker_size)
        detections = []
        seen = set()
        for marker_id, marker_corners in zip(ids.ravel(), corners):
            marker_id = int(marker_id)
            # Ids must be unique per frame; a duplicate print is ambiguous.
            if marker_id in seen:
                continue
            seen.add(marker_id)
            image_points = np.asarray(marker_corners, dtype=np.float32).reshape(4, 2)

            rvec = tvec = None
            if intrinsics is not None:
                ok, r, t = cv2.solvePnP(
                    object_points,
                    image_points,
                    intrinsics.matrix,
                    intrinsics.distortion,
                    flags=cv2.SOLVEPNP_IPPE_SQUARE,
                )
                if ok:
                    rvec = r.reshape(3)
                    tvec = t.reshape(3)
            detections.append(
                MarkerDetection(id=marker_id, image_points=image_points, rvec=rvec, tvec=tvec)
            )
        return detections
