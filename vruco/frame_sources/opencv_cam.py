"""OpenCV VideoCapture camera frame source."""

from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np

from ..control.frame_source import CameraUnavailable, FrameSource

logger = logging.getLogger(__name__)


def _open_capture(index: int) -> cv2.VideoCapture:
    cap = cv2.VideoCapture(index, cv2.CAP_DSHOW)
    if not cap.isOpened():
        cap.release()
        cap = cv2.VideoCapture(index)
    return cap


class OpenCvCameraSource(FrameSource):
    """
    Camera frame source on top of cv2.VideoCapture.

    Probes the first `probe_count` device indices for enumeration, then
    streams from `camera_index` (or the first device found when that index
    is not available) at the requested resolution and frame rate. Frames
    are delivered as RGB into a caller-owned buffer, resized when the
    driver ignores the requested resolution.
    """

    def __init__(
        self,
        camera_index: int = 0,
        width: int = 640,
        height: int = 480,
        fps: int = 60,
        probe_count: int = 4,
    ):
        self.camera_index = int(camera_index)
        self.width = int(width)
        self.height = int(height)
        self.fps = int(fps)
        self.probe_count = max(1, int(probe_count))

        self.cap: Optional[cv2.VideoCapture] = None
        self._devices: Optional[list[int]] = None
        self._closed = False

    def list_devices(self) -> list[int]:
        if self._devices is not None:
            return list(self._devices)
        found = []
        for idx in range(self.probe_count):
            cap = _open_capture(idx)
            try:
                if cap.isOpened():
                    found.append(idx)
            finally:
                cap.release()
        self._devices = found
        return list(found)

    def start(self) -> None:
        devices = self.list_devices()
        if not devices:
            raise CameraUnavailable("no camera devices found")
        index = self.camera_index if self.camera_index in devices else devices[0]
        if index != self.camera_index:
            logger.warning(
                "[CAMERA] camera index %s not available, using %s",
                self.camera_index,
                index,
            )

        cap = _open_capture(index)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailable(f"Cannot open camera index {index}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        # Best effort: drivers that do not expose these ignore them.
        cap.set(cv2.CAP_PROP_AUTO_WB, 1)
        cap.set(cv2.CAP_PROP_AUTO_EXPOSURE, 1)
        cap.set(cv2.CAP_PROP_SHARPNESS, 255)
        self.cap = cap

        logger.info(
            "[CAMERA] streaming from device %s (%dx%d @ %d fps requested, driver reports %dx%d @ %.1f)",
            index,
            self.width,
            self.height,
            self.fps,
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            float(cap.get(cv2.CAP_PROP_FPS)),
        )

    def get_frame(self, buffer: np.ndarray) -> bool:
        if self.cap is None:
            raise CameraUnavailable("camera not started")
        ok, frame = self.cap.read()
        if not ok or frame is None:
            return False
        h, w = frame.shape[:2]
        if (w, h) != (self.width, self.height):
            frame = cv2.resize(frame, (self.width, self.height), interpolation=cv2.INTER_AREA)
        cv2.cvtColor(frame, cv2.COLOR_BGR2RGB, dst=buffer)
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.cap is not None:
            try:
                self.cap.release()
            except cv2.error:
                pass
