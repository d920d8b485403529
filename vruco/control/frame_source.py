"""Frame source interface for the tracking camera."""

from __future__ import annotations

import numpy as np


class CameraUnavailable(RuntimeError):
    """No usable camera device could be opened."""


class FrameSource:
    """Base interface for blocking camera frame sources.

    Implementations may wrap real hardware (OpenCV capture) or replay
    recorded frames in tests.
    """

    width: int = 640
    height: int = 480
    fps: int = 60

    def list_devices(self) -> list[int]:
        """Return the device indices that can be opened."""
        raise NotImplementedError

    def start(self) -> None:
        raise NotImplementedError

    def get_frame(self, buffer: np.ndarray) -> bool:
        """Block until the next frame, fill `buffer` (h, w, 3) RGB uint8.

        Returns False when the device delivered nothing usable.
        """
        raise NotImplementedError

    def make_buffer(self) -> np.ndarray:
        return np.zeros((self.height, self.width, 3), dtype=np.uint8)

    def close(self) -> None:
        pass
