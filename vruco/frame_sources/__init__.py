"""Frame source implementations."""

from .opencv_cam import OpenCvCameraSource

__all__ = [
    "OpenCvCameraSource",
]
