import numpy as np
import pytest

from vruco.control.frame_source import CameraUnavailable
from vruco.frame_sources import opencv_cam
from vruco.frame_sources.opencv_cam import OpenCvCameraSource


class _FakeCapture:
    available = {1}
    frame_shape = (240, 320, 3)
    opened = []

    def __init__(self, index, backend=None):
        self.index = index
        self.props = {}
        self.released = False
        _FakeCapture.opened.append((index, backend))

    def isOpened(self):
        return self.index in self.available

    def set(self, prop, value):
        self.props[prop] = value
        return True

    def get(self, prop):
        return float(self.props.get(prop, 0.0))

    def read(self):
        frame = np.zeros(self.frame_shape, dtype=np.uint8)
        frame[..., 0] = 255  # blue in BGR
        return True, frame

    def release(self):
        self.released = True


@pytest.fixture
def fake_capture(monkeypatch):
    _FakeCapture.opened = []
    monkeypatch.setattr(opencv_cam.cv2, "VideoCapture", _FakeCapture)
    return _FakeCapture


def test_list_devices_probes_indices(fake_capture):
    source = OpenCvCameraSource(probe_count=3)
    assert source.list_devices() == [1]
    # cached after the first probe
    probes = len(fake_capture.opened)
    assert source.list_devices() == [1]
    assert len(fake_capture.opened) == probes


def test_start_falls_back_to_first_device_and_delivers_rgb(fake_capture):
    source = OpenCvCameraSource(camera_index=0, width=640, height=480, fps=60, probe_count=2)
    source.start()
    assert source.cap.index == 1
    assert source.cap.props[opencv_cam.cv2.CAP_PROP_FPS] == 60

    buffer = source.make_buffer()
    assert source.get_frame(buffer)
    assert buffer.shape == (480, 640, 3)
    # BGR blue arrives as RGB blue
    assert int(buffer[0, 0, 2]) == 255
    assert int(buffer[0, 0, 0]) == 0

    source.close()
    assert source.cap.released


def test_start_without_devices_raises(fake_capture, monkeypatch):
    monkeypatch.setattr(fake_capture, "available", set())
    with pytest.raises(CameraUnavailable):
        OpenCvCameraSource(probe_count=2).start()


def test_get_frame_before_start_raises(fake_capture):
    with pytest.raises(CameraUnavailable):
        OpenCvCameraSource().get_frame(np.zeros((480, 640, 3), dtype=np.uint8))
