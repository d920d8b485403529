import io

from vruco.app import run
from vruco.config import AppConfig
from vruco.control.frame_source import FrameSource
from vruco.control.pose_channel import PoseChannel


class _IdleSource(FrameSource):
    def __init__(self, devices=(0,)):
        self.devices = list(devices)
        self.closed = False

    def list_devices(self):
        return self.devices

    def start(self):
        pass

    def get_frame(self, buffer):
        return False

    def close(self):
        self.closed = True


class _NoMarkers:
    def detect(self, frame, intrinsics, marker_size):
        return []


def _calibration(tmp_path) -> str:
    path = tmp_path / "calib.txt"
    path.write_text("3 3\n500 0 320\n0 500 240\n0 0 1\n1 5\n0 0 0 0 0\n", encoding="utf-8")
    return str(path)


def test_run_returns_zero_after_exit_command(tmp_path):
    source = _IdleSource()
    cfg = AppConfig(calibration=_calibration(tmp_path))
    code = run(
        cfg,
        PoseChannel(),
        stdin=io.StringIO("centre\nexit\n"),
        frame_source_factory=lambda _cfg: source,
        detector=_NoMarkers(),
    )
    assert code == 0
    assert source.closed


def test_run_returns_nonzero_when_calibration_missing(tmp_path):
    cfg = AppConfig(calibration=str(tmp_path / "missing.txt"))
    stdin = io.StringIO("exit\n")
    code = run(cfg, PoseChannel(), stdin=stdin, detector=_NoMarkers())
    assert code == 1
    # console never started
    assert stdin.tell() == 0


def test_run_returns_nonzero_without_camera(tmp_path):
    cfg = AppConfig(calibration=_calibration(tmp_path))
    code = run(
        cfg,
        PoseChannel(),
        stdin=io.StringIO(""),
        frame_source_factory=lambda _cfg: _IdleSource(devices=[]),
        detector=_NoMarkers(),
    )
    assert code == 1
