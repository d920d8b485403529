"""Tracking thread: startup, per-frame loop, room setup dispatch."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from ..control.flags import ControlFlags
from ..control.frame_source import CameraUnavailable, FrameSource
from ..control.pose_channel import PoseChannel
from .calibration import CalibrationError, CameraIntrinsics, load_calibration
from .detection import ArucoMarkerDetector
from .marker_map import MarkerMap, MarkerMapError, load_marker_map, save_marker_map
from .pipeline import PosePipeline
from .room_setup import RoomSetupSettings, build_marker_map
from .solver import RansacPnpSolver

logger = logging.getLogger(__name__)


class FrameRateCounter:
    """Counts ticks and reports the total once per `interval_s`."""

    def __init__(self, interval_s: float = 1.0, clock: Callable[[], float] = time.monotonic):
        self.interval_s = float(interval_s)
        self._clock = clock
        self._window_start = clock()
        self._count = 0

    def tick(self) -> Optional[int]:
        self._count += 1
        now = self._clock()
        if now - self._window_start < self.interval_s:
            return None
        fps = self._count
        self._count = 0
        self._window_start = now
        return fps


def _default_frame_source(cfg) -> FrameSource:
    from ..frame_sources.opencv_cam import OpenCvCameraSource

    return OpenCvCameraSource(
        camera_index=cfg.camera_index,
        width=cfg.camera_width,
        height=cfg.camera_height,
        fps=cfg.camera_fps,
        probe_count=cfg.camera_probe_count,
    )


class Tracker:
    """
    Owns everything on the tracking thread: intrinsics, camera, marker
    map and pose pipeline.

    run() performs startup, signals `startup_finished` (check `startup_ok`),
    then loops one camera frame per iteration until exit is requested. The
    exit flag is only looked at between iterations, so an iteration (or a
    room setup) always runs to completion.

    While the consumer has not read the last pose, step() sleeps
    `idle_sleep_ms` instead of polling the channel flat out. This is a
    deliberate deviation to save CPU; set `--idle-sleep-ms 0` to busy-poll.
    """

    def __init__(
        self,
        cfg,
        flags: ControlFlags,
        channel: PoseChannel,
        frame_source_factory: Optional[Callable[[object], FrameSource]] = None,
        detector=None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cfg = cfg
        self.flags = flags
        self.channel = channel
        self._frame_source_factory = frame_source_factory or _default_frame_source
        self._detector = detector
        self._sleep = sleep

        self.startup_finished = threading.Event()
        self.startup_ok = False
        self.exit_code: Optional[int] = None

        self.intrinsics: Optional[CameraIntrinsics] = None
        self.frame_source: Optional[FrameSource] = None
        self.pipeline: Optional[PosePipeline] = None
        self.fps_counter = FrameRateCounter()
        self._buffer: Optional[np.ndarray] = None

    # -- startup ---------------------------------------------------------

    def _load_initial_map(self) -> MarkerMap:
        path = self.cfg.marker_map
        if not path:
            return MarkerMap(marker_size=self.cfg.marker_size)
        if not Path(path).exists():
            logger.info("[ROOM] no marker map at %s yet, send 'calibrate' to build one", path)
            return MarkerMap(marker_size=self.cfg.marker_size)
        return load_marker_map(path)

    def startup(self) -> bool:
        cfg = self.cfg
        logger.info("[CALIB] loading calibration file %s", cfg.calibration)
        try:
            self.intrinsics = load_calibration(
                cfg.calibration, resolution=(cfg.camera_width, cfg.camera_height)
            )
        except CalibrationError as exc:
            logger.error("[CALIB] %s", exc)
            return False

        try:
            initial_map = self._load_initial_map()
        except MarkerMapError as exc:
            logger.error("[ROOM] %s", exc)
            return False

        if self._detector is None:
            self._detector = ArucoMarkerDetector(cfg.marker_dictionary)

        source = self._frame_source_factory(cfg)
        self.frame_source = source
        devices = source.list_devices()
        if not devices:
            logger.error("[CAMERA] Cannot find at least 1 camera connected.")
            return False
        logger.info("[CAMERA] %d camera(s) connected: %s", len(devices), devices)
        try:
            source.start()
        except CameraUnavailable as exc:
            logger.error("[CAMERA] %s", exc)
            return False
        self._buffer = source.make_buffer()

        self.pipeline = PosePipeline(
            intrinsics=self.intrinsics,
            channel=self.channel,
            flags=self.flags,
            predefined_center=(cfg.center_x, cfg.center_y, cfg.center_z),
            marker_map=initial_map,
            solver=RansacPnpSolver(
                reprojection_error=cfg.ransac_reprojection_error,
                iterations=cfg.ransac_iterations,
            ),
            detector=self._detector,
            marker_size=cfg.marker_size,
        )
        return True

    # -- loop --------------------------------------------------------------

    def run_room_setup(self) -> None:
        cfg = self.cfg
        new_map = build_marker_map(
            self.frame_source,
            self.intrinsics,
            cfg.marker_dictionary,
            cfg.marker_size,
            settings=RoomSetupSettings(
                frames=cfg.room_setup_frames,
                min_observations=cfg.room_setup_min_observations,
                anchor_id=cfg.room_setup_anchor_id,
            ),
            detector=self._detector,
            buffer=self._buffer,
        )
        if len(new_map) == 0:
            logger.warning("[ROOM] room setup found no markers, keeping previous map")
            return
        self.pipeline.replace_marker_map(new_map)
        if cfg.marker_map:
            try:
                save_marker_map(cfg.marker_map, new_map)
            except OSError as exc:
                logger.error("[ROOM] failed to save marker map %s: %s", cfg.marker_map, exc)

    def step(self) -> None:
        """One loop iteration."""
        if self.flags.consume_calibration():
            self.run_room_setup()

        if self.channel.is_ready():
            # Consumer has not drained the last pose; drop this frame.
            self._sleep(self.cfg.idle_sleep_ms / 1000.0)
            return

        if not self.frame_source.get_frame(self._buffer):
            return
        self.pipeline.process_frame(self._buffer)

        fps = self.fps_counter.tick()
        if fps is not None:
            logger.info("[TRACK] FPS: %d", fps)

    def run(self) -> int:
        try:
            try:
                self.startup_ok = self.startup()
            finally:
                self.startup_finished.set()
            if not self.startup_ok:
                logger.error("[TRACK] startup failed, tracking stopped")
                self.exit_code = 1
                return self.exit_code

            logger.info("[TRACK] tracking started")
            while not self.flags.exit_requested():
                self.step()
            logger.info("[TRACK] exit requested, tracking stopped")
            self.exit_code = 0
            return self.exit_code
        finally:
            self.close()

    def close(self) -> None:
        if self.frame_source is not None:
            self.frame_source.close()
