"""
VRUco positional tracker:
- loads camera intrinsics and opens the tracking camera
- detects ArUco markers, solves the head pose against the room marker map
- publishes position + orientation into a shared-memory record for the VR driver
- stdin commands: 'centre' (re-zero position), 'calibrate' (room setup), 'exit'

Deps:
  pip install numpy opencv-python PyYAML
"""

from __future__ import annotations

import logging
import sys
import threading

from .config import parse_args
from .control.console import run_console
from .control.flags import ControlFlags
from .control.pose_channel import SharedMemoryPoseChannel
from .tracking.tracker import Tracker

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run(cfg, channel, stdin=None, frame_source_factory=None, detector=None) -> int:
    """Start the tracking thread, drive the console, return the exit status."""
    flags = ControlFlags()
    tracker = Tracker(
        cfg,
        flags,
        channel,
        frame_source_factory=frame_source_factory,
        detector=detector,
    )
    thread = threading.Thread(target=tracker.run, name="tracking", daemon=True)
    thread.start()

    tracker.startup_finished.wait()
    if not tracker.startup_ok:
        thread.join()
        logger.error("[TRACK] Exiting...")
        return 1

    logger.info("[CONSOLE] commands: centre | calibrate | exit")
    run_console(stdin if stdin is not None else sys.stdin, flags)
    thread.join()
    return tracker.exit_code if tracker.exit_code is not None else 1


def main(argv=None) -> int:
    cfg = parse_args(argv)
    configure_logging(cfg.log_level)

    channel = SharedMemoryPoseChannel.open(cfg.shm_name)
    try:
        return run(cfg, channel)
    finally:
        channel.close()


if __name__ == "__main__":
    sys.exit(main())
