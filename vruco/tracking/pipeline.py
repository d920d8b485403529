"""Per-frame pose pipeline: detections -> room pose -> pose channel."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from ..control.flags import ControlFlags
from ..control.pose import Pose6D
from ..control.pose_channel import PoseChannel
from ..math3d.coords import camera_position_from_extrinsics, rvec_to_consumer_quaternion
from .calibration import CameraIntrinsics
from .detection import MarkerDetection
from .marker_map import MarkerMap
from .solver import RansacPnpSolver

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Correspondences:
    """2D/3D point pairs for one frame; row k of each array is one pair."""

    image_points: np.ndarray
    room_points: np.ndarray
    marker_ids: list[int]

    def __len__(self) -> int:
        return int(self.image_points.shape[0])


def build_correspondences(
    detections: Iterable[MarkerDetection],
    marker_map: MarkerMap,
) -> Correspondences:
    """Pair every mapped detection's corners with its map corners, in order.

    Detections whose id is not in the map are skipped; a partial view of
    the room routinely contains markers that were never mapped.
    """
    image_chunks = []
    room_chunks = []
    ids = []
    for detection in detections:
        entry = marker_map.get(detection.id)
        if entry is None:
            continue
        image_chunks.append(np.asarray(detection.image_points, dtype=np.float32).reshape(4, 2))
        room_chunks.append(entry.points)
        ids.append(int(detection.id))

    if not ids:
        return Correspondences(
            image_points=np.zeros((0, 2), dtype=np.float32),
            room_points=np.zeros((0, 3), dtype=np.float32),
            marker_ids=[],
        )
    return Correspondences(
        image_points=np.concatenate(image_chunks, axis=0),
        room_points=np.concatenate(room_chunks, axis=0),
        marker_ids=ids,
    )


class PosePipeline:
    """
    Turns one frame's marker detections into a published head pose.

    Every failure inside a frame (channel still Ready, nothing mapped in
    view, solver failure, degenerate rotation) returns None and leaves the
    channel untouched; the next frame simply tries again.
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        channel: PoseChannel,
        flags: ControlFlags,
        predefined_center=(0.0, 1.75, 0.0),
        marker_map: Optional[MarkerMap] = None,
        solver: Optional[RansacPnpSolver] = None,
        detector=None,
        marker_size: float = 0.0744,
    ):
        self.intrinsics = intrinsics
        self.channel = channel
        self.flags = flags
        self.predefined_center = np.asarray(predefined_center, dtype=np.float64).reshape(3)
        self.marker_map = marker_map if marker_map is not None else MarkerMap()
        self.solver = solver if solver is not None else RansacPnpSolver()
        self.detector = detector
        self.marker_size = float(marker_size)
        self.centre_offset = np.zeros(3, dtype=np.float64)

    def replace_marker_map(self, marker_map: MarkerMap) -> None:
        # Poses solved against the old room frame are not a valid seed.
        self.marker_map = marker_map
        self.solver.reset()

    def process_frame(self, frame: np.ndarray) -> Optional[Pose6D]:
        if self.channel.is_ready():
            return None
        if self.detector is None:
            raise RuntimeError("PosePipeline.process_frame needs a marker detector")
        detections = self.detector.detect(frame, self.intrinsics, self.marker_size)
        return self.process_detections(detections)

    def process_detections(self, detections: Iterable[MarkerDetection]) -> Optional[Pose6D]:
        if self.channel.is_ready():
            return None

        correspondences = build_correspondences(detections, self.marker_map)
        if len(correspondences) == 0:
            return None

        solution = self.solver.solve(
            correspondences.room_points,
            correspondences.image_points,
            self.intrinsics,
        )
        if solution is None:
            return None
        rvec, tvec = solution

        quaternion = rvec_to_consumer_quaternion(rvec)
        if quaternion is None:
            return None
        position = camera_position_from_extrinsics(rvec, tvec)

        if self.flags.consume_centre():
            self.centre_offset = -position
            logger.info(
                "[TRACK] centre set, offset=[%.3f, %.3f, %.3f]",
                self.centre_offset[0],
                self.centre_offset[1],
                self.centre_offset[2],
            )

        pose = Pose6D(
            position=position + self.predefined_center + self.centre_offset,
            quaternion=quaternion,
        )
        if not self.channel.publish(pose):
            return None
        return pose
