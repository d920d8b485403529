"""
Room setup: build the marker map from a live observation session.

Every frame that sees two or more markers gives one measurement of the
rigid transform between each pair. Pair measurements are averaged and
chained outwards from an anchor marker, whose own frame becomes the room
frame (x right, y up, z out of the wall). Scale comes from the printed
marker size, so the map is metric.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter, defaultdict, deque
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

from ..control.frame_source import FrameSource
from ..math3d.quaternion import q_average, q_to_rotmat, rotmat_to_q
from ..math3d.se3 import invert_transform, rt_to_transform, transform_from_parts, transform_points
from .calibration import CameraIntrinsics
from .detection import ArucoMarkerDetector, MarkerDetection, marker_object_points
from .marker_map import MarkerMap, MarkerMapEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoomSetupSettings:
    frames: int = 150
    # Pair measurements needed before a marker is linked into the map.
    min_observations: int = 3
    anchor_id: Optional[int] = None


def average_transforms(samples: Sequence[np.ndarray]) -> np.ndarray:
    """Robust mean of nearby rigid transforms (quaternion mean, median translation)."""
    if not samples:
        raise ValueError("average_transforms needs at least one sample")
    q = q_average(rotmat_to_q(T[:3, :3]) for T in samples)
    t = np.median(np.stack([T[:3, 3] for T in samples]), axis=0)
    return transform_from_parts(q_to_rotmat(q), t)


def _choose_anchor(sightings: Counter, anchor_id: Optional[int]) -> int:
    if anchor_id is not None:
        if anchor_id in sightings:
            return int(anchor_id)
        logger.warning("[ROOM] requested anchor marker %s was never seen", anchor_id)
    # Most sightings first, lowest id on ties.
    return min(sightings, key=lambda m: (-sightings[m], m))


def solve_marker_layout(
    frames: Iterable[Sequence[MarkerDetection]],
    marker_size: float,
    min_observations: int = 3,
    anchor_id: Optional[int] = None,
) -> MarkerMap:
    """Place every sufficiently observed marker relative to the anchor."""
    sightings: Counter = Counter()
    pair_samples: dict[tuple[int, int], list[np.ndarray]] = defaultdict(list)

    for detections in frames:
        cam_from_marker: dict[int, np.ndarray] = {}
        for det in detections:
            if det.rvec is None or det.tvec is None or det.id in cam_from_marker:
                continue
            cam_from_marker[det.id] = rt_to_transform(det.rvec, det.tvec)
        sightings.update(cam_from_marker.keys())
        for i, j in itertools.permutations(sorted(cam_from_marker), 2):
            pair_samples[(i, j)].append(
                invert_transform(cam_from_marker[i]) @ cam_from_marker[j]
            )

    if not sightings:
        logger.warning("[ROOM] no markers observed, marker map is empty")
        return MarkerMap(marker_size=marker_size)

    anchor = _choose_anchor(sightings, anchor_id)
    neighbours: dict[int, list[tuple[int, list[np.ndarray]]]] = defaultdict(list)
    for (i, j), samples in pair_samples.items():
        if len(samples) >= min_observations:
            neighbours[i].append((j, samples))

    room_from_marker = {anchor: np.eye(4, dtype=np.float64)}
    queue = deque([anchor])
    while queue:
        i = queue.popleft()
        # Best-supported links first.
        for j, samples in sorted(neighbours[i], key=lambda e: (-len(e[1]), e[0])):
            if j in room_from_marker:
                continue
            room_from_marker[j] = room_from_marker[i] @ average_transforms(samples)
            queue.append(j)

    dropped = sorted(set(sightings) - set(room_from_marker))
    if dropped:
        logger.warning(
            "[ROOM] markers %s seen but not linked to anchor %s with >= %d shared views",
            dropped,
            anchor,
            min_observations,
        )

    local = marker_object_points(marker_size)
    entries = [
        MarkerMapEntry(id=m, points=transform_points(room_from_marker[m], local))
        for m in sorted(room_from_marker)
    ]
    logger.info(
        "[ROOM] marker map built: anchor=%s ids=%s",
        anchor,
        [e.id for e in entries],
    )
    return MarkerMap(entries, marker_size=marker_size)


def build_marker_map(
    frame_source: FrameSource,
    intrinsics: CameraIntrinsics,
    dictionary: str,
    marker_size: float,
    *,
    settings: RoomSetupSettings = RoomSetupSettings(),
    detector=None,
    buffer: Optional[np.ndarray] = None,
) -> MarkerMap:
    """Observe the room through `frame_source` and return a fresh MarkerMap."""
    if detector is None:
        detector = ArucoMarkerDetector(dictionary)
    if buffer is None:
        buffer = frame_source.make_buffer()

    logger.info(
        "[ROOM] room setup: capturing %d frames (dictionary=%s, marker size=%.4f m)",
        settings.frames,
        dictionary,
        marker_size,
    )
    observed = []
    dropped_frames = 0
    for _ in range(settings.frames):
        if not frame_source.get_frame(buffer):
            dropped_frames += 1
            continue
        detections = [
            d
            for d in detector.detect(buffer, intrinsics, marker_size)
            if d.rvec is not None and d.tvec is not None
        ]
        if detections:
            observed.append(detections)

    logger.info(
        "[ROOM] %d/%d frames with markers (%d camera read failures)",
        len(observed),
        settings.frames,
        dropped_frames,
    )
    return solve_marker_layout(
        observed,
        marker_size,
        min_observations=settings.min_observations,
        anchor_id=settings.anchor_id,
    )
