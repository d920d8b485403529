"""Single-slot pose record shared with the VR driver process.

Handshake (the whole synchronization protocol):

  Idle  --publish()-->  Ready     producer only, after all fields are written
  Ready --consume()-->  Idle      consumer only, after the fields are copied out

The producer never touches position/quaternion while the flag is set, and
the consumer never reads them while it is clear, so a reader that waits
for the flag always sees one complete update. Stores go through numpy
into the mapped buffer in program order, with the flag byte written last.
Within one process the GIL serializes those stores; across processes they
are plain stores to a shared mapping and rely on the store ordering of
the x86 (TSO) hosts the driver runs on.
"""

from __future__ import annotations

import logging
from multiprocessing.shared_memory import SharedMemory
from typing import Optional

import numpy as np

from .pose import Pose6D, identity_pose

logger = logging.getLogger(__name__)

# Matches the C struct { float pos[3]; float quat[4]; bool new_data; }
# including its tail padding.
POSE_RECORD_DTYPE = np.dtype(
    [
        ("position", np.float32, (3,)),
        ("quaternion", np.float32, (4,)),
        ("new_data_available", np.bool_),
    ],
    align=True,
)


class PoseChannel:
    """Pose record view over any writable buffer of POSE_RECORD_DTYPE size."""

    def __init__(self, buffer=None):
        if buffer is None:
            buffer = bytearray(POSE_RECORD_DTYPE.itemsize)
        self._record = np.ndarray((), dtype=POSE_RECORD_DTYPE, buffer=buffer)

    def is_ready(self) -> bool:
        return bool(self._record["new_data_available"])

    def publish(self, pose: Pose6D) -> bool:
        """Write pose then raise the flag. Returns False while the slot is Ready."""
        if self.is_ready():
            return False
        self._record["position"] = np.asarray(pose.position, dtype=np.float32).reshape(3)
        self._record["quaternion"] = np.asarray(pose.quaternion, dtype=np.float32).reshape(4)
        self._record["new_data_available"] = True
        return True

    def consume(self) -> Optional[Pose6D]:
        """Copy the pending pose out and hand the slot back to the producer."""
        if not self.is_ready():
            return None
        pose = Pose6D(
            position=np.array(self._record["position"], dtype=np.float64),
            quaternion=np.array(self._record["quaternion"], dtype=np.float64),
        )
        self._record["new_data_available"] = False
        return pose

    def reset(self) -> None:
        pose = identity_pose()
        self._record["position"] = pose.position
        self._record["quaternion"] = pose.quaternion
        self._record["new_data_available"] = False


class SharedMemoryPoseChannel(PoseChannel):
    """PoseChannel living in a named multiprocessing.shared_memory block."""

    def __init__(self, shm: SharedMemory, owner: bool):
        super().__init__(shm.buf)
        self.shm = shm
        self.owner = owner
        self._closed = False

    @classmethod
    def open(cls, name: str) -> "SharedMemoryPoseChannel":
        """Create the block, or attach if the driver already created it."""
        try:
            shm = SharedMemory(name=name, create=True, size=POSE_RECORD_DTYPE.itemsize)
            owner = True
        except FileExistsError:
            shm = SharedMemory(name=name, create=False)
            owner = False
        if shm.size < POSE_RECORD_DTYPE.itemsize:
            shm.close()
            raise RuntimeError(
                f"shared memory block {name!r} is {shm.size} bytes, "
                f"need {POSE_RECORD_DTYPE.itemsize}"
            )
        channel = cls(shm, owner)
        if owner:
            channel.reset()
        logger.info(
            "[CHANNEL] %s shared pose record %r (%d bytes)",
            "created" if owner else "attached to",
            name,
            POSE_RECORD_DTYPE.itemsize,
        )
        return channel

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # The numpy view must go before the mapping can be released.
        self._record = None
        self.shm.close()
        if self.owner:
            try:
                self.shm.unlink()
            except FileNotFoundError:
                pass
