"""Marker map: marker id -> four room-space corner points."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional

import numpy as np
import yaml

logger = logging.getLogger(__name__)


class MarkerMapError(ValueError):
    """Marker map content is inconsistent or cannot be parsed."""


@dataclass(frozen=True)
class MarkerMapEntry:
    """One marker's corners in room space, detection winding order."""

    id: int
    points: np.ndarray

    def __post_init__(self):
        if int(self.id) < 0:
            raise MarkerMapError(f"marker id must be non-negative, got {self.id}")
        points = np.array(self.points, dtype=np.float32).reshape(-1, 3)
        if points.shape != (4, 3):
            raise MarkerMapError(
                f"marker {self.id}: expected 4 corner points, got {points.shape[0]}"
            )
        if not np.isfinite(points).all():
            raise MarkerMapError(f"marker {self.id}: corner points must be finite")
        points.setflags(write=False)
        object.__setattr__(self, "id", int(self.id))
        object.__setattr__(self, "points", points)


class MarkerMap:
    """Immutable set of MarkerMapEntry, unique by id.

    Built once per room setup and then only read. The tracker replaces the
    whole object, never mutates one in place.
    """

    def __init__(self, entries: Iterable[MarkerMapEntry] = (), marker_size: Optional[float] = None):
        by_id: dict[int, MarkerMapEntry] = {}
        for entry in entries:
            if entry.id in by_id:
                raise MarkerMapError(f"duplicate marker id {entry.id}")
            by_id[entry.id] = entry
        self._entries = by_id
        self.marker_size = None if marker_size is None else float(marker_size)

    def get(self, marker_id: int) -> Optional[MarkerMapEntry]:
        return self._entries.get(int(marker_id))

    @property
    def ids(self) -> list[int]:
        return sorted(self._entries)

    def __contains__(self, marker_id: object) -> bool:
        return marker_id in self._entries

    def __iter__(self) -> Iterator[MarkerMapEntry]:
        return iter(self._entries[i] for i in self.ids)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"MarkerMap(ids={self.ids}, marker_size={self.marker_size})"

    def to_dict(self) -> dict[str, Any]:
        return {
            "marker_size": self.marker_size,
            "markers": [
                {"id": e.id, "points": [[float(v) for v in p] for p in e.points]}
                for e in self
            ],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "MarkerMap":
        if not isinstance(data, dict):
            raise MarkerMapError(f"marker map root must be a mapping, got {type(data).__name__}")
        markers = data.get("markers") or []
        if not isinstance(markers, list):
            raise MarkerMapError("'markers' must be a list")
        entries = []
        for item in markers:
            if not isinstance(item, dict) or "id" not in item or "points" not in item:
                raise MarkerMapError(f"invalid marker entry: {item!r}")
            try:
                entries.append(MarkerMapEntry(id=int(item["id"]), points=item["points"]))
            except MarkerMapError:
                raise
            except (TypeError, ValueError) as exc:
                raise MarkerMapError(f"invalid marker entry {item!r}: {exc}") from exc
        size = data.get("marker_size")
        return cls(entries, marker_size=None if size is None else float(size))


def save_marker_map(path: str, marker_map: MarkerMap) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(yaml.safe_dump(marker_map.to_dict(), sort_keys=False), encoding="utf-8")
    logger.info("[ROOM] saved marker map with %d markers -> %s", len(marker_map), p)


def load_marker_map(path: str) -> MarkerMap:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise MarkerMapError(f"failed to read marker map {p}: {exc}") from exc
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MarkerMapError(f"failed to parse marker map {p}: {exc}") from exc
    marker_map = MarkerMap.from_dict(loaded if loaded is not None else {})
    logger.info("[ROOM] loaded marker map %s: ids=%s", p, marker_map.ids)
    return marker_map
