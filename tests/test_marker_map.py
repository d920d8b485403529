import numpy as np
import pytest

from vruco.tracking.detection import marker_object_points
from vruco.tracking.marker_map import (
    MarkerMap,
    MarkerMapEntry,
    MarkerMapError,
    load_marker_map,
    save_marker_map,
)


def _entry(marker_id: int, x: float) -> MarkerMapEntry:
    return MarkerMapEntry(id=marker_id, points=marker_object_points(0.1) + np.array([x, 0.0, 0.0]))


def test_marker_map_lookup_and_ids():
    mm = MarkerMap([_entry(4, 0.5), _entry(1, 0.0)], marker_size=0.1)
    assert mm.ids == [1, 4]
    assert 4 in mm and 2 not in mm
    assert mm.get(2) is None
    np.testing.assert_allclose(mm.get(4).points[0], [0.45, 0.05, 0.0], atol=1e-6)
    assert [e.id for e in mm] == [1, 4]


def test_marker_map_rejects_duplicate_ids():
    with pytest.raises(MarkerMapError, match="duplicate"):
        MarkerMap([_entry(1, 0.0), _entry(1, 0.3)])


def test_entry_requires_four_points():
    with pytest.raises(MarkerMapError):
        MarkerMapEntry(id=1, points=np.zeros((3, 3)))


def test_entry_points_are_immutable():
    entry = _entry(1, 0.0)
    with pytest.raises(ValueError):
        entry.points[0, 0] = 9.0


def test_marker_map_yaml_roundtrip(tmp_path):
    mm = MarkerMap([_entry(1, 0.0), _entry(7, -0.4)], marker_size=0.0744)
    path = tmp_path / "maps" / "room.yaml"

    save_marker_map(str(path), mm)
    loaded = load_marker_map(str(path))

    assert loaded.ids == [1, 7]
    assert loaded.marker_size == pytest.approx(0.0744)
    for marker_id in (1, 7):
        np.testing.assert_allclose(loaded.get(marker_id).points, mm.get(marker_id).points)


def test_load_marker_map_rejects_bad_content(tmp_path):
    path = tmp_path / "room.yaml"
    path.write_text("markers:\n  - id: 3\n    points: [[0, 0, 0]]\n", encoding="utf-8")
    with pytest.raises(MarkerMapError):
        load_marker_map(str(path))


def test_load_marker_map_missing_file(tmp_path):
    with pytest.raises(MarkerMapError):
        load_marker_map(str(tmp_path / "missing.yaml"))
