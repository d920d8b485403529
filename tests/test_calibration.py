import numpy as np
import pytest

from vruco.tracking.calibration import (
    CalibrationMalformed,
    CalibrationMissing,
    CameraIntrinsics,
    format_calibration,
    load_calibration,
    parse_calibration,
    save_calibration,
)

PS3_EYE_CALIBRATION = """3 3
545.3829345703125 0 319.5
0 545.3829345703125 239.5
0 0 1
5 1
-0.10523089021444321
0.23618291318416595
0.0
0.0
-0.2079121619462967
"""


def _parse_blocks(text: str):
    tokens = text.split()
    blocks = []
    pos = 0
    for _ in range(2):
        rows, cols = int(tokens[pos]), int(tokens[pos + 1])
        pos += 2
        values = [float(v) for v in tokens[pos : pos + rows * cols]]
        pos += rows * cols
        blocks.append((rows, cols, values))
    return blocks


def test_load_calibration_reads_matrix_and_distortion(tmp_path):
    path = tmp_path / "ps3_eye_calibration.txt"
    path.write_text(PS3_EYE_CALIBRATION, encoding="utf-8")

    intr = load_calibration(str(path), resolution=(640, 480))

    assert intr.matrix.shape == (3, 3)
    assert intr.matrix[0, 0] == pytest.approx(545.3829345703125)
    assert intr.matrix[1, 2] == pytest.approx(239.5)
    assert intr.distortion.shape == (5, 1)
    assert intr.distortion[0, 0] == pytest.approx(-0.10523089021444321)
    assert intr.resolution == (640, 480)


def test_calibration_roundtrip_preserves_layout_and_values(tmp_path):
    src = tmp_path / "calib.txt"
    src.write_text(PS3_EYE_CALIBRATION, encoding="utf-8")
    dst = tmp_path / "copy.txt"

    save_calibration(str(dst), load_calibration(str(src)))

    assert _parse_blocks(dst.read_text(encoding="utf-8")) == _parse_blocks(PS3_EYE_CALIBRATION)


def test_roundtrip_keeps_full_float_precision():
    intr = CameraIntrinsics(
        matrix=np.array([[1.0 / 3.0, 0.0, 320.1], [0.0, 2.0 / 7.0, 240.9], [0.0, 0.0, 1.0]]),
        distortion=np.array([[1e-17, -0.1, 0.2, 0.0]]),
        resolution=(640, 480),
    )
    again = parse_calibration(format_calibration(intr), resolution=(640, 480))
    assert np.array_equal(again.matrix, intr.matrix)
    assert np.array_equal(again.distortion, intr.distortion)


def test_missing_file_raises_calibration_missing(tmp_path):
    with pytest.raises(CalibrationMissing):
        load_calibration(str(tmp_path / "nope.txt"))


@pytest.mark.parametrize(
    "text",
    [
        "3 3\n1 0 0\n0 1 0\n",  # too few matrix values
        "3 3\n500 0 320 0 500 240 0 0 1\n1 5\n0 0 0\n",  # too few distortion values
        "3 3\n500 0 320 0 500 240 0 0 1\n1 2\n0 0 9\n",  # trailing value
        "3 3\n500 0 320 0 500 240 0 0 1\n",  # distortion block missing
        "3 x\n500 0 320 0 500 240 0 0 1\n1 1\n0\n",  # bad dimension token
        "2 2\n500 0 0 500\n1 1\n0\n",  # not 3x3
        "3 3\n0 0 320 0 500 240 0 0 1\n1 1\n0\n",  # zero focal length
        "3 3\n500 0 320 0 500 abc 0 0 1\n1 1\n0\n",  # non-numeric value
    ],
)
def test_malformed_files_raise_calibration_malformed(tmp_path, text):
    path = tmp_path / "bad.txt"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(CalibrationMalformed):
        load_calibration(str(path))
