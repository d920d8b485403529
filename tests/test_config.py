import pytest

from vruco.config import AppConfig, parse_args, validate_config


def test_validate_config_accepts_defaults():
    cfg = AppConfig()
    validate_config(cfg)


def test_defaults_match_ps3_eye_setup():
    cfg = parse_args([])
    assert (cfg.camera_width, cfg.camera_height, cfg.camera_fps) == (640, 480, 60)
    assert cfg.calibration == "ps3_eye_calibration.txt"
    assert cfg.marker_dictionary == "ARUCO_MIP_36h12"
    assert cfg.marker_size == pytest.approx(0.0744)
    assert (cfg.center_x, cfg.center_y, cfg.center_z) == (0.0, 1.75, 0.0)
    assert cfg.room_setup_anchor_id is None


def test_validate_config_rejects_non_positive_marker_size():
    cfg = AppConfig(marker_size=0.0)
    with pytest.raises(ValueError, match="--marker-size"):
        validate_config(cfg)


def test_validate_config_rejects_invalid_camera_fps():
    cfg = AppConfig(camera_fps=0)
    with pytest.raises(ValueError, match="--camera-fps"):
        validate_config(cfg)


def test_validate_config_rejects_negative_anchor_id():
    cfg = AppConfig(room_setup_anchor_id=-1)
    with pytest.raises(ValueError, match="--room-setup-anchor-id"):
        validate_config(cfg)


def test_validate_config_rejects_empty_shm_name():
    cfg = AppConfig(shm_name=" ")
    with pytest.raises(ValueError, match="--shm-name"):
        validate_config(cfg)


def test_validate_config_rejects_non_finite_center():
    cfg = AppConfig(center_y=float("nan"))
    with pytest.raises(ValueError, match="--center"):
        validate_config(cfg)


def test_parse_args_reads_yaml_config(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "\n".join(
            [
                "calibration: calib/eye.txt",
                "marker-size: 0.1664",
                "marker_map: room.yaml",
                "room_setup_anchor_id: 7",
                "camera_index: 1",
                "log_level: debug",
            ]
        ),
        encoding="utf-8",
    )
    cfg = parse_args(["--config", str(cfg_path)])
    assert cfg.calibration == "calib/eye.txt"
    assert cfg.marker_size == pytest.approx(0.1664)
    assert cfg.marker_map == "room.yaml"
    assert cfg.room_setup_anchor_id == 7
    assert cfg.camera_index == 1
    assert cfg.log_level == "debug"


def test_parse_args_cli_overrides_yaml(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "\n".join(
            [
                "center_y: 1.60",
                "room_setup_frames: 300",
            ]
        ),
        encoding="utf-8",
    )
    cfg = parse_args(
        [
            "--config",
            str(cfg_path),
            "--center-y",
            "1.8",
        ]
    )
    assert cfg.center_y == pytest.approx(1.8)
    assert cfg.room_setup_frames == 300


def test_parse_args_rejects_unknown_yaml_key(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "\n".join(
            [
                "marker_size: 0.05",
                "bad_key: 1",
            ]
        ),
        encoding="utf-8",
    )
    with pytest.raises(SystemExit):
        parse_args(["--config", str(cfg_path)])


def test_parse_args_rejects_bad_yaml_value(tmp_path):
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text("camera_width: wide\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        parse_args(["--config", str(cfg_path)])


def test_parse_args_rejects_missing_config_file(tmp_path):
    with pytest.raises(SystemExit):
        parse_args(["--config", str(tmp_path / "missing.yaml")])


def test_parse_args_rejects_invalid_cli_value():
    with pytest.raises(SystemExit):
        parse_args(["--ransac-iterations", "0"])
