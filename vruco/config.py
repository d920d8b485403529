"""CLI config and defaults."""

from __future__ import annotations

import argparse
import math
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass(frozen=True)
class AppConfig:
    calibration: str = "ps3_eye_calibration.txt"
    camera_index: int = 0
    camera_probe_count: int = 4
    camera_width: int = 640
    camera_height: int = 480
    camera_fps: int = 60
    marker_dictionary: str = "ARUCO_MIP_36h12"
    marker_size: float = 0.0744
    marker_map: str = ""
    center_x: float = 0.0
    center_y: float = 1.75
    center_z: float = 0.0
    room_setup_frames: int = 150
    room_setup_min_observations: int = 3
    room_setup_anchor_id: Optional[int] = None
    ransac_reprojection_error: float = 8.0
    ransac_iterations: int = 100
    shm_name: str = "vruco_pose"
    idle_sleep_ms: float = 1.0
    log_level: str = "info"


_APP_CONFIG_FIELDS = {f.name for f in fields(AppConfig)}
_INT_FIELDS = {
    "camera_index",
    "camera_probe_count",
    "camera_width",
    "camera_height",
    "camera_fps",
    "room_setup_frames",
    "room_setup_min_observations",
    "ransac_iterations",
}
_OPTIONAL_INT_FIELDS = {"room_setup_anchor_id"}
_FLOAT_FIELDS = {
    "marker_size",
    "center_x",
    "center_y",
    "center_z",
    "ransac_reprojection_error",
    "idle_sleep_ms",
}
_STRING_FIELDS = {
    "calibration",
    "marker_dictionary",
    "marker_map",
    "shm_name",
    "log_level",
}


def _coerce_config_value(key: str, value: Any) -> Any:
    try:
        if key in _INT_FIELDS:
            if isinstance(value, bool):
                raise TypeError("bool is not an int setting")
            return int(value)
        if key in _OPTIONAL_INT_FIELDS:
            return None if value is None else int(value)
        if key in _FLOAT_FIELDS:
            return float(value)
        if key in _STRING_FIELDS:
            return "" if value is None else str(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"invalid value for config key '{key}': {value!r}") from exc
    raise ValueError(f"unsupported config key '{key}'")


def _normalize_config_key(raw_key: Any) -> str:
    if not isinstance(raw_key, str):
        raise ValueError(f"config key must be string, got {type(raw_key).__name__}")
    key = raw_key.strip().replace("-", "_")
    if not key:
        raise ValueError("config key cannot be empty")
    return key


def _load_yaml_config(path: str) -> dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise ValueError(f"--config file not found: {p}")
    if not p.is_file():
        raise ValueError(f"--config must point to a file: {p}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"failed to read --config file {p}: {exc}") from exc
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ValueError(f"failed to parse YAML config {p}: {exc}") from exc

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"--config root must be a mapping/object, got {type(loaded).__name__}")

    normalized: dict[str, Any] = {}
    for raw_key, raw_value in loaded.items():
        key = _normalize_config_key(raw_key)
        if key not in _APP_CONFIG_FIELDS:
            raise ValueError(f"unknown config key in {p}: {raw_key!r}")
        normalized[key] = _coerce_config_value(key, raw_value)
    return normalized


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Single-camera ArUco head tracker publishing 6DoF poses to shared memory."
    )
    ap.add_argument(
        "--config",
        type=str,
        default="",
        help="YAML config file path. CLI args override YAML values.",
    )
    ap.add_argument(
        "--calibration",
        type=str,
        default="ps3_eye_calibration.txt",
        help="Camera intrinsics file (rows cols + values, matrix then distortion).",
    )
    ap.add_argument("--camera-index", type=int, default=0, help="OpenCV camera index.")
    ap.add_argument(
        "--camera-probe-count",
        type=int,
        default=4,
        help="Number of device indices probed when enumerating cameras.",
    )
    ap.add_argument("--camera-width", type=int, default=640, help="Camera frame width.")
    ap.add_argument("--camera-height", type=int, default=480, help="Camera frame height.")
    ap.add_argument("--camera-fps", type=int, default=60, help="Requested camera frame rate.")
    ap.add_argument(
        "--marker-dictionary",
        type=str,
        default="ARUCO_MIP_36h12",
        help="ArUco dictionary name (cv2.aruco DICT_* without the prefix).",
    )
    ap.add_argument(
        "--marker-size",
        type=float,
        default=0.0744,
        help="Printed marker square size in meters.",
    )
    ap.add_argument(
        "--marker-map",
        type=str,
        default="",
        help="YAML marker map loaded at startup and rewritten after 'calibrate' (empty=off).",
    )
    ap.add_argument("--center-x", type=float, default=0.0, help="Room centre offset x (m).")
    ap.add_argument("--center-y", type=float, default=1.75, help="Room centre offset y (m).")
    ap.add_argument("--center-z", type=float, default=0.0, help="Room centre offset z (m).")
    ap.add_argument(
        "--room-setup-frames",
        type=int,
        default=150,
        help="Frames captured by one room setup run.",
    )
    ap.add_argument(
        "--room-setup-min-observations",
        type=int,
        default=3,
        help="Shared views needed before a marker is linked into the map.",
    )
    ap.add_argument(
        "--room-setup-anchor-id",
        type=int,
        default=None,
        help="Marker id defining the room origin (default: most observed marker).",
    )
    ap.add_argument(
        "--ransac-reprojection-error",
        type=float,
        default=8.0,
        help="RANSAC PnP inlier threshold in pixels.",
    )
    ap.add_argument(
        "--ransac-iterations",
        type=int,
        default=100,
        help="RANSAC PnP iteration count.",
    )
    ap.add_argument(
        "--shm-name",
        type=str,
        default="vruco_pose",
        help="Shared memory block name of the pose record.",
    )
    ap.add_argument(
        "--idle-sleep-ms",
        type=float,
        default=1.0,
        help="Sleep while the consumer has not read the last pose.",
    )
    ap.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        default="info",
        help="Global log level.",
    )
    return ap


def validate_config(cfg: AppConfig) -> None:
    if not str(cfg.calibration).strip():
        raise ValueError("--calibration must be provided")
    if cfg.camera_index < 0:
        raise ValueError(f"--camera-index must be >= 0, got {cfg.camera_index}")
    if cfg.camera_probe_count <= 0:
        raise ValueError(f"--camera-probe-count must be > 0, got {cfg.camera_probe_count}")
    if cfg.camera_width <= 0:
        raise ValueError(f"--camera-width must be > 0, got {cfg.camera_width}")
    if cfg.camera_height <= 0:
        raise ValueError(f"--camera-height must be > 0, got {cfg.camera_height}")
    if cfg.camera_fps <= 0:
        raise ValueError(f"--camera-fps must be > 0, got {cfg.camera_fps}")
    if not str(cfg.marker_dictionary).strip():
        raise ValueError("--marker-dictionary must be non-empty")
    if not (math.isfinite(cfg.marker_size) and cfg.marker_size > 0.0):
        raise ValueError(f"--marker-size must be > 0, got {cfg.marker_size}")
    if not all(math.isfinite(v) for v in (cfg.center_x, cfg.center_y, cfg.center_z)):
        raise ValueError("--center-x/--center-y/--center-z must be finite numbers")
    if cfg.room_setup_frames <= 0:
        raise ValueError(f"--room-setup-frames must be > 0, got {cfg.room_setup_frames}")
    if cfg.room_setup_min_observations <= 0:
        raise ValueError(
            f"--room-setup-min-observations must be > 0, got {cfg.room_setup_min_observations}"
        )
    if cfg.room_setup_anchor_id is not None and cfg.room_setup_anchor_id < 0:
        raise ValueError(
            f"--room-setup-anchor-id must be >= 0, got {cfg.room_setup_anchor_id}"
        )
    if cfg.ransac_reprojection_error <= 0.0:
        raise ValueError(
            f"--ransac-reprojection-error must be > 0, got {cfg.ransac_reprojection_error}"
        )
    if cfg.ransac_iterations <= 0:
        raise ValueError(f"--ransac-iterations must be > 0, got {cfg.ransac_iterations}")
    if not str(cfg.shm_name).strip():
        raise ValueError("--shm-name must be non-empty")
    if cfg.idle_sleep_ms < 0.0:
        raise ValueError(f"--idle-sleep-ms must be >= 0, got {cfg.idle_sleep_ms}")
    if cfg.log_level not in {"debug", "info", "warning", "error"}:
        raise ValueError(
            f"--log-level must be one of debug|info|warning|error, got {cfg.log_level}"
        )


def parse_args(argv=None) -> AppConfig:
    bootstrap = argparse.ArgumentParser(add_help=False)
    bootstrap.add_argument("--config", type=str, default="")
    bootstrap_ns, _ = bootstrap.parse_known_args(argv)

    yaml_cfg: dict[str, Any] = {}
    yaml_error: Optional[str] = None
    if bootstrap_ns.config:
        try:
            yaml_cfg = _load_yaml_config(bootstrap_ns.config)
        except ValueError as exc:
            yaml_error = str(exc)

    ap = build_arg_parser()
    if yaml_error is not None:
        ap.error(yaml_error)
    if yaml_cfg:
        ap.set_defaults(**yaml_cfg)
    args = ap.parse_args(argv)

    cfg = AppConfig(**{name: getattr(args, name) for name in _APP_CONFIG_FIELDS})
    try:
        validate_config(cfg)
    except ValueError as exc:
        ap.error(str(exc))
    return cfg
