from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Optional

from .errors import ConfigError

BACKENDS = ("vpi", "opencv")
VPI_BACKENDS = ("cuda", "vic", "cpu")


@dataclass
class OverlayConfig:
    video_path: Optional[str] = None
    camera: int | str = 0
    width: int = 640
    height: int = 480
    fps: int = 30
    buffer_size: int = 3
    aruco_dict: str = "4x4_50"
    backend: str = "vpi"  # "vpi", "opencv"
    vpi_backend: str = "cuda"  # "cuda", "vic", "cpu"
    window_name: str = "Capture"
    display: bool = True
    dry_run: bool = False
    max_frames: Optional[int] = None
    log_level: str = "INFO"
    log_file: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)

    def apply_overrides(self, **kwargs: Any) -> "OverlayConfig":
        for key, value in kwargs.items():
            if value is not None and hasattr(self, key):
                setattr(self, key, value)
        return self

    def validate(self) -> "OverlayConfig":
        if not self.video_path:
            raise ConfigError("Video file not specified")
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"Invalid capture size: {self.width}x{self.height}")
        if self.fps <= 0:
            raise ConfigError(f"Invalid fps: {self.fps}")
        if self.buffer_size <= 0:
            raise ConfigError(f"Invalid buffer size: {self.buffer_size}")
        if self.backend not in BACKENDS:
            raise ConfigError(f"Unknown backend: {self.backend} (expected one of {BACKENDS})")
        if self.vpi_backend not in VPI_BACKENDS:
            raise ConfigError(
                f"Unknown VPI backend: {self.vpi_backend} (expected one of {VPI_BACKENDS})"
            )
        if self.max_frames is not None and self.max_frames <= 0:
            raise ConfigError(f"max_frames must be positive, got {self.max_frames}")
        return self


def _load_yaml(path: Path) -> dict[str, Any]:
    try:
        import yaml  # type: ignore
    except Exception as exc:  # pragma: no cover - optional dependency
        raise ConfigError(
            "YAML config requested but PyYAML is not installed. "
            "Install with: pip install pyyaml"
        ) from exc
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ConfigError("YAML config root must be a mapping")
    return data


def _normalize_camera(value: Any) -> int | str:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    return str(value)


def load_config(path: str | Path) -> OverlayConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigError(f"Config not found: {p}")

    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = _load_yaml(p)
    else:
        with p.open("r", encoding="utf-8") as fp:
            try:
                raw = json.load(fp)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Invalid JSON in {p}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a JSON/YAML object")

    cfg = OverlayConfig()
    try:
        video = raw.get("video_path", cfg.video_path)
        cfg.video_path = str(video) if video is not None else None
        cfg.camera = _normalize_camera(raw.get("camera", cfg.camera))
        cfg.width = int(raw.get("width", cfg.width))
        cfg.height = int(raw.get("height", cfg.height))
        cfg.fps = int(raw.get("fps", cfg.fps))
        cfg.buffer_size = int(raw.get("buffer_size", cfg.buffer_size))
        cfg.aruco_dict = str(raw.get("aruco_dict", cfg.aruco_dict))
        cfg.backend = str(raw.get("backend", cfg.backend)).lower()
        cfg.vpi_backend = str(raw.get("vpi_backend", cfg.vpi_backend)).lower()
        cfg.window_name = str(raw.get("window_name", cfg.window_name))
        cfg.display = bool(raw.get("display", cfg.display))
        cfg.dry_run = bool(raw.get("dry_run", cfg.dry_run))
        cfg.max_frames = raw.get("max_frames", cfg.max_frames)
        if cfg.max_frames is not None:
            cfg.max_frames = int(cfg.max_frames)
        cfg.log_level = str(raw.get("log_level", cfg.log_level)).upper()
        log_file = raw.get("log_file", cfg.log_file)
        cfg.log_file = str(log_file) if log_file is not None else None
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value in {p}: {exc}") from exc

    return cfg
