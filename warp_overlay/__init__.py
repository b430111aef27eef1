"""Marker-anchored video overlay: warp a video into an ArUco quad of a live feed."""

from .config import OverlayConfig
from .worker import OverlayWorker

__all__ = ["OverlayConfig", "OverlayWorker"]
