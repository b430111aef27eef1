from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass
class Frame:
    idx: int
    ts_iso: str
    image: Any  # BGR uint8 ndarray (H, W, 3)


@dataclass
class Detection:
    marker_id: int
    corners: Any  # (4,2) float32 ndarray, clockwise from top-left


@dataclass(frozen=True)
class Quad:
    """Target region vertices in canonical order: TL, TR, BR, BL."""

    points: tuple[tuple[float, float], ...]

    def as_array(self) -> np.ndarray:
        return np.array(self.points, dtype=np.float32).reshape(4, 2)

    def as_fixed_array(self, shift: int = 0) -> np.ndarray:
        """Integer vertices with ``shift`` fractional bits, for cv2 drawing calls."""
        return np.round(self.as_array() * (1 << shift)).astype(np.int32)
