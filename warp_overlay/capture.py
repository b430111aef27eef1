from __future__ import annotations

import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Optional

import cv2
import numpy as np

from .detect import get_dict
from .errors import ConfigError
from .overlay_types import Frame

logger = logging.getLogger(__name__)


def _ts() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%S")


class BaseCapture(ABC):
    width: int = 0
    height: int = 0

    @property
    def size(self) -> tuple[int, int]:
        return (self.width, self.height)

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next_frame(self) -> Frame | None: ...

    @abstractmethod
    def stop(self) -> None: ...


class CameraCapture(BaseCapture):
    """
    Live camera through V4L2.

    Width, height, fps and buffer depth are requested, then read back: the
    driver may not honour the request, and the pipeline sizes its buffers
    from the negotiated values.
    """

    def __init__(self, device: int | str, fps: int, width: int, height: int, buffer_size: int = 3):
        self.device = device
        self.fps = fps
        self.width = width
        self.height = height
        self.buffer_size = buffer_size
        self.cap: Any = None
        self.idx = 0

    def _open(self):
        if isinstance(self.device, int):
            return cv2.VideoCapture(self.device, cv2.CAP_V4L2)
        dev_str = str(self.device)
        match = re.match(r"^/dev/video(\d+)$", dev_str)
        if match:
            return cv2.VideoCapture(int(match.group(1)), cv2.CAP_V4L2)
        return cv2.VideoCapture(dev_str)

    def start(self) -> None:
        self.cap = self._open()
        if not self.cap.isOpened():
            raise ConfigError(f"Unable to open camera: {self.device}")
        logger.info("camera backend: %s", self.cap.getBackendName())

        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, float(self.width))
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, float(self.height))
        self.cap.set(cv2.CAP_PROP_FPS, float(self.fps))
        self.cap.set(cv2.CAP_PROP_BUFFERSIZE, float(self.buffer_size))

        self.width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        self.fps = int(self.cap.get(cv2.CAP_PROP_FPS))
        self.buffer_size = int(self.cap.get(cv2.CAP_PROP_BUFFERSIZE))
        logger.info(
            "camera negotiated: %dx%d fps=%d buffer=%d",
            self.width, self.height, self.fps, self.buffer_size,
        )
        self.idx = 0

    def next_frame(self) -> Frame | None:
        if self.cap is None:
            return None
        ok, img = self.cap.read()
        if not ok or img is None or img.size == 0:
            return None
        self.idx += 1
        return Frame(self.idx, _ts(), img)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


class VideoFileSource(BaseCapture):
    """
    Secondary video read sequentially; ``next_frame`` returns None once exhausted.

    ``path`` is anything cv2.VideoCapture opens: a file, an image-sequence
    pattern such as ``frames/%04d.png`` or a stream URL.
    """

    def __init__(self, path: str):
        self.path = path
        self.cap: Any = None
        self.idx = 0

    def start(self) -> None:
        self.cap = cv2.VideoCapture(self.path)
        if not self.cap.isOpened():
            self.cap.release()
            self.cap = None
            raise ConfigError(f"Can't open the video file: {self.path}")
        self.width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH))
        self.height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
        logger.info("secondary video %s: %dx%d", self.path, self.width, self.height)
        self.idx = 0

    def next_frame(self) -> Frame | None:
        if self.cap is None:
            return None
        ok, img = self.cap.read()
        if not ok:
            self.stop()
            return None
        self.idx += 1
        return Frame(self.idx, _ts(), img)

    def stop(self) -> None:
        if self.cap is not None:
            self.cap.release()
            self.cap = None


def render_marker(dictionary, marker_id: int, side: int) -> np.ndarray:
    if hasattr(cv2.aruco, "generateImageMarker"):           # OpenCV >= 4.7
        return cv2.aruco.generateImageMarker(dictionary, marker_id, side)
    return cv2.aruco.drawMarker(dictionary, marker_id, side)


def marker_scene(
    width: int,
    height: int,
    quad: np.ndarray,
    dictionary,
    marker_side: int = 60,
    ids: tuple[int, ...] = (0, 1, 2, 3),
    background: int = 200,
) -> np.ndarray:
    """
    Render a BGR frame with upright markers whose outward corners sit on the
    vertices of an axis-aligned ``quad`` (TL, TR, BR, BL). Marker ``ids[k]``
    is drawn at vertex k.
    """
    img = np.full((height, width), background, dtype=np.uint8)
    q = np.asarray(quad, dtype=np.int32).reshape(4, 2)
    s = marker_side
    origins = (
        (q[0][0], q[0][1]),
        (q[1][0] - s, q[1][1]),
        (q[2][0] - s, q[2][1] - s),
        (q[3][0], q[3][1] - s),
    )
    for vertex, marker_id in enumerate(ids):
        x, y = origins[vertex]
        img[y:y + s, x:x + s] = render_marker(dictionary, marker_id, s)
    return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)


class SyntheticCapture(BaseCapture):
    """Repeats one rendered marker scene; stands in for a camera on dry runs."""

    def __init__(self, fps: int, width: int, height: int, image: Optional[np.ndarray] = None,
                 max_frames: Optional[int] = None, dict_name: str = "4x4_50"):
        self.fps = fps
        self.dict_name = dict_name
        self.width = width
        self.height = height
        self.image = image
        self.max_frames = max_frames
        self.idx = 0
        self._last = 0.0

    def start(self) -> None:
        if self.image is None:
            mx, my = self.width // 8, self.height // 8
            quad = np.array(
                [[mx, my], [self.width - mx, my], [self.width - mx, self.height - my], [mx, self.height - my]]
            )
            side = max(24, min(self.width, self.height) // 8)
            self.image = marker_scene(self.width, self.height, quad, get_dict(self.dict_name), side)
        self._last = time.time()

    def next_frame(self) -> Frame | None:
        if self.max_frames is not None and self.idx >= self.max_frames:
            return None
        now = time.time()
        if self.fps > 0:
            wait = max(0.0, (1.0 / self.fps) - (now - self._last))
            if wait > 0:
                time.sleep(wait)
        self._last = time.time()
        self.idx += 1
        return Frame(self.idx, _ts(), self.image.copy())

    def stop(self) -> None:
        return None
