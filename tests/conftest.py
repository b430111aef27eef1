from contextlib import contextmanager
from unittest.mock import MagicMock

import numpy as np
import pytest

from warp_overlay.capture import marker_scene
from warp_overlay.detect import get_dict
from warp_overlay.overlay_types import Detection, Frame

WIDTH, HEIGHT = 640, 480
SCENE_QUAD = np.array([[100, 80], [540, 80], [540, 400], [100, 400]], dtype=np.int32)
MARKER_SIDE = 60


class FakeCapture:
    def __init__(self, frames, width=WIDTH, height=HEIGHT):
        """Queue deterministic frames to emulate a camera or video file."""
        self.frames = list(frames)
        self.width = width
        self.height = height
        self.started = False
        self.stop_calls = 0
        self.reads = 0

    @property
    def size(self):
        return (self.width, self.height)

    def start(self):
        self.started = True

    def next_frame(self):
        """Return the next frame or None when depleted."""
        self.reads += 1
        if self.frames:
            return self.frames.pop(0)
        return None

    def stop(self):
        self.stop_calls += 1


def make_fake_vpi(result):
    """Stand-in for the vpi module; CPU readback yields ``result``."""
    vpi = MagicMock(name="vpi")
    vpi.Image.side_effect = lambda size, fmt: MagicMock(name=f"vpi.Image{size}")

    def _asimage(array, fmt):
        wrapper = MagicMock(name="vpi.asimage")

        @contextmanager
        def _lock():
            yield result

        wrapper.rlock_cpu.side_effect = _lock
        return wrapper

    vpi.asimage.side_effect = _asimage
    return vpi


def make_frames(image, count):
    return [Frame(i + 1, "ts", image.copy()) for i in range(count)]


def square_corners(x, y, side=MARKER_SIDE):
    return np.array(
        [[x, y], [x + side, y], [x + side, y + side], [x, y + side]], dtype=np.float32
    )


def quad_detections(quad=SCENE_QUAD, side=MARKER_SIDE):
    """Detections whose designated corners land exactly on ``quad``."""
    q = np.asarray(quad, dtype=np.float32)
    return [
        Detection(0, square_corners(q[0][0], q[0][1], side)),
        Detection(1, square_corners(q[1][0] - side, q[1][1], side)),
        Detection(2, square_corners(q[2][0] - side, q[2][1] - side, side)),
        Detection(3, square_corners(q[3][0], q[3][1] - side, side)),
    ]


@pytest.fixture
def dictionary():
    return get_dict("4x4_50")


@pytest.fixture
def scene(dictionary):
    """Live frame holding markers 0..3 on the corners of SCENE_QUAD."""
    return marker_scene(WIDTH, HEIGHT, SCENE_QUAD, dictionary, MARKER_SIDE)


@pytest.fixture
def partial_scene(dictionary):
    """Live frame holding only markers 0 and 2."""
    full = marker_scene(WIDTH, HEIGHT, SCENE_QUAD, dictionary, MARKER_SIDE)
    blank = np.full_like(full, 200)
    out = blank.copy()
    s = MARKER_SIDE
    x0, y0 = SCENE_QUAD[0]
    x2, y2 = SCENE_QUAD[2]
    out[y0:y0 + s, x0:x0 + s] = full[y0:y0 + s, x0:x0 + s]
    out[y2 - s:y2, x2 - s:x2] = full[y2 - s:y2, x2 - s:x2]
    return out


@pytest.fixture
def secondary_image():
    """Uniform 320x240 BGR frame."""
    img = np.zeros((240, 320, 3), dtype=np.uint8)
    img[:] = (40, 160, 220)
    return img
