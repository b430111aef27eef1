import cv2
import numpy as np
import pytest

from warp_overlay.backends import OpenCVBackend
from warp_overlay.compositor import composite, quad_mask
from warp_overlay.overlay_types import Quad
from warp_overlay.transforms import build_perspective_transform, source_rect

QUAD = Quad(((20.0, 10.0), (80.0, 15.0), (75.0, 70.0), (25.0, 60.0)))


def _live():
    rng = np.random.default_rng(3)
    return rng.integers(0, 256, size=(90, 100, 3), dtype=np.uint8)


def _warped(live):
    """Stand-in for a warp result: zero outside the quad, bright inside."""
    mask = quad_mask(live.shape, QUAD)
    warped = np.zeros_like(live)
    warped[mask > 0] = (10, 200, 250)
    return warped, mask


def test_outside_pixels_unchanged():
    live = _live()
    warped, mask = _warped(live)

    out = composite(live, QUAD, warped)

    outside = mask == 0
    assert np.array_equal(out[outside], live[outside])


def test_inside_shows_only_warped_frame():
    live = _live()
    warped, mask = _warped(live)

    out = composite(live, QUAD, warped)

    inside = mask > 0
    assert np.array_equal(out[inside], warped[inside])


def test_live_frame_not_modified():
    live = _live()
    before = live.copy()
    warped, _ = _warped(live)
    composite(live, QUAD, warped)
    assert np.array_equal(live, before)


def test_addition_saturates_inside_quad_only():
    live = np.full((90, 100, 3), 250, dtype=np.uint8)
    warped = np.full_like(live, 100)
    out = composite(live, QUAD, warped)
    # warped content outside the quad is never added
    assert out[0, 0].tolist() == [250, 250, 250]
    assert out[40, 50].tolist() == [100, 100, 100]

    live[40, 50] = 200
    bright = np.full_like(live, 255)
    assert composite(live, QUAD, bright)[40, 50].tolist() == [255, 255, 255]


def test_sub_pixel_quad_leaves_outside_untouched(secondary_image):
    corners = np.array(
        [[150.3, 100.7], [500.2, 120.4], [480.6, 380.1], [170.5, 360.9]], dtype=np.float32
    )
    quad = Quad(tuple(map(tuple, corners.tolist())))
    rng = np.random.default_rng(7)
    live = rng.integers(0, 256, size=(480, 640, 3), dtype=np.uint8)

    backend = OpenCVBackend().open((640, 480), (320, 240))
    matrix = build_perspective_transform(source_rect(640, 480), corners)
    warped = backend.warp(secondary_image, np.zeros_like(live), matrix)
    backend.close()

    out = composite(live, quad, warped)

    outside = quad_mask(live.shape, quad) == 0
    assert np.array_equal(out[outside], live[outside])

    contour = corners.reshape(-1, 1, 2)
    for y, x in ((99, 148), (107, 300), (240, 159), (377, 400), (250, 492)):
        assert cv2.pointPolygonTest(contour, (float(x), float(y)), True) <= -1.5
        assert out[y, x].tolist() == live[y, x].tolist()


def test_shape_mismatch_rejected():
    live = _live()
    with pytest.raises(ValueError):
        composite(live, QUAD, np.zeros((10, 10, 3), dtype=np.uint8))


def test_quad_mask_single_channel():
    mask = quad_mask((90, 100, 3), QUAD)
    assert mask.shape == (90, 100)
    assert mask[40, 50] == 255
    assert mask[0, 0] == 0
