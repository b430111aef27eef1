import numpy as np
import pytest

from warp_overlay.quad import resolve_quad
from warp_overlay.transforms import (
    apply_transform,
    build_perspective_transform,
    is_degenerate_quad,
    polygon_area,
    source_rect,
)

from conftest import quad_detections


def test_source_rect_corners():
    rect = source_rect(100, 50)
    assert rect.dtype == np.float32
    assert rect.tolist() == [[0, 0], [100, 0], [100, 50], [0, 50]]


def test_maps_rectangle_onto_square_quad():
    """100x50 rectangle onto a square: each corner lands on its vertex."""
    quad = np.array([[200, 100], [300, 100], [300, 200], [200, 200]], dtype=np.float32)
    m = build_perspective_transform(source_rect(100, 50), quad)

    assert m.shape == (3, 3)
    assert m[2, 2] == pytest.approx(1.0)
    mapped = apply_transform(m, [[0, 0], [100, 0], [100, 50], [0, 50]])
    assert np.allclose(mapped, quad, atol=1e-6)


def test_round_trip_on_random_convex_quads():
    rng = np.random.default_rng(7)
    src = source_rect(640, 480)
    for _ in range(25):
        base = np.array([[100, 80], [540, 80], [540, 400], [100, 400]], dtype=np.float32)
        quad = base + rng.uniform(-60, 60, size=(4, 2)).astype(np.float32)
        assert not is_degenerate_quad(quad)
        m = build_perspective_transform(src, quad)
        assert np.allclose(apply_transform(m, src), quad, atol=1e-3)


def test_same_input_gives_identical_matrix():
    dets = quad_detections()
    src = source_rect(640, 480)
    m1 = build_perspective_transform(src, resolve_quad(dets).as_array())
    m2 = build_perspective_transform(src, resolve_quad(dets).as_array())
    assert m1.tobytes() == m2.tobytes()


def test_polygon_area():
    assert polygon_area(source_rect(10, 4)) == pytest.approx(40.0)


@pytest.mark.parametrize(
    "quad",
    [
        # three collinear vertices
        [[0, 0], [50, 0], [100, 0], [0, 100]],
        # coincident vertices
        [[0, 0], [0, 0], [100, 100], [0, 100]],
        # bow-tie (self-intersecting)
        [[0, 0], [100, 100], [100, 0], [0, 100]],
        # concave
        [[0, 0], [100, 0], [30, 30], [0, 100]],
        # tiny
        [[0, 0], [2, 0], [2, 2], [0, 2]],
        # not finite
        [[0, 0], [np.nan, 0], [100, 100], [0, 100]],
    ],
)
def test_degenerate_quads(quad):
    assert is_degenerate_quad(np.array(quad, dtype=np.float32))


def test_regular_quads_are_not_degenerate():
    assert not is_degenerate_quad(source_rect(100, 50))
    # clockwise or counter-clockwise both accepted
    assert not is_degenerate_quad(source_rect(100, 50)[::-1].copy())
