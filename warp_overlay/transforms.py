"""Perspective transform utilities for mapping a video rectangle onto a quad."""

from __future__ import annotations

import numpy as np
import cv2

# Minimum quad area in square pixels before it is treated as degenerate.
MIN_QUAD_AREA = 16.0


def source_rect(width: float, height: float) -> np.ndarray:
    """
    Corners of a width x height rectangle in canonical order.

    Returns:
        (4, 2) float32 array: (0,0), (W,0), (W,H), (0,H)
    """
    return np.array(
        [[0.0, 0.0], [width, 0.0], [width, height], [0.0, height]],
        dtype=np.float32,
    )


def build_perspective_transform(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """
    Solve the 3x3 homography mapping four source points onto four destination points.

    The bottom-right entry is normalized to 1. Inputs are not checked for
    degeneracy here; callers gate on ``is_degenerate_quad`` first.

    Args:
        src: (4, 2) source points
        dst: (4, 2) destination points, same order as ``src``

    Returns:
        3x3 float64 matrix
    """
    src = np.asarray(src, dtype=np.float32).reshape(4, 2)
    dst = np.asarray(dst, dtype=np.float32).reshape(4, 2)
    return cv2.getPerspectiveTransform(src, dst)


def apply_transform(matrix: np.ndarray, points: np.ndarray) -> np.ndarray:
    """Project (N, 2) points through a 3x3 homography."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 1, 2)
    out = cv2.perspectiveTransform(pts, np.asarray(matrix, dtype=np.float64))
    return out.reshape(-1, 2)


def polygon_area(points: np.ndarray) -> float:
    """Unsigned shoelace area of a closed polygon."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    x, y = pts[:, 0], pts[:, 1]
    return 0.5 * abs(float(np.dot(x, np.roll(y, -1)) - np.dot(y, np.roll(x, -1))))


def is_degenerate_quad(points: np.ndarray, min_area: float = MIN_QUAD_AREA) -> bool:
    """
    True when a quad cannot produce a stable homography.

    Rejects coincident vertices, any three (near-)collinear vertices, tiny
    area and non-convex (including self-intersecting) vertex orders.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(4, 2)
    if not np.all(np.isfinite(pts)):
        return True

    area = polygon_area(pts)
    if area < min_area:
        return True

    span = float(np.max(np.ptp(pts, axis=0)))
    tol = 1e-3 * span * span

    # every triple of vertices must span a non-trivial triangle
    for skip in range(4):
        a, b, c = (pts[i] for i in range(4) if i != skip)
        cross = (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])
        if abs(cross) <= tol:
            return True

    # turn direction must agree at every vertex
    signs = []
    for i in range(4):
        a, b, c = pts[i], pts[(i + 1) % 4], pts[(i + 2) % 4]
        cross = (b[0] - a[0]) * (c[1] - b[1]) - (b[1] - a[1]) * (c[0] - b[0])
        signs.append(cross > 0)
    return not (all(signs) or not any(signs))
