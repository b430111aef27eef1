from __future__ import annotations

import cv2
import numpy as np

from .overlay_types import Quad

BACKGROUND = (0, 0, 0)

# fixed-point fractional bits for rasterising sub-pixel quad corners
SHIFT = 4


def quad_mask(shape: tuple[int, ...], quad: Quad) -> np.ndarray:
    """Single-channel uint8 mask, 255 inside the quad."""
    mask = np.zeros(shape[:2], dtype=np.uint8)
    cv2.fillConvexPoly(mask, quad.as_fixed_array(SHIFT), 255, lineType=cv2.LINE_8, shift=SHIFT)
    return mask


def composite(live: np.ndarray, quad: Quad, warped: np.ndarray) -> np.ndarray:
    """
    Erase the quad region of ``live`` and add the warped secondary frame.

    Both the erase and the addition are restricted to the quad mask, so
    pixels outside the quad keep their live values even where the warp
    blurred past the quad's edges.
    Returns a new frame; ``live`` is left untouched.
    """
    if warped.shape != live.shape:
        raise ValueError(
            f"Warped frame shape {warped.shape} does not match live frame {live.shape}"
        )
    mask = quad_mask(live.shape, quad)
    out = live.copy()
    out[mask > 0] = BACKGROUND
    cv2.add(warped, out, dst=out, mask=mask)
    return out
