"""Resolve the target quadrilateral from the four corner markers."""

from __future__ import annotations

from typing import Optional, Sequence

from .overlay_types import Detection, Quad

QUAD_IDS = (0, 1, 2, 3)

# Corner index taken from marker k for quad vertex k. ArUco corners run
# clockwise from the tag's top-left, so each tag contributes the corner that
# faces outward: TL of marker 0, TR of marker 1, BR of marker 2, BL of marker 3.
# Assumes upright tags; a rotated tag contributes a different physical corner.
CORNER_FOR_VERTEX = (0, 1, 2, 3)


def is_complete(detections: Sequence[Detection]) -> bool:
    """True when the detections are exactly one of each marker id 0..3."""
    if len(detections) != len(QUAD_IDS):
        return False
    return sorted(d.marker_id for d in detections) == list(QUAD_IDS)


def resolve_quad(detections: Sequence[Detection]) -> Optional[Quad]:
    """
    Build the canonical quad from one frame's detections.

    Returns None when the frame does not hold exactly markers 0..3, once each.
    That is the normal "incomplete" outcome, not an error.
    """
    if not is_complete(detections):
        return None

    by_id = {d.marker_id: d for d in detections}
    points = []
    for vertex, marker_id in enumerate(QUAD_IDS):
        corners = by_id[marker_id].corners
        x, y = corners[CORNER_FOR_VERTEX[vertex]]
        points.append((float(x), float(y)))
    return Quad(tuple(points))
