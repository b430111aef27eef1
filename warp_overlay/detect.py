from __future__ import annotations

import logging
from typing import Sequence

import cv2
import numpy as np

from .overlay_types import Detection

logger = logging.getLogger(__name__)


def get_dict(name: str):
    """
    ArUco dictionary resolver.
    Accepts "4x4_50" style names with or without a DICT_ prefix.
    Falls back to 4x4_50 if name not recognized.
    """
    key = (name or "").strip()
    if key.upper().startswith("DICT_"):
        key = key[5:]
    key = key.lower()
    table = {
        "4x4_50":  cv2.aruco.DICT_4X4_50,
        "4x4_100": cv2.aruco.DICT_4X4_100,
        "5x5_50":  cv2.aruco.DICT_5X5_50,
        "5x5_100": cv2.aruco.DICT_5X5_100,
        "6x6_50":  cv2.aruco.DICT_6X6_50,
        "6x6_100": cv2.aruco.DICT_6X6_100,
        "7x7_50":  cv2.aruco.DICT_7X7_50,
        "7x7_100": cv2.aruco.DICT_7X7_100,
    }
    if key not in table:
        logger.warning("unknown ArUco dictionary %r, using 4x4_50", name)
    code = table.get(key, cv2.aruco.DICT_4X4_50)

    if hasattr(cv2.aruco, "getPredefinedDictionary"):           # OpenCV >= 4.7
        return cv2.aruco.getPredefinedDictionary(code)
    return cv2.aruco.Dictionary_get(code)                        # Older OpenCV


def _make_params():
    """Create detector parameters across OpenCV versions."""
    if hasattr(cv2.aruco, "DetectorParameters_create"):
        return cv2.aruco.DetectorParameters_create()
    return cv2.aruco.DetectorParameters()


class ArucoDetect:
    """
    Detect ArUco markers in a BGR frame.
    Returns a list[Detection]; empty, duplicated or out-of-range ids are all
    passed through unchanged. Deciding whether they form a quad is the
    resolver's job.
    """
    def __init__(self, dict_name: str = "4x4_50"):
        self.dictionary = get_dict(dict_name)
        self.params = _make_params()
        self._detector = None
        # Prefer the newer ArucoDetector API if present
        if hasattr(cv2.aruco, "ArucoDetector"):
            self._detector = cv2.aruco.ArucoDetector(self.dictionary, self.params)

    def detect(self, image: np.ndarray) -> list[Detection]:
        if self._detector is not None:
            corners, ids, _rej = self._detector.detectMarkers(image)
        else:
            corners, ids, _rej = cv2.aruco.detectMarkers(
                image, self.dictionary, parameters=self.params
            )

        dets: list[Detection] = []
        if ids is not None and len(ids) > 0:
            for i, mid in enumerate(ids.flatten()):
                pts = np.asarray(corners[i], dtype=np.float32).reshape(4, 2)
                dets.append(Detection(int(mid), pts))
        return dets

    @staticmethod
    def annotate(image: np.ndarray, detections: Sequence[Detection]) -> np.ndarray:
        """Draw marker outlines and ids onto ``image`` in place."""
        if not detections:
            return image
        ids = np.array([d.marker_id for d in detections], dtype=np.int32).reshape(-1, 1)
        corners = [np.asarray(d.corners, dtype=np.float32).reshape(1, 4, 2) for d in detections]
        cv2.aruco.drawDetectedMarkers(image, corners, ids)
        return image
