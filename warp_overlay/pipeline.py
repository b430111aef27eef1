from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from .backends.base import Size, WarpBackend
from .capture import BaseCapture
from .compositor import composite
from .detect import ArucoDetect
from .errors import SecondaryExhausted
from .overlay_types import Detection, Quad
from .quad import QUAD_IDS, resolve_quad
from .transforms import build_perspective_transform, is_degenerate_quad, source_rect

logger = logging.getLogger(__name__)


class FrameDecision(enum.Enum):
    PASS_THROUGH = "pass_through"
    COMPOSITE = "composite"


@dataclass
class FrameResult:
    image: np.ndarray
    decision: FrameDecision
    detections: list[Detection] = field(default_factory=list)
    quad: Optional[Quad] = None
    transform: Optional[np.ndarray] = None


@dataclass
class PipelineStats:
    """Per-frame timing and decision counters"""
    frames: int = 0
    composited: int = 0
    passed_through: int = 0
    total_time_ms: float = 0.0
    avg_time_ms: float = 0.0
    last_time_ms: float = 0.0
    detect_time_ms: float = 0.0
    warp_time_ms: float = 0.0
    composite_time_ms: float = 0.0

    def update(self, decision: FrameDecision, frame_time_ms: float, detect_time_ms: float = 0.0,
               warp_time_ms: float = 0.0, composite_time_ms: float = 0.0) -> None:
        self.frames += 1
        if decision is FrameDecision.COMPOSITE:
            self.composited += 1
        else:
            self.passed_through += 1
        self.total_time_ms += frame_time_ms
        self.avg_time_ms = self.total_time_ms / self.frames
        self.last_time_ms = frame_time_ms
        self.detect_time_ms = detect_time_ms
        self.warp_time_ms = warp_time_ms
        self.composite_time_ms = composite_time_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "frames": self.frames,
            "composited": self.composited,
            "passed_through": self.passed_through,
            "avg_time_ms": round(self.avg_time_ms, 2),
            "last_time_ms": round(self.last_time_ms, 2),
            "detect_time_ms": round(self.detect_time_ms, 2),
            "warp_time_ms": round(self.warp_time_ms, 2),
            "composite_time_ms": round(self.composite_time_ms, 2),
        }


class WarpPipeline:
    """
    One live frame in, one display-ready frame out.

    The composite decision is made from the current frame's detections
    alone. The secondary video only advances on frames that composite.
    """

    def __init__(self, detector: ArucoDetect, backend: WarpBackend, capture_size: Size):
        self.detector = detector
        self.backend = backend
        self.capture_size = capture_size
        # The warp input is the secondary frame already rescaled to capture size.
        self.src_rect = source_rect(*capture_size)
        self.stats = PipelineStats()

    def decide(self, detections: list[Detection]) -> tuple[FrameDecision, Optional[Quad], Optional[np.ndarray]]:
        quad = resolve_quad(detections)
        if quad is None:
            return FrameDecision.PASS_THROUGH, None, None

        pts = quad.as_array()
        if is_degenerate_quad(pts):
            logger.debug("degenerate quad rejected: %s", pts.tolist())
            return FrameDecision.PASS_THROUGH, None, None

        matrix = build_perspective_transform(self.src_rect, pts)
        if not np.all(np.isfinite(matrix)):
            logger.debug("non-finite transform rejected for quad %s", pts.tolist())
            return FrameDecision.PASS_THROUGH, None, None
        return FrameDecision.COMPOSITE, quad, matrix

    def process(self, live: np.ndarray, secondary: BaseCapture) -> FrameResult:
        """
        Run detection, decision and (when possible) the warp on one frame.

        ``live`` is consumed: on the composite path its buffer receives the
        warped secondary frame.

        Raises:
            SecondaryExhausted: the secondary source ended on a composite frame
            PipelineError: a backend stage failed
        """
        t0 = time.perf_counter()
        detections = self.detector.detect(live)
        detect_ms = (time.perf_counter() - t0) * 1000

        base = live.copy()
        decision, quad, matrix = self.decide(detections)

        if decision is FrameDecision.PASS_THROUGH:
            # only partial marker sets are drawn
            if 0 < len(detections) < len(QUAD_IDS):
                self.detector.annotate(base, detections)
            frame_ms = (time.perf_counter() - t0) * 1000
            self.stats.update(decision, frame_ms, detect_time_ms=detect_ms)
            logger.debug("pass-through dets=%d", len(detections))
            return FrameResult(base, decision, detections)

        sec = secondary.next_frame()
        if sec is None:
            raise SecondaryExhausted("secondary video exhausted")

        warp_start = time.perf_counter()
        warped = self.backend.warp(sec.image, live, matrix)
        warp_ms = (time.perf_counter() - warp_start) * 1000

        comp_start = time.perf_counter()
        out = composite(base, quad, warped)
        comp_ms = (time.perf_counter() - comp_start) * 1000

        frame_ms = (time.perf_counter() - t0) * 1000
        self.stats.update(decision, frame_ms, detect_time_ms=detect_ms,
                          warp_time_ms=warp_ms, composite_time_ms=comp_ms)
        logger.debug("composite secondary=#%d warp=%.2fms", sec.idx, warp_ms)
        return FrameResult(out, decision, detections, quad, matrix)
