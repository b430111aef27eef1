from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from .backends.base import WarpBackend
from .capture import BaseCapture, CameraCapture, SyntheticCapture, VideoFileSource
from .config import OverlayConfig
from .detect import ArucoDetect
from .errors import SecondaryExhausted
from .factory import StrategyFactory
from .logging_utils import add_file_handler, setup_logger
from .output import NullOutput, OutputSink, WindowOutput
from .pipeline import WarpPipeline

STOP_SIGNAL = "signal"
STOP_KEY = "key"
STOP_VIDEO_ENDED = "video_ended"
STOP_CAMERA_ENDED = "camera_ended"
STOP_MAX_FRAMES = "max_frames"


@dataclass
class SessionSummary:
    frames_processed: int
    frames_composited: int
    frames_passed_through: int
    avg_fps: float
    stop_reason: str
    errors: int


class OverlayWorker:
    """
    Runs the capture -> pipeline -> display loop on the calling thread.

    ``stop()`` only sets an event; the loop polls it once per iteration, so it
    is safe to call from a signal handler. Every resource that was created is
    released on every exit path, the backend exactly once.
    """

    def __init__(
        self,
        config: OverlayConfig,
        logger=None,
        output: Optional[OutputSink] = None,
        camera: Optional[BaseCapture] = None,
        video: Optional[BaseCapture] = None,
        backend: Optional[WarpBackend] = None,
        detector: Optional[ArucoDetect] = None,
    ):
        self.config = config
        self.logger = logger or setup_logger("overlay", config.log_level)
        if config.log_file:
            add_file_handler(self.logger, "overlay", config.log_file)
        self.output = output
        self.camera = camera
        self.video = video
        self.backend = backend
        self.detector = detector
        self.pipeline: Optional[WarpPipeline] = None
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def _build_camera(self) -> BaseCapture:
        if self.camera is not None:
            return self.camera
        if self.config.dry_run:
            return SyntheticCapture(
                self.config.fps, self.config.width, self.config.height,
                dict_name=self.config.aruco_dict,
            )
        return CameraCapture(
            self.config.camera,
            self.config.fps,
            self.config.width,
            self.config.height,
            self.config.buffer_size,
        )

    def _build_video(self) -> BaseCapture:
        if self.video is not None:
            return self.video
        return VideoFileSource(str(self.config.video_path))

    def _build_output(self) -> OutputSink:
        if self.output is not None:
            return self.output
        if self.config.display:
            return WindowOutput(self.config.window_name)
        return NullOutput()

    def _teardown(self, backend, camera, video, output) -> None:
        for label, res, fn in (
            ("backend", backend, "close"),
            ("camera", camera, "stop"),
            ("video", video, "stop"),
            ("output", output, "close"),
        ):
            if res is None:
                continue
            try:
                getattr(res, fn)()
            except Exception as e:
                self.logger.warning("%s teardown failed: %s", label, e)
        self.logger.info("resources released")

    def run(self) -> SessionSummary:
        camera = self._build_camera()
        video = self._build_video()
        output = self._build_output()
        backend: Optional[WarpBackend] = None

        frames = 0
        errors = 0
        stop_reason = STOP_SIGNAL
        t0 = time.time()

        try:
            camera.start()
            video.start()

            backend = self.backend or StrategyFactory.backend_from_config(self.config)
            self.backend = backend
            backend.open(camera.size, video.size)

            detector = self.detector or StrategyFactory.detector_from_config(self.config)
            self.pipeline = WarpPipeline(detector, backend, camera.size)

            self.logger.info("config: %s", self.config.as_dict())
            self.logger.info("start grabbing, press any key to terminate")
            t0 = time.time()

            while True:
                if self._stop_event.is_set():
                    stop_reason = STOP_SIGNAL
                    break
                if self.config.max_frames and frames >= self.config.max_frames:
                    stop_reason = STOP_MAX_FRAMES
                    break

                f = camera.next_frame()
                if f is None:
                    self.logger.error("blank frame grabbed")
                    errors += 1
                    stop_reason = STOP_CAMERA_ENDED
                    break

                try:
                    result = self.pipeline.process(f.image, video)
                except SecondaryExhausted:
                    self.logger.info("secondary video exhausted")
                    stop_reason = STOP_VIDEO_ENDED
                    break

                frames += 1
                if not output.show(result.image):
                    stop_reason = STOP_KEY
                    break

        finally:
            self._teardown(backend, camera, video, output)

        avg = frames / max(1e-6, (time.time() - t0))
        stats = self.pipeline.stats if self.pipeline is not None else None
        summary = SessionSummary(
            frames,
            stats.composited if stats else 0,
            stats.passed_through if stats else 0,
            avg,
            stop_reason,
            errors,
        )
        self.logger.info(
            "summary frames=%d composited=%d avg_fps=%.2f stop=%s errors=%d",
            summary.frames_processed,
            summary.frames_composited,
            summary.avg_fps,
            summary.stop_reason,
            summary.errors,
        )
        if stats:
            self.logger.info("timings: %s", stats.to_dict())
        return summary
