from __future__ import annotations

from abc import ABC, abstractmethod

import cv2
import numpy as np


class OutputSink(ABC):
    @abstractmethod
    def show(self, image: np.ndarray) -> bool:
        """Present one frame. Returns False when the operator asked to stop."""

    @abstractmethod
    def close(self) -> None: ...


class WindowOutput(OutputSink):
    def __init__(self, window_name: str = "Capture", wait_ms: int = 5):
        self.window_name = window_name
        self.wait_ms = wait_ms
        self._opened = False

    def show(self, image: np.ndarray) -> bool:
        cv2.imshow(self.window_name, image)
        self._opened = True
        # any key ends the loop
        return cv2.waitKey(self.wait_ms) < 0

    def close(self) -> None:
        if self._opened:
            cv2.destroyWindow(self.window_name)
            self._opened = False


class NullOutput(OutputSink):
    def __init__(self) -> None:
        self.frames = 0

    def show(self, image: np.ndarray) -> bool:
        self.frames += 1
        return True

    def close(self) -> None:
        return None
