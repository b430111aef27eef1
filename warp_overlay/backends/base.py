from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

import numpy as np

from ..errors import PipelineError, WarpOverlayError

logger = logging.getLogger(__name__)

Size = tuple[int, int]  # (width, height)


class ImageHandle:
    """
    Backend-resident image with a fixed size and format.

    Buffer handles own their ``native`` image for the whole run. Wrapper
    handles are created with a ``binder`` and get their backing CPU array
    swapped every iteration through ``rebind``; the handle itself stays the
    same object.
    """

    def __init__(
        self,
        name: str,
        size: Size,
        fmt: str,
        native: Any = None,
        binder: Optional[Callable[[np.ndarray], Any]] = None,
    ):
        self.name = name
        self.size = (int(size[0]), int(size[1]))
        self.format = fmt
        self.native = native
        self._binder = binder
        self.array: Optional[np.ndarray] = None

    @property
    def width(self) -> int:
        return self.size[0]

    @property
    def height(self) -> int:
        return self.size[1]

    @property
    def is_wrapper(self) -> bool:
        return self._binder is not None

    def rebind(self, array: np.ndarray) -> "ImageHandle":
        if self._binder is None:
            raise PipelineError("rebind", f"{self.name} is a buffer handle and cannot be rebound")
        expected = (self.height, self.width, 3)
        if not isinstance(array, np.ndarray) or array.shape != expected or array.dtype != np.uint8:
            got = getattr(array, "shape", None), getattr(array, "dtype", None)
            raise PipelineError(
                "rebind",
                f"{self.name} expects uint8 {expected}, got {got[0]} {got[1]}",
            )
        self.native = self._binder(array)
        self.array = array
        return self

    def release(self) -> None:
        self.native = None
        self.array = None

    def __repr__(self) -> str:
        return f"ImageHandle({self.name!r}, {self.width}x{self.height}, {self.format})"


class WarpBackend(ABC):
    """
    Pipeline context: owns the stream, the image handles and the warp payload.

    ``open`` creates everything once, ``warp`` runs one frame through
    convert -> rescale -> perspwarp -> convert-back, synchronizes once and
    reads the result back, ``close`` tears everything down exactly once.
    """

    name = "base"
    working_format = "NV12"

    def __init__(self) -> None:
        self.capture_size: Optional[Size] = None
        self.secondary_size: Optional[Size] = None
        self.handles: dict[str, ImageHandle] = {}
        self.payload: Any = None
        self.teardown_count = 0
        self._opened = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def add_handle(self, handle: ImageHandle) -> ImageHandle:
        self.handles[handle.name] = handle
        return handle

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        try:
            yield
        except WarpOverlayError:
            raise
        except Exception as exc:
            logger.error("%s stage %s failed: %s", self.name, name, exc)
            raise PipelineError(name, str(exc), exc) from exc

    def open(self, capture_size: Size, secondary_size: Size) -> "WarpBackend":
        if self._opened:
            raise PipelineError("open", f"{self.name} backend already opened")
        for label, (w, h) in (("capture", capture_size), ("secondary", secondary_size)):
            if w <= 0 or h <= 0 or w % 2 or h % 2:
                raise PipelineError(
                    "open", f"{label} size {w}x{h} must be positive and even for {self.working_format}"
                )
        self.capture_size = (int(capture_size[0]), int(capture_size[1]))
        self.secondary_size = (int(secondary_size[0]), int(secondary_size[1]))
        self._opened = True
        with self.stage("open"):
            self._open()
        logger.info(
            "%s backend ready: capture=%dx%d secondary=%dx%d format=%s",
            self.name,
            self.capture_size[0],
            self.capture_size[1],
            self.secondary_size[0],
            self.secondary_size[1],
            self.working_format,
        )
        return self

    def warp(self, secondary: np.ndarray, target: np.ndarray, matrix: np.ndarray) -> np.ndarray:
        """
        Warp one secondary frame onto the capture geometry.

        ``target`` is a capture-sized BGR buffer that receives the result and
        is overwritten. Returns the warped BGR image, zero outside the
        mapped region.
        """
        if not self.is_open:
            raise PipelineError("warp", f"{self.name} backend is not open")
        m = np.asarray(matrix, dtype=np.float64)
        if m.shape != (3, 3):
            raise PipelineError("warp", f"expected 3x3 transform, got {m.shape}")

        with self.stage("wrap"):
            self.handles["secondary"].rebind(secondary)
            self.handles["display"].rebind(target)
        self._submit(m)
        with self.stage("sync"):
            self._sync()
        with self.stage("readback"):
            return self._readback()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.teardown_count += 1
        try:
            self._close()
        except Exception as exc:
            logger.warning("%s backend teardown error: %s", self.name, exc)
        for h in self.handles.values():
            h.release()
        self.handles.clear()
        self.payload = None
        logger.info("%s backend closed", self.name)

    def __enter__(self) -> "WarpBackend":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @abstractmethod
    def _open(self) -> None: ...

    @abstractmethod
    def _submit(self, matrix: np.ndarray) -> None: ...

    @abstractmethod
    def _sync(self) -> None: ...

    @abstractmethod
    def _readback(self) -> np.ndarray: ...

    @abstractmethod
    def _close(self) -> None: ...
