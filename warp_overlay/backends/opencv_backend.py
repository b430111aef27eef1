from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

from .base import ImageHandle, Size, WarpBackend

# Chroma value for "no colour"; zero luma with neutral chroma converts to black.
NEUTRAL_CHROMA = 128


@dataclass
class WarpPayload:
    flags: int = cv2.INTER_LINEAR
    border_mode: int = cv2.BORDER_CONSTANT
    luma_border: int = 0
    chroma_border: tuple[int, int] = (NEUTRAL_CHROMA, NEUTRAL_CHROMA)


def nv12_buffer(size: Size) -> np.ndarray:
    w, h = size
    buf = np.zeros((h * 3 // 2, w), dtype=np.uint8)
    buf[h:] = NEUTRAL_CHROMA
    return buf


def nv12_planes(buf: np.ndarray, size: Size) -> tuple[np.ndarray, np.ndarray]:
    """Views of the Y plane (h, w) and interleaved UV plane (h/2, w/2, 2)."""
    w, h = size
    return buf[:h], buf[h:].reshape(h // 2, w // 2, 2)


def bgr_to_nv12(bgr: np.ndarray, out: np.ndarray) -> np.ndarray:
    h, w = bgr.shape[:2]
    i420 = cv2.cvtColor(bgr, cv2.COLOR_BGR2YUV_I420).reshape(-1)
    n = h * w
    q = n // 4
    y, uv = nv12_planes(out, (w, h))
    y[...] = i420[:n].reshape(h, w)
    uv[..., 0] = i420[n:n + q].reshape(h // 2, w // 2)
    uv[..., 1] = i420[n + q:n + 2 * q].reshape(h // 2, w // 2)
    return out


class OpenCVBackend(WarpBackend):
    """
    Host-side rendition of the same four stages with OpenCV.

    Runs synchronously, so ``_sync`` has nothing to wait for. Used where VPI
    is not installed and as the reference for tests.
    """

    name = "opencv"
    working_format = "NV12"

    def _open(self) -> None:
        self.payload = WarpPayload()
        for name, size in (
            ("input", self.capture_size),
            ("output", self.capture_size),
            ("temp", self.secondary_size),
        ):
            self.add_handle(ImageHandle(name, size, self.working_format, native=nv12_buffer(size)))
        self.add_handle(ImageHandle("secondary", self.secondary_size, "BGR8", binder=lambda a: a))
        self.add_handle(ImageHandle("display", self.capture_size, "BGR8", binder=lambda a: a))

    def _submit(self, matrix: np.ndarray) -> None:
        h = self.handles
        p = self.payload
        w, ht = self.capture_size

        with self.stage("convert"):
            bgr_to_nv12(h["secondary"].native, h["temp"].native)

        with self.stage("rescale"):
            src_y, src_uv = nv12_planes(h["temp"].native, self.secondary_size)
            dst_y, dst_uv = nv12_planes(h["input"].native, self.capture_size)
            dst_y[...] = cv2.resize(src_y, (w, ht), interpolation=p.flags)
            dst_uv[...] = cv2.resize(src_uv, (w // 2, ht // 2), interpolation=p.flags)

        with self.stage("perspwarp"):
            src_y, src_uv = nv12_planes(h["input"].native, self.capture_size)
            dst_y, dst_uv = nv12_planes(h["output"].native, self.capture_size)
            dst_y[...] = cv2.warpPerspective(
                src_y, matrix, (w, ht),
                flags=p.flags, borderMode=p.border_mode, borderValue=p.luma_border,
            )
            # chroma plane is subsampled 2x in both axes
            s = np.diag([0.5, 0.5, 1.0])
            m_uv = s @ matrix @ np.linalg.inv(s)
            dst_uv[...] = cv2.warpPerspective(
                src_uv, m_uv, (w // 2, ht // 2),
                flags=p.flags, borderMode=p.border_mode, borderValue=p.chroma_border,
            )

        with self.stage("convert-back"):
            h["display"].native[...] = cv2.cvtColor(h["output"].native, cv2.COLOR_YUV2BGR_NV12)

    def _sync(self) -> None:
        return None

    def _readback(self) -> np.ndarray:
        return self.handles["display"].native

    def _close(self) -> None:
        return None
