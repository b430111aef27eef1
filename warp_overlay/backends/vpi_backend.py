"""
VPI backend - GPU-accelerated convert / rescale / perspective warp

Uses NVIDIA VPI (Python bindings shipped with JetPack). All four stages are
submitted back-to-back on one vpi.Stream; the host blocks once per frame on
stream.sync() before locking the result for CPU readback.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from ..errors import BackendError, PipelineError
from .base import ImageHandle, WarpBackend

logger = logging.getLogger(__name__)


def _import_vpi():
    try:
        import vpi  # type: ignore
    except ImportError as exc:
        raise BackendError(
            "VPI Python bindings not found. They ship with NVIDIA JetPack "
            "(package python3-vpi); use --backend opencv on other machines"
        ) from exc
    return vpi


@dataclass
class WarpPayload:
    """Warp settings bound once to the compute backend."""

    backend: Any
    interp: Any
    border: Any


class VPIBackend(WarpBackend):
    name = "vpi"
    working_format = "NV12_ER"

    def __init__(self, compute: str = "cuda", loader: Callable[[], Any] = _import_vpi):
        super().__init__()
        self.compute = compute
        self._loader = loader
        self.vpi: Any = None
        self.stream: Any = None

    def _compute_backend(self):
        table = {
            "cuda": self.vpi.Backend.CUDA,
            "vic": self.vpi.Backend.VIC,
            "cpu": self.vpi.Backend.CPU,
        }
        if self.compute not in table:
            raise BackendError(f"Unknown VPI compute backend: {self.compute}")
        return table[self.compute]

    def _wrap_bgr(self, array: np.ndarray):
        # vpi.asimage() wraps the ndarray, it does not copy
        return self.vpi.asimage(array, self.vpi.Format.BGR8)

    def _open(self) -> None:
        self.vpi = self._loader()
        vpi = self.vpi
        self.stream = vpi.Stream()
        self.payload = WarpPayload(
            backend=self._compute_backend(),
            interp=vpi.Interp.LINEAR,
            border=vpi.Border.ZERO,
        )

        nv12 = vpi.Format.NV12_ER
        for name, size in (
            ("input", self.capture_size),
            ("output", self.capture_size),
            ("temp", self.secondary_size),
        ):
            self.add_handle(ImageHandle(name, size, self.working_format, native=vpi.Image(size, nv12)))
        self.add_handle(ImageHandle("secondary", self.secondary_size, "BGR8", binder=self._wrap_bgr))
        self.add_handle(ImageHandle("display", self.capture_size, "BGR8", binder=self._wrap_bgr))

    def _submit(self, matrix: np.ndarray) -> None:
        vpi = self.vpi
        p = self.payload
        h = self.handles
        # stream enter/exit failures surface as the submit stage
        with self.stage("submit"), p.backend, self.stream:
            with self.stage("convert"):
                h["secondary"].native.convert(vpi.Format.NV12_ER, out=h["temp"].native)
            with self.stage("rescale"):
                h["temp"].native.rescale(
                    self.capture_size,
                    interp=p.interp,
                    border=p.border,
                    out=h["input"].native,
                )
            with self.stage("perspwarp"):
                h["input"].native.perspwarp(
                    matrix,
                    interp=p.interp,
                    border=p.border,
                    out=h["output"].native,
                )
            with self.stage("convert-back"):
                h["output"].native.convert(vpi.Format.BGR8, out=h["display"].native)

    def _sync(self) -> None:
        self.stream.sync()

    def _readback(self) -> np.ndarray:
        display = self.handles["display"]
        with display.native.rlock_cpu() as data:
            out = np.asarray(data)
            if out.shape != display.array.shape:
                raise PipelineError("readback", f"unexpected result shape {out.shape}")
            np.copyto(display.array, out)
        return display.array

    def _close(self) -> None:
        if self.stream is not None:
            try:
                self.stream.sync()
            finally:
                self.stream = None
        self.vpi = None
