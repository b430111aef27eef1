from .base import ImageHandle, WarpBackend
from .opencv_backend import OpenCVBackend
from .vpi_backend import VPIBackend

__all__ = ["ImageHandle", "WarpBackend", "OpenCVBackend", "VPIBackend"]
