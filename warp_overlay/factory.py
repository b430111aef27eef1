from .backends import OpenCVBackend, VPIBackend, WarpBackend
from .config import OverlayConfig
from .detect import ArucoDetect
from .errors import ConfigError


class StrategyFactory:
    @staticmethod
    def backend_from_config(config: OverlayConfig) -> WarpBackend:
        if config.backend == "vpi":
            return VPIBackend(compute=config.vpi_backend)
        if config.backend == "opencv":
            return OpenCVBackend()
        raise ConfigError(f"Unknown backend: {config.backend}")

    @staticmethod
    def detector_from_config(config: OverlayConfig) -> ArucoDetect:
        return ArucoDetect(config.aruco_dict)
