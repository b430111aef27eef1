import argparse
import logging
import signal
import sys
from typing import Optional, Sequence

from .config import BACKENDS, VPI_BACKENDS, OverlayConfig, load_config
from .errors import ConfigError, WarpOverlayError
from .logging_utils import setup_logger
from .worker import OverlayWorker

EXIT_OK = 0
EXIT_ERROR = 1

logger = logging.getLogger("warp_overlay.run")


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Warp a video into the quad marked by ArUco markers 0-3 in a live camera feed"
    )
    ap.add_argument("-v", "--video", help="Video file to warp into the marked region")
    ap.add_argument("-c", "--camera", help="Camera index or device path (default 0)")
    ap.add_argument("-W", "--width", type=int, help="Requested capture width (default 640)")
    ap.add_argument("-H", "--height", type=int, help="Requested capture height (default 480)")
    ap.add_argument("--fps", type=int)
    ap.add_argument("--buffer-size", type=int)
    ap.add_argument("--dict", help="ArUco dictionary, e.g. 4x4_50")
    ap.add_argument("--backend", choices=BACKENDS)
    ap.add_argument("--vpi-backend", choices=VPI_BACKENDS)
    ap.add_argument("--config", help="Optional JSON/YAML config")
    ap.add_argument("--no-display", action="store_true")
    ap.add_argument("--dry-run", action="store_true", help="Use a synthetic marker scene instead of a camera")
    ap.add_argument("--max-frames", type=int)
    ap.add_argument("--log-level")
    ap.add_argument("--log-file")
    return ap


def _apply_args(cfg: OverlayConfig, args: argparse.Namespace) -> OverlayConfig:
    camera = args.camera
    if isinstance(camera, str) and camera.isdigit():
        camera = int(camera)

    cfg.apply_overrides(
        video_path=args.video,
        camera=camera,
        width=args.width,
        height=args.height,
        fps=args.fps,
        buffer_size=args.buffer_size,
        aruco_dict=args.dict,
        backend=args.backend,
        vpi_backend=args.vpi_backend,
        display=False if args.no_display else None,
        dry_run=True if args.dry_run else None,
        max_frames=args.max_frames,
        log_level=args.log_level.upper() if args.log_level else None,
        log_file=args.log_file,
    )
    return cfg


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    try:
        cfg = load_config(args.config) if args.config else OverlayConfig()
        cfg = _apply_args(cfg, args).validate()
        setup_logger("overlay", cfg.log_level)
    except (ConfigError, ValueError) as e:
        setup_logger("overlay")
        logger.error("configuration error: %s", e)
        return EXIT_ERROR

    worker = OverlayWorker(cfg)

    def _handle_signal(_sig, _frame):
        worker.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    try:
        summary = worker.run()
    except WarpOverlayError as e:
        logger.error("%s", e)
        return EXIT_ERROR

    print(summary)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
