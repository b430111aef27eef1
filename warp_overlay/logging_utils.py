from __future__ import annotations

import logging


class SessionNameFilter(logging.Filter):
    def __init__(self, session_name: str):
        super().__init__()
        self.session_name = session_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.session = self.session_name
        return True


_FORMAT = "%(asctime)s %(levelname)s [%(session)s] %(message)s"


def parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logger(session_name: str, level: int | str = logging.INFO) -> logging.Logger:
    """Configure the package logger tree under ``warp_overlay``.

    Module loggers (``logging.getLogger(__name__)``) propagate here, so one
    handler tags every record with the session name.
    """
    logger = logging.getLogger("warp_overlay")
    logger.setLevel(parse_level(level))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler.addFilter(SessionNameFilter(session_name))
        logger.addHandler(handler)

    return logger


def add_file_handler(logger: logging.Logger, session_name: str, log_path: str) -> None:
    handler = logging.FileHandler(log_path)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(SessionNameFilter(session_name))
    logger.addHandler(handler)
