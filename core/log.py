import logging
import os

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_handler_attached = False


def _resolve_level(level: str | None = None) -> int:
    name = (level or os.getenv("AITRACE_LOG_LEVEL", "INFO")).upper()
    return getattr(logging, name, logging.INFO)


def setup_logging(level: str | None = None) -> None:
    """Attach a single stream handler to the root logger."""
    global _handler_attached

    root = logging.getLogger()
    if not _handler_attached:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
        _handler_attached = True
    root.setLevel(_resolve_level(level))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
