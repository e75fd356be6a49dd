import logging
import sys

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s: %(message)s"


def setup_logging(level: str | int = logging.INFO) -> None:
    """Configure the root logger with a single stdout handler. Safe to call more than once."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs every request at INFO; the cache already logs its own downloads
    logging.getLogger("httpx").setLevel(logging.WARNING)
