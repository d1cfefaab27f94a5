import logging
import sys
import os
from datetime import datetime

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# ANSI color per level; anything unlisted prints uncolored
LEVEL_COLORS = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "31;1",
}


class ColoredFormatter(logging.Formatter):
    """Console formatter that wraps each line in its level's color."""

    def __init__(self):
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)

    def format(self, record):
        line = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"\x1b[{color}m{line}\x1b[0m" if color else line


def setup_logging(level=logging.INFO, log_dir="logs"):
    """
    Route every log record through the root logger: colored on stderr, plain
    in ``<log_dir>/reaper_YYYYMMDD.log`` when ``log_dir`` is set.

    Safe to call twice; handlers from an earlier call are replaced.
    """
    root = logging.getLogger()
    while root.handlers:
        root.removeHandler(root.handlers[0])
    root.setLevel(level)

    # stderr keeps uvicorn's own output and ours interleaved in one stream
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(ColoredFormatter())
    handlers = [console]

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"reaper_{datetime.now():%Y%m%d}.log")
        plain = logging.FileHandler(log_file)
        plain.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        handlers.append(plain)

    for handler in handlers:
        root.addHandler(handler)

    # uvicorn installs its own handlers; send its records to ours instead
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.setLevel(level)
        uvicorn_logger.propagate = True

    root.info("Logging initialized (console%s).", " + file" if log_dir else "")
