"""climan logging setup."""

import logging
import sys
from pathlib import Path

LOG_FILE = ".climan.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Run output (the same text printed to stdout) goes through this logger so
# that it lands in the log file without appearing twice on the console.
output_logger = logging.getLogger("climan.output")


def setup_logging(level: str = "warning", log_file: str | Path | None = None) -> None:
    """Configure the ``climan`` logger tree.

    Diagnostics go to stderr at *level*. When *log_file* is set, both the
    diagnostics and the run output are appended to it.
    """
    root = logging.getLogger("climan")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in list(output_logger.handlers):
        output_logger.removeHandler(handler)
        handler.close()

    root.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper(), logging.WARNING))
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(console)

    output_logger.propagate = False
    output_logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)
        output_logger.addHandler(file_handler)
    else:
        output_logger.addHandler(logging.NullHandler())
