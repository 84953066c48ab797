"""Logging utilities.

We use Python's standard `logging` module with a plain structured format.
This keeps dependencies minimal and makes logs easy to ship to ELK/Loki.

- Logs go to: `<log_dir>/<run_id>.log` when a log directory is configured
- Also prints concise progress to stderr.

Calling `setup_logging` again (e.g. once the log directory is known) replaces the
previous run log file instead of stacking handlers.
"""

from __future__ import annotations
import logging
import os
import sys
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def setup_logging(run_id: str, log_dir: Optional[str] = None, level: int = logging.INFO) -> Optional[str]:
    """
    Setup logging configuration.

    Args:
        run_id: Run identifier, used as the log file name
        log_dir: Directory for the per-run log file (console only if None)
        level: Root log level

    Returns:
        Path of the log file, or None when logging to console only
    """
    root = logging.getLogger()
    root.setLevel(level)

    fmt = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    # Console
    console = [h for h in root.handlers if getattr(h, "_warc_mapfile", None) == "console"]
    if console:
        console[0].setStream(sys.stderr)
    else:
        ch = logging.StreamHandler(sys.stderr)
        ch.setFormatter(fmt)
        ch._warc_mapfile = "console"
        root.addHandler(ch)

    if log_dir is None:
        return None

    for h in [h for h in root.handlers if getattr(h, "_warc_mapfile", None) == "file"]:
        root.removeHandler(h)
        h.close()

    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, f"{run_id}.log")

    # File
    fh = logging.FileHandler(log_path, encoding="utf-8")
    fh.setFormatter(fmt)
    fh._warc_mapfile = "file"
    root.addHandler(fh)
    return log_path
