"""
Action log setup.

Every run appends to a persistent log file for operator audit, in addition to
the messages printed on stderr.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(log_file: str, verbose: bool = False) -> logging.Logger:
    """
    Configure the `nasforge` logger hierarchy.

    Args:
        log_file: Path of the persistent action log
        verbose: Also echo INFO records on stderr

    Returns:
        The package root logger
    """
    root = logging.getLogger("nasforge")
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.propagate = False

    stream = logging.StreamHandler(sys.stderr)
    stream.setLevel(logging.INFO if verbose else logging.WARNING)
    stream.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root.addHandler(stream)

    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
    except OSError as e:
        root.warning("Action log %s is not writable (%s); logging to stderr only", log_file, e)
        return root

    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(file_handler)
    return root
