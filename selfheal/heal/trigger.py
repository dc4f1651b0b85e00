"""Fire-and-forget background analysis.

The capture activation must never wait on, or fail because of, pattern
analysis. The analyzer runs in a detached child process whose output is
discarded; if it cannot be started, that is logged and ignored.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)

AnalysisTrigger = Callable[[Path], None]


def spawn_analysis(data_dir: Path) -> None:
    """Launch ``selfheal analyze`` for ``data_dir`` without waiting for it."""
    try:
        subprocess.Popen(
            [sys.executable, "-m", "selfheal", "--data-dir", str(data_dir), "analyze"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        logger.debug("Could not start background analysis: %s", e)


def should_analyze(total: int, interval: int) -> bool:
    """True when the running failure count just reached a multiple of ``interval``."""
    return total > 0 and interval > 0 and total % interval == 0
