# =========  timing.py  =========
"""
Wall-clock helpers for log lines and the per-entry wait arithmetic.
"""

from __future__ import annotations

import time

STAMP_FMT = "%Y-%m-%d %H:%M:%S"


def stamp(when: float | None = None) -> str:
    """Local wall-clock time formatted for log lines."""
    return time.strftime(STAMP_FMT, time.localtime(when))


def remaining_wait(duration: float, overlap: float, overlapped: bool) -> float:
    """
    Seconds left to wait after an entry's command was started.

    When the previous renderer was kept alive for the overlap window, that
    window already counted toward this entry's duration.  Never negative:
    an overlap at least as long as the entry skips the wait entirely.
    """
    left = duration - overlap if overlapped else duration
    return max(0.0, float(left))
