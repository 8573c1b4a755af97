#!/usr/bin/env python3
"""
events.py  – stop signalling

• One StopToken is shared by the scheduler thread and whoever may ask it
  to stop (signal handlers, tests, the shutdown coordinator).
• Every wait in the scheduler goes through StopToken.wait(), so a stop
  request cuts any overlap or entry wait short.
"""

from __future__ import annotations
import threading


class StopToken:
    def __init__(self) -> None:
        self._event  = threading.Event()
        self.reason: str | None = None

    def set(self, reason: str = "stop requested") -> None:
        """Request a stop.  Only the first reason is kept."""
        if self.reason is None:
            self.reason = reason
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """
        Sleep for *seconds* or until a stop is requested, whichever comes
        first.  Returns True if the stop fired.
        """
        if seconds <= 0:
            return self._event.is_set()
        return self._event.wait(seconds)
