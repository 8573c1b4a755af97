"""
shutdown.py

Wraps the scheduler so that every way out of the program (SIGINT,
SIGTERM, a crash, a normal return) kills the previous and current
renderer groups exactly once.

The scheduler runs in a worker thread.  Signal handlers run in the main
thread and only set the StopToken; the main thread then waits (bounded)
for the worker and performs the cleanup itself.
"""

from __future__ import annotations

import atexit
import signal
import threading
import traceback
from typing import Callable

import config
from events     import StopToken
from scheduler  import PlaybackState
from supervisor import ProcessSupervisor

_HANDLED_SIGNALS = tuple(
    sig for sig in (signal.SIGINT, signal.SIGTERM, getattr(signal, "SIGHUP", None))
    if sig is not None
)
_JOIN_STEP = 0.5


class ShutdownCoordinator:
    def __init__(self,
                 state: PlaybackState,
                 supervisor: ProcessSupervisor,
                 stop: StopToken,
                 join_timeout: float | None = None) -> None:
        self.state        = state
        self.supervisor   = supervisor
        self.stop         = stop
        self.join_timeout = config.SHUTDOWN_JOIN_SEC if join_timeout is None else join_timeout
        self._lock = threading.Lock()
        self._done = False

    # ---------------------------------------------------------------- hooks
    def install(self) -> "ShutdownCoordinator":
        """Route SIGINT/SIGTERM/SIGHUP to the stop token and register atexit cleanup."""
        for sig in _HANDLED_SIGNALS:
            signal.signal(sig, self._on_signal)
        atexit.register(self.cleanup)
        return self

    def _on_signal(self, signum, frame) -> None:
        # no printing here: the handler may interrupt a print in progress
        self.stop.set(signal.Signals(signum).name)

    # -------------------------------------------------------------- cleanup
    def cleanup(self) -> None:
        """Terminate previous, then current.  Runs once; later calls return."""
        with self._lock:
            if self._done:
                return
            self._done = True

        print(f"[shutdown] {self.stop.reason or 'exit'}: stopping shader screensaver...",
              flush=True)
        previous, current = self.state.take_all()
        self.supervisor.terminate(previous)
        self.supervisor.terminate(current)

    # ------------------------------------------------------------------ run
    def run(self, target: Callable[[], None]) -> int:
        """
        Run *target* (the scheduler loop) in a worker thread until it
        returns, fails, or a stop is requested; then clean up.
        Returns the process exit code.
        """
        failed = threading.Event()

        def _worker() -> None:
            try:
                target()
            except Exception:
                traceback.print_exc()
                failed.set()
                self.stop.set("scheduler failure")

        worker = threading.Thread(target=_worker, name="scheduler", daemon=True)
        worker.start()
        try:
            while worker.is_alive() and not self.stop.is_set():
                worker.join(timeout=_JOIN_STEP)
            worker.join(timeout=self.join_timeout)
            if worker.is_alive():
                print(f"[shutdown] scheduler still busy after {self.join_timeout:g}s; "
                      f"cleaning up anyway", flush=True)
        finally:
            self.cleanup()
        return 1 if failed.is_set() else 0
