"""
scheduler.py

Plays the setlist forever, one entry after another.

Per entry
---------
1. start the entry's command                      → becomes *current*
2. if the previous command is still drawing, keep both alive for the
   overlap window, then terminate the previous one
3. wait out the rest of the entry's duration
4. demote *current* to *previous* (it is killed by the next entry's step 2)

The setlist is re-read after every pass, so edits show up on the next
loop.  Every wait goes through the StopToken, so a stop request is seen
within the wait rather than at the end of the entry.
"""

from __future__ import annotations

import threading
from typing import Callable, List, Optional, Tuple

import config
import diagnostics
from events     import StopToken
from setlist    import SetlistEntry, SetlistError, load_setlist
from supervisor import ProcessSupervisor, SupervisedProcess
from timing     import remaining_wait, stamp


# ── Playback state ──────────────────────────────────────────────────────────
class PlaybackState:
    """
    The two process slots.  Written by the scheduler thread, emptied by
    the shutdown coordinator; both go through the lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.current:  Optional[SupervisedProcess] = None
        self.previous: Optional[SupervisedProcess] = None

    def begin(self, proc: SupervisedProcess) -> Optional[SupervisedProcess]:
        """Install *proc* as current; return the previous process, if any."""
        with self._lock:
            self.current = proc
            return self.previous

    def release_previous(self, proc: SupervisedProcess) -> None:
        with self._lock:
            if self.previous is proc:
                self.previous = None

    def demote(self) -> None:
        with self._lock:
            if self.previous is not None:
                raise RuntimeError("previous slot still occupied")
            self.previous, self.current = self.current, None

    def take_all(self) -> Tuple[Optional[SupervisedProcess], Optional[SupervisedProcess]]:
        """Empty both slots and return (previous, current)."""
        with self._lock:
            prev, cur = self.previous, self.current
            self.previous = self.current = None
            return prev, cur

    def snapshot(self) -> Tuple[Optional[SupervisedProcess], Optional[SupervisedProcess]]:
        with self._lock:
            return self.previous, self.current


# ── Scheduler ───────────────────────────────────────────────────────────────
class Scheduler:
    def __init__(self,
                 setlist_path: str,
                 supervisor: ProcessSupervisor,
                 stop: StopToken,
                 state: PlaybackState | None = None,
                 overlap: float | None = None,
                 loader: Callable[[str], List[SetlistEntry]] = load_setlist) -> None:
        self.setlist_path = setlist_path
        self.supervisor   = supervisor
        self.stop         = stop
        self.state        = state or PlaybackState()
        self.overlap      = config.OVERLAP_SEC if overlap is None else overlap
        self.loader       = loader
        self.passes       = 0

    # ---------------------------------------------------------------- loop
    def run(self, entries: List[SetlistEntry] | None = None) -> None:
        """
        Loop over the setlist until the stop token fires.  *entries* is the
        already-validated first pass; without it the setlist is loaded here
        and a SetlistError propagates to the caller.
        """
        if entries is None:
            entries = self.loader(self.setlist_path)

        while not self.stop.is_set():
            for entry in entries:
                if not self.play(entry):
                    return
            self.passes += 1
            print(f"{stamp()} - Setlist complete; looping...", flush=True)
            print(f"[scheduler] pass {self.passes}: {diagnostics.summary_line()}",
                  flush=True)
            entries = self._reload(entries)

    def _reload(self, entries: List[SetlistEntry]) -> List[SetlistEntry]:
        try:
            return self.loader(self.setlist_path)
        except SetlistError as exc:
            print(f"[scheduler] {exc}; replaying the previous setlist", flush=True)
            return entries

    # ---------------------------------------------------------------- entry
    def play(self, entry: SetlistEntry) -> bool:
        """Run one entry.  Returns False if a stop was requested meanwhile."""
        if self.stop.is_set():
            return False
        print(f"{stamp()} - Running for {entry.duration}s: {entry.command}", flush=True)
        banner = f"---\n{stamp()} - Entry ({entry.duration}s): {entry.command}\n"

        proc = self.supervisor.start(entry.command, banner)
        previous = self.state.begin(proc)

        overlapped = False
        if previous is not None:
            if self.supervisor.is_alive(previous):
                overlapped = True
                if self.stop.wait(self.overlap):
                    return False
            self.supervisor.terminate(previous)
            self.state.release_previous(previous)

        if self.stop.wait(remaining_wait(entry.duration, self.overlap, overlapped)):
            return False

        self.state.demote()
        return True
