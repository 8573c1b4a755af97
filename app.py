#!/usr/bin/env python3
"""
app.py – setlist shader screensaver

Cycles the display through the commands in setlist.conf, each for its
configured number of seconds, looping forever.  Consecutive renderers
overlap for OVERLAP_SEC so the desktop never flashes between them.
"""
from __future__ import annotations

import os

import config
from events     import StopToken
from scheduler  import PlaybackState, Scheduler
from setlist    import load_setlist
from shutdown   import ShutdownCoordinator
from supervisor import ProcessSupervisor


# ── main application ───────────────────────────────────────────────────────
class ScreensaverApp:
    def __init__(self,
                 setlist_file: str | None = None,
                 log_file: str | None = None,
                 overlap: int | None = None,
                 display: str | None = None):
        # configuration ---------------------------------------------------
        # both raise ConfigError: nothing has been launched yet
        self.setlist_path, self.used_example = config.resolve_setlist_path(setlist_file)
        self.entries = load_setlist(self.setlist_path)

        self.log_file = log_file or config.LOG_FILE
        self.overlap  = config.OVERLAP_SEC if overlap is None else overlap

        # child environment -----------------------------------------------
        env = dict(os.environ)
        if display:
            env["DISPLAY"] = display
        self.display = config.apply_display_default(env)
        env["SCRIPT_DIR"] = config.SCRIPT_DIR

        # core state ------------------------------------------------------
        self.stop       = StopToken()
        self.state      = PlaybackState()
        self.supervisor = ProcessSupervisor(log_file=self.log_file,
                                            work_dir=config.WORK_DIR,
                                            env=env)
        self.scheduler  = Scheduler(self.setlist_path, self.supervisor, self.stop,
                                    state=self.state, overlap=self.overlap)
        self.shutdown   = ShutdownCoordinator(self.state, self.supervisor, self.stop)

    def _banner(self) -> None:
        print("Shader Screensaver (setlist) starting...")
        source = " (example)" if self.used_example else ""
        print(f"Setlist: {self.setlist_path}{source} ({len(self.entries)} entries)")
        print(f"Working directory: {config.WORK_DIR}")
        print(f"Log (commands + stderr): {self.log_file}")
        print(f"Display: {self.display}  overlap: {self.overlap}s", flush=True)

    # ── main loop ---------------------------------------------------------
    def run(self) -> int:
        self._banner()
        self.shutdown.install()
        return self.shutdown.run(lambda: self.scheduler.run(self.entries))
