"""
Shutdown coordinator: cleanup order, idempotence, signal and error paths.
"""

import os
import signal
import subprocess
import sys
import textwrap
import threading
import time
from pathlib import Path

import psutil

import pytest

from events     import StopToken
from fakes      import FakeClock, FakeSupervisor
from scheduler  import PlaybackState, Scheduler
from setlist    import SetlistEntry
from shutdown   import ShutdownCoordinator
from supervisor import ProcessSupervisor


@pytest.fixture
def restore_signals():
    handled = [signal.SIGINT, signal.SIGTERM]
    if hasattr(signal, "SIGHUP"):
        handled.append(signal.SIGHUP)
    saved = {s: signal.getsignal(s) for s in handled}
    yield
    for s, handler in saved.items():
        signal.signal(s, handler)


class TestCleanup:

    def setup_method(self):
        self.clock = FakeClock()
        self.sup   = FakeSupervisor(self.clock)
        self.state = PlaybackState()
        self.stop  = StopToken()
        self.coord = ShutdownCoordinator(self.state, self.sup, self.stop, join_timeout=1.0)

    def _fill(self):
        old = self.sup.start("old")
        self.state.begin(old)
        self.state.demote()
        new = self.sup.start("new")
        self.state.begin(new)

    def test_terminates_previous_then_current(self):
        self._fill()
        self.coord.cleanup()
        kills = [c for k, c, _ in self.sup.events if k == "terminate"]
        assert kills == ["old", "new"]
        assert self.sup.alive == set()
        assert self.state.snapshot() == (None, None)

    def test_cleanup_runs_once(self, capsys):
        self._fill()
        self.coord.cleanup()
        self.coord.cleanup()
        assert len([e for e in self.sup.events if e[0] == "terminate"]) == 2
        assert capsys.readouterr().out.count("stopping shader screensaver") == 1

    def test_cleanup_with_empty_state(self):
        self.coord.cleanup()
        assert self.sup.events == []

    @pytest.mark.skipif(not hasattr(signal, "SIGHUP"), reason="no SIGHUP")
    def test_install_routes_hangup_to_stop(self, restore_signals):
        self.coord.install()
        assert signal.getsignal(signal.SIGHUP) == self.coord._on_signal
        assert signal.getsignal(signal.SIGINT) == self.coord._on_signal
        signal.getsignal(signal.SIGHUP)(signal.SIGHUP, None)
        assert self.stop.reason == "SIGHUP"

    def test_signal_handler_only_sets_stop(self):
        self.coord._on_signal(signal.SIGTERM, None)
        assert self.stop.is_set()
        assert self.stop.reason == "SIGTERM"
        assert self.sup.events == []


class TestRun:

    def _coordinator(self, supervisor):
        self.state = PlaybackState()
        self.stop  = StopToken()
        return ShutdownCoordinator(self.state, supervisor, self.stop, join_timeout=2.0)

    def test_stop_request_interrupts_long_entry(self):
        sup = FakeSupervisor(FakeClock())
        coord = self._coordinator(sup)
        sched = Scheduler("unused", sup, self.stop, state=self.state, overlap=1)
        entries = [SetlistEntry(3600, "long", 1)]

        threading.Timer(0.3, self.stop.set).start()
        t0 = time.monotonic()
        code = coord.run(lambda: sched.run(entries))

        assert code == 0
        assert time.monotonic() - t0 < 2.0
        assert sup.alive == set()

    def test_scheduler_failure_exits_nonzero_after_cleanup(self, capsys):
        sup = FakeSupervisor(FakeClock())
        coord = self._coordinator(sup)
        self.state.begin(sup.start("running"))

        def boom():
            raise RuntimeError("renderer table corrupt")

        assert coord.run(boom) == 1
        assert sup.alive == set()
        assert "renderer table corrupt" in capsys.readouterr().err

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
    def test_sigterm_cleans_up_real_processes(self, restore_signals):
        sup   = ProcessSupervisor(shell="/bin/sh", poll_interval=0.05, grace=0.5)
        coord = self._coordinator(sup).install()
        sched = Scheduler("unused", sup, self.stop, state=self.state, overlap=1)
        entries = [SetlistEntry(1, "sleep 30", 1),
                   SetlistEntry(30, "trap '' TERM; sleep 30; sleep 30", 2)]

        seen = []
        original_start = sup.start

        def recording_start(command, banner=None):
            proc = original_start(command, banner)
            seen.append(proc)
            return proc

        sup.start = recording_start
        threading.Timer(1.5, os.kill, (os.getpid(), signal.SIGTERM)).start()
        code = coord.run(lambda: sched.run(entries))

        assert code == 0
        assert self.stop.reason == "SIGTERM"
        assert len(seen) == 2
        assert not any(sup.is_alive(p) for p in seen)


# ── whole-program exit routes ──────────────────────────────────────────────
REPO = Path(__file__).resolve().parent.parent

# the renderer records its shell (the group leader) and a background child
RENDERER = "sleep 300 & echo $$ $! > {pidfile}; wait"


def _wait_for_pids(pidfile, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if pidfile.exists():
            parts = pidfile.read_text().split()
            if len(parts) == 2:
                return [int(p) for p in parts]
        time.sleep(0.05)
    raise AssertionError("renderer never started")


def _survivors(pids, timeout=3.0):
    """Pids still running (zombies awaiting reaping count as gone)."""
    deadline = time.monotonic() + timeout
    while True:
        alive = []
        for pid in pids:
            try:
                if psutil.Process(pid).status() != psutil.STATUS_ZOMBIE:
                    alive.append(pid)
            except psutil.NoSuchProcess:
                pass
        if not alive or time.monotonic() >= deadline:
            return alive
        time.sleep(0.05)


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
class TestExitRoutes:

    @pytest.mark.parametrize("signame", ["SIGINT", "SIGTERM", "SIGHUP"])
    def test_signal_stops_program_and_its_renderers(self, tmp_path, signame):
        pidfile = tmp_path / "renderer.pids"
        setlist = tmp_path / "setlist.conf"
        setlist.write_text(f"60 {RENDERER.format(pidfile=pidfile)}\n")

        prog = subprocess.Popen(
            [sys.executable, str(REPO / "main.py"),
             "--setlist", str(setlist), "--log", str(tmp_path / "run.log")],
            cwd=str(REPO), stdout=subprocess.PIPE, stderr=subprocess.STDOUT)
        try:
            pids = _wait_for_pids(pidfile)
            time.sleep(0.3)
            prog.send_signal(getattr(signal, signame))
            out, _ = prog.communicate(timeout=20)
        finally:
            if prog.poll() is None:
                prog.kill()
                prog.wait()

        assert prog.returncode == 0, out.decode(errors="replace")
        assert f"{signame}: stopping shader screensaver" in out.decode()
        assert _survivors(pids) == []

    def test_atexit_cleanup_on_plain_interpreter_exit(self, tmp_path):
        pidfile = tmp_path / "renderer.pids"
        script = textwrap.dedent("""
            import os, sys, time
            from events import StopToken
            from scheduler import PlaybackState
            from shutdown import ShutdownCoordinator
            from supervisor import ProcessSupervisor

            sup = ProcessSupervisor(shell="/bin/sh", poll_interval=0.05, grace=0.5)
            state = PlaybackState()
            ShutdownCoordinator(state, sup, StopToken()).install()
            state.begin(sup.start(sys.argv[1]))
            while not os.path.exists(sys.argv[2]):
                time.sleep(0.05)
        """)
        prog = subprocess.run(
            [sys.executable, "-c", script,
             RENDERER.format(pidfile=pidfile), str(pidfile)],
            cwd=str(REPO), capture_output=True, timeout=30)

        assert prog.returncode == 0, prog.stderr.decode(errors="replace")
        assert b"exit: stopping shader screensaver" in prog.stdout
        assert _survivors(_wait_for_pids(pidfile)) == []
