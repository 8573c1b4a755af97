"""
supervisor.py

Launches setlist commands as isolated process groups and tears them down
again.

Public API
----------
start(command, banner)      → SupervisedProcess   (never blocks)
is_alive(proc)              → True while any member of the group exists
terminate(proc, grace)      → SIGTERM the group, poll, SIGKILL on timeout

Renderers tend to fork helpers (a shell, the viewer, a watcher…), so a
command is always started in its own session and signalled as a group.
Where there are no process groups (Windows) the leader's descendant tree
is tracked with psutil and terminated member by member.
"""

from __future__ import annotations

import os
import signal
import subprocess
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

import psutil

import config

_POSIX = hasattr(os, "killpg")

_KILL_CONFIRM_POLLS = 10
_KILL_CONFIRM_STEP  = 0.05


# ── Data structures ─────────────────────────────────────────────────────────
@dataclass
class SupervisedProcess:
    pgid: Optional[int]                 # None → launch failed
    started_at: float
    command: str = ""
    popen: Optional[subprocess.Popen] = field(default=None, repr=False, compare=False)
    tree: Dict[int, psutil.Process] = field(default_factory=dict, repr=False, compare=False)


# ── Supervisor ──────────────────────────────────────────────────────────────
class ProcessSupervisor:
    def __init__(self,
                 log_file: str | None = None,
                 work_dir: str | None = None,
                 shell: str | None = None,
                 env: dict | None = None,
                 poll_interval: float | None = None,
                 grace: float | None = None) -> None:
        self.log_file = log_file
        self.work_dir = work_dir
        self.shell    = shell or config.SHELL
        self.env      = env
        self.poll_interval = poll_interval or config.TERM_POLL_INTERVAL
        self.grace    = config.TERM_GRACE_SEC if grace is None else grace

    # ---------------------------------------------------------------- start
    def start(self, command: str, banner: str | None = None) -> SupervisedProcess:
        """
        Launch *command* through the shell in a new process group and
        return at once.  A command that cannot be launched comes back as
        a handle that is already dead.
        """
        kwargs = {
            "shell": True,
            "cwd": self.work_dir,
            "env": self.env,
            "stdin": subprocess.DEVNULL,
            "stderr": subprocess.STDOUT,
        }
        if _POSIX:
            kwargs["start_new_session"] = True
            kwargs["executable"] = self.shell
        else:
            kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP

        log = self._open_log(banner)
        kwargs["stdout"] = log if log is not None else subprocess.DEVNULL
        try:
            popen = subprocess.Popen(command, **kwargs)
        except (OSError, ValueError) as exc:
            print(f"[supervisor] failed to launch {command!r}: {exc}", flush=True)
            return SupervisedProcess(None, time.time(), command)
        finally:
            if log is not None:
                log.close()

        # start_new_session=True → the leader's pid is the group id
        proc = SupervisedProcess(popen.pid, time.time(), command, popen)
        if not _POSIX:
            self._track_tree(proc)
        return proc

    def _open_log(self, banner: str | None):
        if not self.log_file:
            return None
        try:
            log = open(self.log_file, "ab")
        except OSError as exc:
            print(f"[supervisor] cannot open log {self.log_file}: {exc}", flush=True)
            return None
        if banner:
            log.write(banner.encode("utf-8", errors="replace"))
            log.flush()
        return log

    # ------------------------------------------------------------- liveness
    def is_alive(self, proc: SupervisedProcess | None) -> bool:
        if proc is None or proc.pgid is None:
            return False
        if proc.popen is not None:
            proc.popen.poll()           # reap the leader so it stops counting

        if not _POSIX:
            return any(self._member_alive(p) for p in self._track_tree(proc).values())

        try:
            os.killpg(proc.pgid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return self._group_has_live_member(proc.pgid)

    # ------------------------------------------------------------ terminate
    def terminate(self, proc: SupervisedProcess | None, grace: float | None = None) -> None:
        """
        Cooperative stop first, forced kill if the group outlives *grace*.
        Dead or unknown handles are ignored.  Returns once the group is gone
        or after the forced kill, whichever comes first.
        """
        if not self.is_alive(proc):
            return
        grace = self.grace if grace is None else grace

        self._send(proc, forced=False)
        polls = max(1, int(round(grace / self.poll_interval)))
        for _ in range(polls):
            if not self.is_alive(proc):
                return
            time.sleep(self.poll_interval)
        if not self.is_alive(proc):
            return

        print(f"[supervisor] group {proc.pgid} ignored SIGTERM for {grace:g}s; "
              f"killing", flush=True)
        self._send(proc, forced=True)
        for _ in range(_KILL_CONFIRM_POLLS):
            if not self.is_alive(proc):
                return
            time.sleep(_KILL_CONFIRM_STEP)
        print(f"[supervisor] warning: group {proc.pgid} still present after SIGKILL",
              flush=True)

    # ── internals ───────────────────────────────────────────────────────────
    def _send(self, proc: SupervisedProcess, forced: bool) -> None:
        if not _POSIX:
            for p in self._track_tree(proc).values():
                try:
                    if forced:
                        p.kill()
                    else:
                        p.terminate()
                except psutil.Error:
                    pass
            return

        sig = signal.SIGKILL if forced else signal.SIGTERM
        try:
            os.killpg(proc.pgid, sig)
        except ProcessLookupError:
            pass
        except PermissionError:
            # group not ours any more; fall back to the leader alone
            if proc.popen is not None and proc.popen.poll() is None:
                proc.popen.send_signal(sig)

    @staticmethod
    def _group_has_live_member(pgid: int) -> bool:
        """killpg(0) also succeeds for zombies nobody has reaped yet."""
        for p in psutil.process_iter(["status"]):
            try:
                if p.info["status"] == psutil.STATUS_ZOMBIE:
                    continue
                if os.getpgid(p.pid) == pgid:
                    return True
            except (psutil.Error, OSError):
                continue
        return False

    @staticmethod
    def _member_alive(p: psutil.Process) -> bool:
        try:
            return p.is_running() and p.status() != psutil.STATUS_ZOMBIE
        except psutil.Error:
            return False

    def _track_tree(self, proc: SupervisedProcess) -> Dict[int, psutil.Process]:
        """Add the leader's current descendants to the tracked set."""
        try:
            if proc.pgid not in proc.tree:
                proc.tree[proc.pgid] = psutil.Process(proc.pgid)
            leader = proc.tree[proc.pgid]
            if leader.is_running():
                for child in leader.children(recursive=True):
                    proc.tree.setdefault(child.pid, child)
        except psutil.Error:
            pass
        return proc.tree
