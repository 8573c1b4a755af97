#!/usr/bin/env python3
"""
diagnostics.py  –  host + process status for the pass-complete log line

An unattended screensaver is usually inspected only through its log, so
every completed pass reports uptime, CPU, memory and load.
"""

from __future__ import annotations
import os
import time
from typing import Any

import psutil

_script_start = time.monotonic()
_boot_time    = psutil.boot_time()


# ── helpers ────────────────────────────────────────────────────────────────
def fmt_duration(secs: float) -> str:
    d, rem = divmod(int(secs), 86400)
    h, rem = divmod(rem, 3600)
    m, s   = divmod(rem, 60)
    return f"{d}d {h:02}:{m:02}:{s:02}"


def snapshot() -> dict[str, Any]:
    """CPU, memory, uptime and load in a flat dict."""
    data: dict[str, Any] = {}
    # CPU (since the previous call; first call reports 0.0)
    data["cpu_percent"] = psutil.cpu_percent(interval=None)
    # Memory
    vm = psutil.virtual_memory()
    data["mem_used"]  = f"{vm.used // 1024**2} MB"
    data["mem_total"] = f"{vm.total // 1024**2} MB"
    data["rss"]       = f"{psutil.Process().memory_info().rss // 1024**2} MB"
    # Uptime
    data["script_uptime"]  = fmt_duration(time.monotonic() - _script_start)
    data["machine_uptime"] = fmt_duration(time.time() - _boot_time)
    # Load average
    try:
        la = os.getloadavg()
        data["load_avg"] = ", ".join(f"{x:.2f}" for x in la)
    except (AttributeError, OSError):
        data["load_avg"] = "N/A"
    return data


def summary_line() -> str:
    d = snapshot()
    return (f"uptime {d['script_uptime']}  cpu {d['cpu_percent']:.1f}%  "
            f"mem {d['mem_used']}/{d['mem_total']}  rss {d['rss']}  "
            f"load {d['load_avg']}")
