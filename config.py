# config.py
"""
Configuration settings for the shader screensaver.

Every constant can be overridden from the environment; main.py may
override them again from the command line.
"""
from __future__ import annotations

import os
import shutil


class ConfigError(Exception):
    """Fatal configuration problem; the scheduler is never started."""


# ── env helpers ────────────────────────────────────────────────────────────
def _env_number(name: str, default, cast=int):
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        val = cast(raw)
    except ValueError:
        print(f"[config] ignoring {name}={raw!r} (not a number); using {default}", flush=True)
        return default
    if val < 0:
        print(f"[config] ignoring {name}={raw!r} (negative); using {default}", flush=True)
        return default
    return val


# ── Paths ──────────────────────────────────────────────────────────────────

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))

SETLIST_FILE    = os.environ.get("SETLIST_FILE") or os.path.join(SCRIPT_DIR, "setlist.conf")
SETLIST_EXAMPLE = os.path.join(SCRIPT_DIR, "setlist.conf.example")

# stdout + stderr of every launched command end up here
LOG_FILE = os.environ.get("LOG_FILE") or os.path.join(SCRIPT_DIR, "shader-screensaver.log")

# Commands run with this as their current directory
WORK_DIR = os.environ.get("SETLIST_WORKDIR") or SCRIPT_DIR

SHELL = os.environ.get("SETLIST_SHELL") or shutil.which("bash") or "/bin/sh"

# ── Display ────────────────────────────────────────────────────────────────

# Used when DISPLAY is unset (cron, systemd, SSH without -X)
DEFAULT_DISPLAY = ":0"

# ── Timing ─────────────────────────────────────────────────────────────────

# Seconds to keep the previous renderer alive after starting the next one
OVERLAP_SEC = _env_number("OVERLAP_SEC", 3)

# SIGTERM → poll every TERM_POLL_INTERVAL for TERM_GRACE_SEC → SIGKILL
TERM_POLL_INTERVAL = 0.5
TERM_GRACE_SEC     = _env_number("TERM_GRACE_SEC", 2.5, float)

# Upper bound on waiting for the scheduler to notice a stop request
SHUTDOWN_JOIN_SEC = 5.0

# ── Setlist syntax ─────────────────────────────────────────────────────────

COMMENT_MARKER      = "#"
CONTINUATION_MARKER = "\\"


# ── resolution ─────────────────────────────────────────────────────────────
def resolve_setlist_path(primary: str | None = None,
                         example: str | None = None) -> tuple[str, bool]:
    """
    Return (path, used_fallback).  Falls back to the example setlist when
    the primary file is missing; raises ConfigError if neither exists.
    """
    primary = primary or SETLIST_FILE
    example = example or SETLIST_EXAMPLE

    if os.path.isfile(primary):
        return primary, False
    if os.path.isfile(example):
        print(f"No {os.path.basename(primary)} found; using "
              f"{os.path.basename(example)}. Copy it to "
              f"{os.path.basename(primary)} to customize.", flush=True)
        return example, True
    raise ConfigError(
        f"No setlist file found. Create {primary} with lines: DURATION  COMMAND"
    )


def apply_display_default(env=None) -> str:
    """Set DISPLAY to DEFAULT_DISPLAY when unset or empty; return it."""
    env = os.environ if env is None else env
    if not env.get("DISPLAY"):
        env["DISPLAY"] = DEFAULT_DISPLAY
    return env["DISPLAY"]
