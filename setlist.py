"""
setlist.py

Setlist parser for the shader screensaver.

File format
-----------
* One entry per logical line:  ``DURATION_SECONDS  COMMAND``
* Blank lines and lines starting with ``#`` are ignored.
* A line ending in ``\\`` is joined with the next physical line (marker
  stripped, single space between the halves), repeatedly.
* The command is the rest of the line, passed to the shell untouched.

Bad lines are reported and skipped; only a setlist with nothing playable
is an error.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Tuple

import config

# ── Regex helpers ───────────────────────────────────────────────────────────
_FIELDS_RE   = re.compile(r"^(\S+)(?:\s+(.*))?$", re.DOTALL)
_DURATION_RE = re.compile(r"^[0-9]+$")


class SetlistError(config.ConfigError):
    """The setlist could not be read or holds no playable entry."""


# ── Data structures ─────────────────────────────────────────────────────────
@dataclass(frozen=True)
class SetlistEntry:
    duration: int
    command: str
    source_line: int


# ── Line assembly ───────────────────────────────────────────────────────────
def _logical_lines(text: str) -> Iterator[Tuple[int, str]]:
    """
    Yield (first physical line number, joined line) for every line that is
    neither blank nor a comment.
    """
    physical = iter(enumerate(text.split("\n"), 1))
    marker = config.CONTINUATION_MARKER

    for line_num, raw in physical:
        line = raw.strip()
        if not line or line.startswith(config.COMMENT_MARKER):
            continue

        while line.endswith(marker):
            line = line[: -len(marker)].rstrip()
            _, nxt = next(physical, (None, ""))
            line = f"{line} {nxt.strip()}"

        yield line_num, line.strip()


def _split(line: str) -> Tuple[str, str]:
    m = _FIELDS_RE.match(line)
    if not m:
        return "", ""
    return m.group(1), (m.group(2) or "").strip()


# ── Public API ──────────────────────────────────────────────────────────────
def parse_setlist(text: str, source: str = "<setlist>") -> List[SetlistEntry]:
    """
    Parse setlist text into entries, in file order.

    Invalid lines are skipped with a warning naming their line number.
    Raises SetlistError when no valid entry remains.
    """
    entries: List[SetlistEntry] = []

    for line_num, line in _logical_lines(text):
        duration, command = _split(line)
        if not duration or not command:
            print(f"[setlist] Skipping invalid setlist line {line_num}: {line}", flush=True)
            continue
        if not _DURATION_RE.match(duration):
            print(f"[setlist] Skipping setlist line {line_num} "
                  f"(invalid duration): {line}", flush=True)
            continue
        entries.append(SetlistEntry(int(duration), command, line_num))

    if not entries:
        raise SetlistError(f"{source}: no valid entries (expected DURATION  COMMAND)")
    return entries


def load_setlist(path: str) -> List[SetlistEntry]:
    """Read *path* (UTF-8) and parse it.  Unreadable files raise SetlistError."""
    try:
        with open(path, "r", encoding="utf-8-sig", errors="replace") as f:
            text = f.read()
    except OSError as exc:
        raise SetlistError(f"cannot read setlist {path}: {exc}") from exc
    return parse_setlist(text, source=path)
