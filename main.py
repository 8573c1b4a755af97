import argparse
import sys

import config
from app import ScreensaverApp
from setlist import load_setlist


def _check(path: str) -> int:
    entries = load_setlist(path)
    for e in entries:
        print(f"line {e.source_line:>3}:  {e.duration:>5}s  {e.command}")
    total = sum(e.duration for e in entries)
    print(f"{len(entries)} entries, {total}s per pass  ({path})")
    return 0


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(
        description="Cycle the display through a setlist of shader commands")
    ap.add_argument("--setlist", help="setlist file (default: setlist.conf)")
    ap.add_argument("--log", help="file receiving command output")
    ap.add_argument("--overlap", type=int, metavar="SEC",
                    help=f"seconds both renderers stay up (default: {config.OVERLAP_SEC})")
    ap.add_argument("--display", help="DISPLAY for launched commands "
                                      f"(default: $DISPLAY or {config.DEFAULT_DISPLAY})")
    ap.add_argument("--check", action="store_true",
                    help="parse and list the setlist, launch nothing")
    args = ap.parse_args(argv)

    if args.overlap is not None and args.overlap < 0:
        ap.error("--overlap must be >= 0")

    try:
        if args.check:
            path, _ = config.resolve_setlist_path(args.setlist)
            return _check(path)

        saver = ScreensaverApp(args.setlist, args.log, args.overlap, args.display)
    except config.ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return saver.run()


if __name__ == "__main__":
    sys.exit(main())
