"""
01_abort_signal.py
------------------
Creates, clears or inspects the abort marker of a running loop.

Usage:
    python scripts/01_abort_signal.py stop                  # touch <run_dir>/abort
    python scripts/01_abort_signal.py stop --name stop      # touch <run_dir>/stop
    python scripts/01_abort_signal.py resume                # remove the marker
    python scripts/01_abort_signal.py status                # is a stop pending?

The run directory is --run-dir, else $SIM_RUN_DIR, else the current directory.
--file overrides the marker path the same way the watchdog's "file" key does.
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))
from abort_watchdog import ConfigError, resolve_marker_path
from function_objects import resolve_run_dir


def marker_for(args) -> Path:
    return resolve_marker_path(args.name, resolve_run_dir(args.run_dir), args.file)


def stop(marker: Path):
    marker.parent.mkdir(parents=True, exist_ok=True)
    marker.write_text("abort requested\n", encoding="utf-8")
    print(f"ABORT marker created: {marker}")
    print("The running loop will stop according to its configured action.")


def resume(marker: Path):
    if marker.exists():
        marker.unlink(missing_ok=True)
        print(f"ABORT marker removed: {marker}")
    else:
        print(f"No ABORT marker at {marker}; nothing to clear.")


def status(marker: Path) -> bool:
    if marker.exists():
        print(f"ABORT PENDING: {marker} exists.")
        return True
    print(f"No abort pending: {marker} not present.")
    return False


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Manage the abort marker file of a running loop")
    p.add_argument("command", choices=("stop", "resume", "status"))
    p.add_argument("--run-dir", type=str, help="Run directory (default: $SIM_RUN_DIR or cwd)")
    p.add_argument("--name", type=str, default="abort", help="Watchdog entry name (default: abort)")
    p.add_argument("--file", type=str, help="Explicit marker path")
    args = p.parse_args(argv)

    try:
        marker = marker_for(args)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if args.command == "stop":
        stop(marker)
    elif args.command == "resume":
        resume(marker)
    else:
        status(marker)
    return 0


if __name__ == "__main__":
    sys.exit(main())
