"""
02_run_simulation.py
--------------------
Runs a dummy stepping loop under the configured watchdogs. Handy for trying
out abort actions by hand from a second terminal.

Usage:
    python scripts/02_run_simulation.py --config functions.json --end-step 500 \
        --write-interval 50 --step-seconds 0.1
    python scripts/01_abort_signal.py stop          # from another shell

Without --config a single default entry {"abort": {"type": "abort"}} is used.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent))
from abort_watchdog import ConfigError
from function_objects import build_all, load_config, resolve_run_dir
from run_control import RunControl, run_loop

DEFAULT_CONFIG = {"functions": {"abort": {"type": "abort"}}}

logger = logging.getLogger(__name__)


def setup_logging(run_dir: Path, log_file: bool):
    handlers = [logging.StreamHandler()]
    if log_file:
        log_dir = run_dir / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "run_simulation.log"))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=handlers,
    )


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="Dummy stepping loop with abort watchdogs")
    p.add_argument("--config", type=str, help="JSON function object config")
    p.add_argument("--run-dir", type=str, help="Run directory (default: $SIM_RUN_DIR or cwd)")
    p.add_argument("--end-step", type=int, default=100)
    p.add_argument("--write-interval", type=int, default=10)
    p.add_argument("--step-seconds", type=float, default=0.0, help="Sleep per step")
    p.add_argument("--log-file", action="store_true", help="Also log to <run_dir>/logs/")
    args = p.parse_args(argv)

    run_dir = resolve_run_dir(args.run_dir)
    setup_logging(run_dir, args.log_file)

    try:
        config = load_config(args.config) if args.config else DEFAULT_CONFIG
        watchdogs = build_all(config, run_dir)
    except (ConfigError, OSError) as e:
        logger.error(f"Configuration failed: {e}")
        return 2

    def advance(step):
        if args.step_seconds > 0:
            time.sleep(args.step_seconds)

    def write(step):
        logger.info(f"Writing checkpoint at step {step}")

    control = RunControl(end_step=args.end_step, write_interval=args.write_interval)
    final_step = run_loop(control, watchdogs, advance=advance, write=write)
    print(f"Stopped at step {final_step} (last checkpoint: {control.last_write_step})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
