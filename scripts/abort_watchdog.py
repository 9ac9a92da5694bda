"""
abort_watchdog.py
-----------------
Marker-file abort watchdog for long-running stepping loops.

Watches for a named file in the run directory and, when it appears, asks the
host loop to shut down according to the configured action:

    noWriteNow  stop immediately without writing a checkpoint
    writeNow    write a checkpoint now, then stop
    nextWrite   stop after the next regularly scheduled checkpoint (default)

The default marker is <run_dir>/<name>, where <name> is the config entry name.

Usage:
    from abort_watchdog import AbortWatchdog
    wd = AbortWatchdog("abort", run_dir, {"action": "writeNow"})
    ...
    wd.on_step(control)     # once per loop iteration
    wd.on_end(control)      # once at teardown
"""

import enum
import logging
import os
import re
import stat
import string
from pathlib import Path

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class WatchdogError(Exception):
    pass


class ConfigError(WatchdogError, ValueError):
    """Invalid watchdog configuration. Always raised at setup, never mid-run."""


class UnknownActionError(ConfigError):
    def __init__(self, name: str, token):
        self.name = name
        self.token = token
        valid = ", ".join(a.value for a in AbortAction)
        super().__init__(f"{name}: unknown action '{token}' (expected one of: {valid})")


class EmptyPathError(ConfigError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"{name}: 'file' must not be empty")


class ExistenceCheckFailed(WatchdogError, OSError):
    """The marker path could not be stat'ed, so absence is unconfirmed."""


class DeleteFailed(WatchdogError, OSError):
    pass


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------

class AbortAction(enum.Enum):
    STOP_NOW = "noWriteNow"
    CHECKPOINT_AND_STOP_NOW = "writeNow"
    STOP_AFTER_NEXT_CHECKPOINT = "nextWrite"


DEFAULT_ACTION = AbortAction.STOP_AFTER_NEXT_CHECKPOINT

_ACTION_MESSAGES = {
    AbortAction.STOP_NOW: "stop without writing data",
    AbortAction.CHECKPOINT_AND_STOP_NOW: "stop+write data",
    AbortAction.STOP_AFTER_NEXT_CHECKPOINT: "stop after next data write",
}

# Keys every function object entry may carry; consumed by the factory.
_SHARED_KEYS = {"type"}

# Expands to the watchdog's run directory, whatever the process env says.
RUN_DIR_VARIABLE = "SIM_RUN_DIR"
_VARIABLE_RE = re.compile(r"\$\{?[A-Za-z_][A-Za-z0-9_]*\}?")


def parse_action(name: str, token) -> AbortAction:
    """Map a config token to an AbortAction (exact, case-sensitive)."""
    for action in AbortAction:
        if token == action.value:
            return action
    raise UnknownActionError(name, token)


def resolve_marker_path(name: str, run_dir, file=None) -> Path:
    """Return the absolute marker path for an entry.

    ``file`` may use ``~`` and ``$VAR``; ``$SIM_RUN_DIR`` always means run_dir.
    Relative paths are taken from run_dir.
    """
    run_dir = Path(run_dir).expanduser().resolve()
    if file is None:
        return run_dir / name
    if not isinstance(file, (str, os.PathLike)):
        raise ConfigError(f"{name}: 'file' must be a string, got {type(file).__name__}")
    if not str(file).strip():
        raise EmptyPathError(name)

    variables = {**os.environ, RUN_DIR_VARIABLE: str(run_dir)}
    text = string.Template(str(file).strip()).safe_substitute(variables)
    unresolved = _VARIABLE_RE.findall(text)
    if unresolved:
        logger.warning(f"{name}: undefined variable(s) {', '.join(unresolved)} "
                       f"left in marker path '{text}'")
    expanded = Path(os.path.expanduser(text))
    if not expanded.is_absolute():
        expanded = run_dir / expanded
    return Path(os.path.normpath(expanded))


# ---------------------------------------------------------------------------
# Watchdog
# ---------------------------------------------------------------------------

class AbortWatchdog:
    """Stops the host loop when the marker file appears.

    The host control object is passed in on every call and never stored.
    """

    type_name = "abort"

    def __init__(self, name: str, run_dir, config: dict | None = None):
        if not name:
            raise ConfigError("function object name must not be empty")
        self.name = name
        self.run_dir = Path(run_dir).expanduser().resolve()
        self.marker_path = self.run_dir / name
        self.action = DEFAULT_ACTION
        self.armed = False
        self._ignored_path = None
        self.configure(config or {})

        # A marker left over from an earlier run must not stop this one.
        if self._marker_exists(strict=False):
            logger.info(f"{self.name}: removing stale marker {self.marker_path}")
            self.remove_marker()

    def __repr__(self):
        return (f"AbortWatchdog(name={self.name!r}, marker_path='{self.marker_path}', "
                f"action={self.action.value!r})")

    # -- Configuration ------------------------------------------------------

    @staticmethod
    def validate(name: str, run_dir, config: dict) -> tuple[Path, AbortAction]:
        """Check an entry without touching any watchdog or file."""
        marker_path = resolve_marker_path(name, run_dir, config.get("file"))
        action = parse_action(name, config.get("action", DEFAULT_ACTION.value))
        return marker_path, action

    def configure(self, config: dict):
        """Validate and apply ``file`` / ``action``; replaces previous values.

        Nothing is changed if validation fails.
        """
        marker_path, action = self.validate(self.name, self.run_dir, config)

        for key in config:
            if key not in ("file", "action") and key not in _SHARED_KEYS:
                logger.debug(f"{self.name}: ignoring unrecognised key '{key}'")

        self.marker_path = marker_path
        self.action = action
        logger.info(f"{self.name}: watching {self.marker_path} (action={action.value})")

    # -- Host loop hooks ----------------------------------------------------

    def on_step(self, control) -> bool:
        """Check for the marker; return False when the loop should halt now."""
        if not self._marker_exists():
            return True

        step = getattr(control, "step", "?")
        message = _ACTION_MESSAGES[self.action]

        if self.action is AbortAction.STOP_NOW:
            self.remove_marker()
            logger.warning(f"USER REQUESTED ABORT (step={step}): {message} [{self.marker_path}]")
            control.request_immediate_halt()
            return False

        if self.action is AbortAction.CHECKPOINT_AND_STOP_NOW:
            self.remove_marker()
            logger.warning(f"USER REQUESTED ABORT (step={step}): {message} [{self.marker_path}]")
            control.request_checkpoint_then_halt()
            return False

        # nextWrite: the marker stays until on_end so it can be re-observed.
        if not self.armed:
            logger.warning(f"USER REQUESTED ABORT (step={step}): {message} [{self.marker_path}]")
            control.request_halt_after_next_scheduled_checkpoint()
            self.armed = True
        return True

    def on_end(self, control=None):
        """Teardown: remove any marker still present."""
        self.armed = False
        if self._marker_exists(strict=False):
            self.remove_marker()

    # -- Filesystem ---------------------------------------------------------

    def _marker_exists(self, strict: bool = True) -> bool:
        try:
            st = os.stat(self.marker_path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as e:
            logger.warning(f"{self.name}: cannot check marker {self.marker_path} "
                           f"(action={self.action.value}): {e}")
            if strict:
                raise ExistenceCheckFailed(e.errno, e.strerror or str(e), str(self.marker_path)) from e
            return False
        if not stat.S_ISREG(st.st_mode):
            # Only regular files count; warn once per path so the step loop stays quiet.
            if self._ignored_path != self.marker_path:
                logger.warning(f"{self.name}: {self.marker_path} is not a regular file, "
                               f"ignoring it (action={self.action.value})")
                self._ignored_path = self.marker_path
            return False
        return True

    def remove_marker(self, strict: bool = False):
        """Delete the marker file. Already-gone is fine; other errors warn.

        With ``strict=True`` a failed delete raises DeleteFailed instead.
        """
        try:
            self.marker_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"{self.name}: could not remove marker {self.marker_path} "
                           f"(action={self.action.value}): {e}")
            if strict:
                raise DeleteFailed(e.errno, e.strerror or str(e), str(self.marker_path)) from e
