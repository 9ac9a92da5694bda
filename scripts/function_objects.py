"""
function_objects.py
-------------------
Builds loop function objects (watchdogs) from JSON configuration.

Config file layout:

    {
      "functions": {
        "abort": {"type": "abort"},
        "stop":  {"type": "abort", "file": "$SIM_RUN_DIR/stop", "action": "writeNow"}
      }
    }

The entry name is the function object's name; ``type`` selects the class.
The run directory comes from the caller, else $SIM_RUN_DIR, else the cwd.
Inside "file", $SIM_RUN_DIR always expands to that run directory.
"""

import json
import logging
import os
from pathlib import Path

from abort_watchdog import AbortWatchdog, ConfigError

logger = logging.getLogger(__name__)


class UnknownTypeError(ConfigError):
    pass


class DuplicateNameError(ConfigError):
    pass


FUNCTION_OBJECT_TYPES = {}


def register(type_name: str):
    """Class decorator: make ``type_name`` entries build this class."""
    def decorator(cls):
        if type_name in FUNCTION_OBJECT_TYPES and FUNCTION_OBJECT_TYPES[type_name] is not cls:
            logger.warning(f"function object type '{type_name}' re-registered as {cls.__name__}")
        FUNCTION_OBJECT_TYPES[type_name] = cls
        return cls
    return decorator


register(AbortWatchdog.type_name)(AbortWatchdog)


def resolve_run_dir(explicit=None) -> Path:
    """Explicit value, then $SIM_RUN_DIR, then the current directory."""
    run_dir = explicit or os.environ.get("SIM_RUN_DIR") or os.getcwd()
    return Path(run_dir).expanduser().resolve()


def load_config(path) -> dict:
    """Read a JSON function-object config file."""
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path}: invalid JSON: {e}") from e
    if not isinstance(config, dict):
        raise ConfigError(f"{path}: top level must be an object")
    return config


def _entries(config: dict) -> list[tuple[str, dict]]:
    functions = config.get("functions", {})
    if isinstance(functions, list):
        # [{"name": ..., "type": ...}, ...]
        pairs = []
        for entry in functions:
            if not isinstance(entry, dict) or not entry.get("name"):
                raise ConfigError(f"function entry without a name: {entry!r}")
            pairs.append((entry["name"], {k: v for k, v in entry.items() if k != "name"}))
    elif isinstance(functions, dict):
        pairs = list(functions.items())
    else:
        raise ConfigError("'functions' must be an object or a list")

    seen = set()
    for name, entry in pairs:
        if name in seen:
            raise DuplicateNameError(f"duplicate function object name '{name}'")
        if not isinstance(entry, dict):
            raise ConfigError(f"{name}: entry must be an object")
        seen.add(name)
    return pairs


def _lookup(name: str, entry: dict):
    type_name = entry.get("type")
    if not type_name:
        raise UnknownTypeError(f"{name}: missing 'type'")
    cls = FUNCTION_OBJECT_TYPES.get(type_name)
    if cls is None:
        known = ", ".join(sorted(FUNCTION_OBJECT_TYPES))
        raise UnknownTypeError(f"{name}: unknown type '{type_name}' (known: {known})")
    return cls


def build(name: str, entry: dict, run_dir):
    """Construct one function object from its config entry."""
    cls = _lookup(name, entry)
    return cls(name, resolve_run_dir(run_dir), entry)


def build_all(config: dict, run_dir=None) -> list:
    """Construct every configured function object, in entry order.

    All entries are validated first; a bad entry builds nothing.
    """
    run_dir = resolve_run_dir(run_dir)
    pairs = _entries(config)
    for name, entry in pairs:
        _lookup(name, entry).validate(name, run_dir, entry)

    objects = [build(name, entry, run_dir) for name, entry in pairs]
    logger.info(f"Built {len(objects)} function object(s) in {run_dir}")
    return objects


def reload(function_objects: list, config: dict):
    """Re-apply configuration to existing function objects, matched by name.

    Every entry is validated before any object is changed.
    """
    by_name = dict(_entries(config))
    updates = []
    for fo in function_objects:
        entry = by_name.get(fo.name)
        if entry is None:
            logger.info(f"{fo.name}: no entry on reload, keeping current settings")
            continue
        if entry.get("type", fo.type_name) != fo.type_name:
            raise UnknownTypeError(f"{fo.name}: type cannot change on reload "
                                   f"('{fo.type_name}' -> '{entry.get('type')}')")
        fo.validate(fo.name, fo.run_dir, entry)
        updates.append((fo, entry))

    known = {fo.name for fo in function_objects}
    for name in by_name:
        if name not in known:
            logger.info(f"{name}: entry has no running function object, ignored on reload")

    for fo, entry in updates:
        fo.configure(entry)
