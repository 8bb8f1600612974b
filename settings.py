"""Persistent planner settings for the crop rotation advisor.

Stores search preferences in ~/.crop_rotation_settings.json.
Only settings are persisted; garden state never outlives a session.
"""

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULTS = {
    "lookahead_depth": 3,
    "max_branching_factor": 500,
    "enable_deep_search": True,
    "probability_threshold": 0.0,
    "use_heuristic_ordering": True,
    "include_future_potential": True,
    "starting_seed_count": 23,
}


def _default_path():
    return Path.home() / ".crop_rotation_settings.json"


def _same_kind(value, default):
    """Check that value fits the type of its default (bools are not ints here)."""
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, int):
        return isinstance(value, int) and not isinstance(value, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, type(default))


def merge_settings(data):
    """DEFAULTS overlaid with the known, well-typed entries of data."""
    result = dict(DEFAULTS)
    if not isinstance(data, dict):
        return result
    for key, default in DEFAULTS.items():
        if key not in data:
            continue
        if _same_kind(data[key], default):
            result[key] = data[key]
        else:
            logger.warning("Ignoring setting %s=%r: expected %s", key, data[key], type(default).__name__)
    return result


def load_settings(path=None):
    """Load settings from JSON file. Returns DEFAULTS on missing/corrupt.

    Missing keys get default values; unknown keys and values of the wrong
    type are ignored. Range checks happen when a PlannerConfig is built.
    """
    path = Path(path) if path is not None else _default_path()
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError:
        return dict(DEFAULTS)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Could not read settings from %s: %s", path, e)
        return dict(DEFAULTS)
    return merge_settings(data)


def save_settings(settings, path=None):
    """Write the known settings to JSON via a temporary file.

    Write errors are logged, not raised.
    """
    path = Path(path) if path is not None else _default_path()
    known = {key: settings[key] for key in DEFAULTS if key in settings}
    tmp = path.with_name(path.name + ".tmp")
    try:
        tmp.write_text(json.dumps(known, indent=2))
        tmp.replace(path)
    except OSError as e:
        logger.warning("Could not save settings to %s: %s", path, e)
