"""Utility file for reading the yaml configuration file."""
import os
from pathlib import Path
from typing import Any

import yaml

BASE = Path(__file__).resolve().parent.parent
CONFIG_PATH = Path(os.environ.get("FLOWSEARCH_CONFIG", BASE.parent / "config.yaml"))


def load_config(path: Path = CONFIG_PATH) -> dict:
    """Load a yaml config file, returning an empty mapping if it does not exist."""
    if not path.is_file():
        return {}
    return yaml.safe_load(path.read_text()) or {}


config: dict = load_config()


def get_key(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key. Search through nested keys using dot notation.

    Args:
        key (str): The key to look up in the configuration, e.g. "solver.max_iterations".
        default: The value to return if the key is not found.

    Returns:
        The value associated with the key, or the default value if the key is not found.
    """
    value = config
    for k in key.split("."):
        if isinstance(value, dict) and k in value:
            value = value[k]
        else:
            return default
    return value


def is_verbose() -> bool:
    """Return True if verbose output (progress bars, debug logging) is enabled."""
    return bool(get_key("logging.verbose", False))


if __name__ == "__main__":
    print(yaml.safe_dump(config, sort_keys=False))
