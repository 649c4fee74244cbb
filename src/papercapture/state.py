"""Config file location and persistence."""

import json
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def get_cache_dir() -> Path:
    """Get the papercapture home directory, creating if needed.

    Defaults to ~/.papercapture; PAPERCAPTURE_HOME overrides it.
    """
    override = os.environ.get("PAPERCAPTURE_HOME")
    cache_dir = Path(override) if override else Path.home() / ".papercapture"
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def get_config_path() -> Path:
    """Get path to config file."""
    return get_cache_dir() / "config.json"


def get_config() -> dict:
    """Load configuration from JSON file (empty dict if missing or unreadable)."""
    config_path = get_config_path()
    if not config_path.exists():
        return {}

    try:
        with open(config_path) as f:
            return json.loads(f.read())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable config at {config_path}: {e}")
        return {}


def save_config(config: dict) -> None:
    """Save configuration to JSON file."""
    config_path = get_config_path()
    config_path.write_text(json.dumps(config, indent=2))
