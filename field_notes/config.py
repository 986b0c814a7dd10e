# config.py
# Description: Configuration for the field_notes client: embedded TOML defaults, the user's config file and env overrides.
#
# Imports
import copy
import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional
#
# Third-Party Imports
import toml
from loguru import logger
#
# Local Imports
#
#######################################################################################################################
#
# Functions:

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "field_notes" / "config.toml"
BASE_DATA_DIR = Path.home() / ".local" / "share" / "field_notes"

API_URL_ENV_VAR = "FIELD_NOTES_API_URL"
API_TOKEN_ENV_VAR = "FIELD_NOTES_API_TOKEN"

CONFIG_TOML_CONTENT = """
# Configuration for the field_notes client.
# Missing keys fall back to the built-in defaults.

[general]
default_theme = "textual-dark"
log_level = "INFO"

[logging]
log_filename = "field_notes.log"
file_log_level = "DEBUG"
log_max_bytes = 10485760 # 10 MB
log_backup_count = 5

[database]
notes_db_path = "~/.local/share/field_notes/notes_cache.db"

[api]
# FIELD_NOTES_API_URL / FIELD_NOTES_API_TOKEN override these.
base_url = "http://127.0.0.1:3000"
token = ""
timeout = 10.0

[network]
# URL the connectivity probe sends HEAD requests to. Empty means the API base URL.
probe_url = ""
poll_interval = 5.0
probe_timeout = 3.0

[sync]
# Push pending changes when the app regains focus or the network comes back.
sync_on_foreground = true
sync_on_reconnect = true
# Pull everything from the server on first launch (empty local cache).
initial_pull = true
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}. Application cannot start correctly.")
    DEFAULT_CONFIG_FROM_TOML = {}


def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    api_section = config.setdefault("api", {})
    api_url = os.getenv(API_URL_ENV_VAR)
    if api_url:
        api_section["base_url"] = api_url
        logger.debug(f"Using API base URL from {API_URL_ENV_VAR}")
    api_token = os.getenv(API_TOKEN_ENV_VAR)
    if api_token:
        api_section["token"] = api_token
        logger.debug(f"Using API token from {API_TOKEN_ENV_VAR}")
    return config


_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def load_settings(force_reload: bool = False, config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Loads settings from ~/.config/field_notes/config.toml (or `config_path`),
    merged over the built-in defaults. A missing file is created from the defaults.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload:
        return _CONFIG_CACHE

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not path.exists():
        logger.info(f"Config file not found at {path}. Creating it with default values.")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                toml.dump(DEFAULT_CONFIG_FROM_TOML, f)
        except OSError as e:
            logger.error(f"Could not create default config file {path}: {e}. Using internal defaults.")
    else:
        try:
            with open(path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Loaded and merged config from {path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {path}: {e}. Using internal defaults.")

    _CONFIG_CACHE = _apply_env_overrides(loaded_config)
    logger.debug(f"load_settings returning config with top-level keys: {list(_CONFIG_CACHE.keys())}")
    return _CONFIG_CACHE


def get_setting(section: str, key: str, default: Any = None) -> Any:
    """Gets one setting from the loaded configuration, or `default` if the section or key is missing."""
    section_data = load_settings().get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


def get_notes_db_path() -> Path:
    default_db_path_str = DEFAULT_CONFIG_FROM_TOML.get("database", {}).get(
        "notes_db_path", str(BASE_DATA_DIR / "notes_cache.db"))
    db_path_str = get_setting("database", "notes_db_path", default_db_path_str)
    return Path(db_path_str).expanduser().resolve()


def get_log_file_path() -> Path:
    log_filename = get_setting("logging", "log_filename", "field_notes.log")
    log_file_path = get_notes_db_path().parent / log_filename
    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create log directory {log_file_path.parent}: {e}")
    return log_file_path


def get_probe_url(app_config: Optional[Dict[str, Any]] = None) -> str:
    """The URL the reachability probe hits: `[network] probe_url`, else the API base URL."""
    settings = app_config if app_config is not None else load_settings()
    probe_url = settings.get("network", {}).get("probe_url")
    return probe_url or settings.get("api", {}).get("base_url", "")

#
# End of config.py
#######################################################################################################################
