# fieldops_app/config.py
# Description: Configuration management for the FieldOps data layer.
#
# Imports
import copy
import os
import tomllib
from pathlib import Path
from typing import Dict, Any, Optional
#
# Third-Party Imports
import toml
from loguru import logger
#
# Local Imports
from fieldops_app.Constants import DEFAULT_API_TIMEOUT, SYNC_BATCH_LIMIT
#
#######################################################################################################################
#
# Functions:

# --- Constants ---
# Client ID for this device's local store
CLIENT_ID = "fieldops_local_device_v1"

# --- Path to the configuration file ---
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "fieldops" / "config.toml"
BASE_DATA_DIR = Path.home() / ".local" / "share" / "fieldops"

CONFIG_TOML_CONTENT = f"""
# Configuration for the FieldOps offline data layer
# This file will be created at ~/.config/fieldops/config.toml if it doesn't exist.

[general]
client_id = "{CLIENT_ID}"

[api_settings]
base_url = "http://127.0.0.1:8000"
token = ""
timeout = {DEFAULT_API_TIMEOUT}
page_size = {SYNC_BATCH_LIMIT}

[database]
fieldops_db_path = "~/.local/share/fieldops/fieldops.db"

[logging]
log_level = "INFO"
log_filename = "fieldops.log"
file_log_level = "DEBUG"
log_max_bytes = 10485760 # 10 MB
log_backup_count = 5
"""

try:
    DEFAULT_CONFIG_FROM_TOML: Dict[str, Any] = tomllib.loads(CONFIG_TOML_CONTENT)
except tomllib.TOMLDecodeError as e:
    logger.critical(f"FATAL: Could not parse internal CONFIG_TOML_CONTENT: {e}.")
    DEFAULT_CONFIG_FROM_TOML = {}

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "FIELDOPS_API_URL": ("api_settings", "base_url"),
    "FIELDOPS_API_TOKEN": ("api_settings", "token"),
    "FIELDOPS_DB_PATH": ("database", "fieldops_db_path"),
    "FIELDOPS_LOG_LEVEL": ("logging", "log_level"),
}


# --- Helpers ---
def deep_merge_dicts(base: Dict, update: Dict) -> Dict:
    """Recursively merges update_dict into base_dict."""
    merged = copy.deepcopy(base)
    for key, value in update.items():
        if isinstance(value, dict) and key in merged and isinstance(merged[key], dict):
            merged[key] = deep_merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _get_typed_value(data_dict: Dict, key: str, default: Any, target_type: type = str) -> Any:
    """Helper to get value from dict and cast to type, with logging for type errors."""
    value = data_dict.get(key, default)
    if value is default and default is not None:
        return value
    if value is None:
        return None

    try:
        if target_type == bool:
            if isinstance(value, bool):
                return value
            return str(value).lower() in ['true', '1', 't', 'y', 'yes']
        if target_type == Path:
            return Path(value).expanduser() if value else default
        return target_type(value)
    except (ValueError, TypeError) as e:
        logger.warning(f"Config key '{key}' has value '{value}' which could not be converted to {target_type}. Using default: '{default}'. Error: {e}")
        return default


def get_config_path() -> Path:
    override = os.environ.get("FIELDOPS_CONFIG")
    return Path(override).expanduser() if override else DEFAULT_CONFIG_PATH


def _apply_env_overrides(config: Dict[str, Any]) -> Dict[str, Any]:
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            config.setdefault(section, {})[key] = value
            logger.debug(f"Config [{section}].{key} overridden by ${env_name}")
    return config


# --- Primary Configuration Loading Logic ---
_CONFIG_CACHE: Optional[Dict[str, Any]] = None


def load_settings(force_reload: bool = False) -> Dict[str, Any]:
    """
    Loads settings from the TOML config file (default ~/.config/fieldops/config.toml,
    or $FIELDOPS_CONFIG). If the file doesn't exist, it's created with default values.
    Environment overrides are applied last.
    """
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None and not force_reload:
        return _CONFIG_CACHE

    config_path = get_config_path()
    loaded_config = copy.deepcopy(DEFAULT_CONFIG_FROM_TOML)

    if not config_path.exists():
        logger.info(f"Config file not found at {config_path}. Creating with default values.")
        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, "w", encoding="utf-8") as f:
                f.write(CONFIG_TOML_CONTENT)
            logger.info(f"Created default config file at {config_path}")
        except OSError as e:
            logger.error(f"Could not create default config file {config_path}: {e}. Using internal defaults.")
    else:
        logger.info(f"Attempting to load config from: {config_path}")
        try:
            with open(config_path, "rb") as f:
                user_config_from_file = tomllib.load(f)
            loaded_config = deep_merge_dicts(loaded_config, user_config_from_file)
            logger.info(f"Successfully loaded and merged config from {config_path}")
        except tomllib.TOMLDecodeError as e:
            logger.error(f"Error decoding TOML config file {config_path}: {e}. Using internal defaults.")
        except OSError as e:
            logger.error(f"Could not read config file {config_path}: {e}. Using internal defaults.")

    _CONFIG_CACHE = _apply_env_overrides(loaded_config)
    logger.debug(f"load_settings returning config with top-level keys: {list(_CONFIG_CACHE.keys())}")
    return _CONFIG_CACHE


def save_setting(section: str, key: str, value: Any) -> Path:
    """Writes one setting to the config file and refreshes the cache."""
    config_path = get_config_path()
    current: Dict[str, Any] = {}
    if config_path.exists():
        with open(config_path, "rb") as f:
            current = tomllib.load(f)
    current.setdefault(section, {})[key] = value
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w", encoding="utf-8") as f:
        toml.dump(current, f)
    logger.info(f"Saved [{section}].{key} to {config_path}")
    load_settings(force_reload=True)
    return config_path


# --- Setting Getters ---
def get_cli_setting(section: str, key: str, default: Any = None) -> Any:
    """Helper to get a specific setting from the loaded configuration."""
    config = load_settings()
    section_data = config.get(section)
    if isinstance(section_data, dict):
        return section_data.get(key, default)
    return default


def get_database_path() -> Path:
    default_db_path_str = DEFAULT_CONFIG_FROM_TOML.get("database", {}).get("fieldops_db_path", str(BASE_DATA_DIR / "fieldops.db"))
    db_path_str = get_cli_setting("database", "fieldops_db_path", default_db_path_str)
    return Path(db_path_str).expanduser().resolve()


def get_log_file_path() -> Path:
    default_log_filename = DEFAULT_CONFIG_FROM_TOML.get("logging", {}).get("log_filename", "fieldops.log")
    log_filename = get_cli_setting("logging", "log_filename", default_log_filename)
    log_file_path = get_database_path().parent / log_filename
    try:
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error(f"Could not create log directory {log_file_path.parent}: {e}")
    return log_file_path


def get_api_settings() -> Dict[str, Any]:
    """Base URL, token, timeout and page size for the sync API, typed."""
    api_section = load_settings().get("api_settings", {})
    defaults = DEFAULT_CONFIG_FROM_TOML.get("api_settings", {})
    token = _get_typed_value(api_section, "token", None, str)
    return {
        "base_url": _get_typed_value(api_section, "base_url", defaults.get("base_url"), str),
        "token": token or None,
        "timeout": _get_typed_value(api_section, "timeout", DEFAULT_API_TIMEOUT, float),
        "page_size": _get_typed_value(api_section, "page_size", SYNC_BATCH_LIMIT, int),
    }

#
# End of fieldops_app/config.py
#######################################################################################################################
