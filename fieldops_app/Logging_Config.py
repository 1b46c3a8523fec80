# Logging_Config.py
# Description: Configuration for logging
#
# Imports
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Optional
#
# 3rd-Party Imports
from loguru import logger as loguru_logger
#
# Local Imports
from fieldops_app.config import get_log_file_path, load_settings
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s:%(lineno)d - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LOGURU_LEVEL_MAPPING = {
    "TRACE": logging.DEBUG, "DEBUG": logging.DEBUG, "INFO": logging.INFO,
    "SUCCESS": logging.INFO, "WARNING": logging.WARNING, "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def sink_to_standard_logging(message):
    """Loguru sink that re-emits each record through the standard logging logger of the same name."""
    record = message.record
    std_level = _LOGURU_LEVEL_MAPPING.get(record["level"].name, logging.INFO)
    std_logger = logging.getLogger(record["name"])
    if record["exception"]:
        std_logger.log(std_level, record["message"], exc_info=record["exception"])
    else:
        std_logger.log(std_level, record["message"])


def _level_from_name(name: Optional[str], fallback: int) -> int:
    if not name:
        return fallback
    return getattr(logging, str(name).upper(), fallback)


def configure_logging(settings: Optional[Dict[str, Any]] = None, log_file: Optional[Path] = None,
                      console: bool = True) -> logging.Logger:
    """
    Sets up logging for the data layer.

    Loguru (used by the sync, api and workflow layers) is forwarded into the
    standard `logging` tree, which the DB layer writes to directly. The root
    logger then gets a console handler and a rotating file handler.

    Args:
        settings: Loaded config dict. Defaults to `load_settings()`.
        log_file: Overrides the configured log file path.
        console: Attach a stderr handler.

    Returns:
        The configured root logger.
    """
    settings = settings if settings is not None else load_settings()
    logging_section = settings.get("logging", {})

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    # --- Loguru management ---
    try:
        loguru_logger.remove()
        loguru_logger.add(
            sink_to_standard_logging,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            level="TRACE"
        )
    except ValueError as e:
        logging.error(f"Loguru: Error during Loguru reconfiguration: {e}", exc_info=True)

    # --- Standard logging root logger ---
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        try:
            handler.close()
        except OSError:
            pass

    console_level = _level_from_name(logging_section.get("log_level"), logging.INFO)
    root_logger.setLevel(console_level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # --- File logging ---
    try:
        log_file_path = Path(log_file) if log_file else get_log_file_path()
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        max_bytes = int(logging_section.get("log_max_bytes", 10485760))
        backup_count = int(logging_section.get("log_backup_count", 5))
        file_log_level = _level_from_name(logging_section.get("file_log_level"), logging.INFO)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'
        )
        file_handler.setLevel(file_log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
        logging.info(f"Standard Logging: Added RotatingFileHandler (File: '{log_file_path}', "
                     f"Level: {logging.getLevelName(file_log_level)}).")
    except (OSError, ValueError) as e:
        logging.warning(f"!!! ERROR setting up file logging: {e}", exc_info=True)

    # Root level follows the most verbose handler
    handler_levels = [h.level for h in root_logger.handlers if h.level > 0]
    if handler_levels and root_logger.level > min(handler_levels):
        root_logger.setLevel(min(handler_levels))

    logging.info(f"Logging setup complete. Root level: {logging.getLevelName(root_logger.level)}")
    return root_logger

#
# End of Logging_Config.py
########################################################################################################################
