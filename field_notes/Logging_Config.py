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
from textual.logging import TextualHandler
#
# Local Imports
from .config import get_log_file_path
#
########################################################################################################################
#
# Functions:

LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s:%(lineno)d - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LOGURU_TO_STD_LEVELS = {
    "TRACE": logging.DEBUG, "DEBUG": logging.DEBUG, "INFO": logging.INFO,
    "SUCCESS": logging.INFO, "WARNING": logging.WARNING, "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def sink_to_standard_logging(message) -> None:
    """Loguru sink that re-emits each record through the stdlib logger of the same name."""
    record = message.record
    std_level = _LOGURU_TO_STD_LEVELS.get(record["level"].name, logging.INFO)
    std_logger = logging.getLogger(record["name"])
    if record["exception"]:
        std_logger.log(std_level, record["message"], exc_info=record["exception"])
    else:
        std_logger.log(std_level, record["message"])


def _level(name: Any, default: int) -> int:
    return getattr(logging, str(name).upper(), default) if name else default


def configure_logging(app_config: Dict[str, Any], use_textual_handler: bool = False,
                      log_file_path: Optional[Path] = None) -> logging.Logger:
    """
    Routes loguru into stdlib logging and installs the root handlers: stderr (or the
    Textual dev console inside the app) plus a rotating log file. Safe to call again;
    previous root handlers are replaced.
    """
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    loguru_logger.remove()
    loguru_logger.add(sink_to_standard_logging, format="{message}", level="TRACE")

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    general = app_config.get("general", {})
    logging_section = app_config.get("logging", {})
    console_level = _level(general.get("log_level"), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = TextualHandler() if use_textual_handler else logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    file_level = _level(logging_section.get("file_log_level"), logging.INFO)
    try:
        log_file_path = Path(log_file_path) if log_file_path else get_log_file_path()
        log_file_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file_path,
            maxBytes=int(logging_section.get("log_max_bytes", 10485760)),
            backupCount=int(logging_section.get("log_backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except OSError as e:
        logging.warning(f"Could not set up file logging: {e}")

    # root passes everything the most verbose handler wants
    root_logger.setLevel(min(h.level for h in root_logger.handlers))
    logging.info(f"Logging configured (console: {logging.getLevelName(console_level)}, "
                 f"file: {logging.getLevelName(file_level)}).")
    return root_logger

#
# End of Logging_Config.py
########################################################################################################################
