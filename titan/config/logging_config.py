# titan/config/logging_config.py
# =============================================================================
# File: titan/config/logging_config.py
# Description: Logging configuration using the Rich framework, with a JSON
#              formatter for production and a plain fallback
# =============================================================================

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field
from pydantic_settings import SettingsConfigDict
from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

from titan.common.base.base_config import BaseConfig


TITAN_THEME = Theme({
    "debug": "magenta dim",
    "info": "green",
    "warning": "dark_goldenrod",
    "error": "red",
    "critical": "bold red",
    "timestamp": "grey70",
    "logger_name": "grey35",
    "message": "grey85",
})

PLAIN_FORMAT = "[%(asctime)s] [%(levelname)-8s] [%(name)-32s] %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Noisy loggers quietened by default; override with LOGLEVEL_<NAME>
DEFAULT_NOISE_LEVELS: Dict[str, int] = {
    "asyncio": logging.WARNING,
    "urllib3": logging.WARNING,
    "httpx": logging.WARNING,
}


class LoggingConfig(BaseConfig):
    """Logging settings, read from LOG_* environment variables"""

    model_config = SettingsConfigDict(
        **{**BaseConfig.model_config, "env_prefix": "LOG_"},
    )

    level: str = "INFO"
    rich: bool = True
    json_format: bool = False
    show_path: bool = False
    file: Optional[str] = None
    max_size_mb: int = Field(default=100, gt=0)
    backup_count: int = Field(default=5, ge=0)


@lru_cache(maxsize=1)
def get_logging_config() -> LoggingConfig:
    """Get logging configuration singleton"""
    return LoggingConfig()


class ProductionFormatter(logging.Formatter):
    """JSON formatter for production environments"""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # Correlation fields attached via `extra=`
        for key in ("channel_id", "message_id", "actor_id", "operation"):
            if hasattr(record, key):
                log_obj[key] = getattr(record, key)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def get_logger_level_from_env(logger_name: str, default_level: int) -> int:
    """
    Get logger level from environment variable.

    e.g. "titan.messaging.feed" -> "LOGLEVEL_TITAN_MESSAGING_FEED"
    """
    env_name = f"LOGLEVEL_{logger_name.replace('.', '_').upper()}"
    level_str = os.getenv(env_name, '').upper()
    if not level_str:
        return default_level
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'WARN': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL,
    }
    return level_map.get(level_str, default_level)


def setup_logging(
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
        enable_json: Optional[bool] = None,
        config: Optional[LoggingConfig] = None,
) -> None:
    """
    Configure root logging.

    Args:
        log_level: Override log level
        log_file: Optional rotating log file path
        enable_json: Enable JSON formatting for production
        config: Explicit config (defaults to the LOG_* environment)
    """
    config = config or get_logging_config()
    level = (log_level or config.level).upper()
    log_file = log_file or config.file
    if enable_json is None:
        enable_json = config.json_format

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if enable_json:
        json_handler = logging.StreamHandler(sys.stdout)
        json_handler.setFormatter(ProductionFormatter())
        root_logger.addHandler(json_handler)
    elif config.rich:
        console = Console(theme=TITAN_THEME, legacy_windows=False)
        rich_handler = RichHandler(
            console=console,
            show_path=config.show_path,
            rich_tracebacks=True,
            markup=False,
            log_time_format="[%X]",
        )
        root_logger.addHandler(rich_handler)
    else:
        plain_handler = logging.StreamHandler(sys.stdout)
        plain_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root_logger.addHandler(plain_handler)

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=config.max_size_mb * 1024 * 1024,
            backupCount=config.backup_count,
            encoding="utf-8",
        )
        # Always use plain formatter for files
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root_logger.addHandler(file_handler)

    for logger_name, default_level in DEFAULT_NOISE_LEVELS.items():
        logging.getLogger(logger_name).setLevel(get_logger_level_from_env(logger_name, default_level))

    titan_level = get_logger_level_from_env("titan", logging.getLevelName(level))
    logging.getLogger("titan").setLevel(titan_level)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)
