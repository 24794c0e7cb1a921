"""
Configuration and logging management for Saleor Catalog Sync.
"""

import os
import sys
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from .errors import ConfigError

# Version
SCRIPT_VERSION = "1.0.0 - Saleor Catalog Sync"

# File paths
APP_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DEFAULT_CATALOG_FILE = os.path.join(APP_DIR, "catalog_curated.json")
DEFAULT_CHECKPOINT_FILE = os.path.join(APP_DIR, "sync_state.json")

DEFAULT_CHANNEL_SLUG = "default-channel"
DEFAULT_PRODUCT_TYPE_NAME = "Electronics and Accessories"
DEFAULT_PRODUCT_TYPE_SLUG = "electronics"
DEFAULT_RETRY_BASE_DELAY = 2.0

TRUE_VALUES = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class RunConfig:
    """Run-scoped settings, fixed for the duration of a sync run."""
    concurrency: int = 1
    delay_ms: int = 0
    offset: Optional[int] = None
    limit: Optional[int] = None
    skip_reset: bool = False


def _first_env(*names, default=""):
    for name in names:
        value = os.environ.get(name)
        if value is not None and value.strip():
            return value.strip()
    return default


def load_config(env_file: str = None):
    """
    Load configuration from the process environment.

    A .env file (or env_file when given) is read first; variables already set
    in the environment win over values from the file.

    Returns:
        Configuration dictionary
    """
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    return {
        "SALEOR_API_URL": _first_env("SALEOR_API_URL", "NEXT_PUBLIC_SALEOR_API_URL"),
        "SALEOR_APP_TOKEN": _first_env("SALEOR_APP_TOKEN"),
        "CHANNEL_SLUG": _first_env("SALEOR_CHANNEL_SLUG", "NEXT_PUBLIC_DEFAULT_CHANNEL",
                                   default=DEFAULT_CHANNEL_SLUG),
        "CATALOG_FILE": _first_env("CATALOG_FILE", default=DEFAULT_CATALOG_FILE),
        "CHECKPOINT_FILE": _first_env("CHECKPOINT_FILE", default=DEFAULT_CHECKPOINT_FILE),
        "LOG_FILE": _first_env("LOG_FILE"),
        "PRODUCT_TYPE_NAME": _first_env("PRODUCT_TYPE_NAME", default=DEFAULT_PRODUCT_TYPE_NAME),
        "PRODUCT_TYPE_SLUG": _first_env("PRODUCT_TYPE_SLUG", default=DEFAULT_PRODUCT_TYPE_SLUG),
        "RETRY_BASE_DELAY": _first_env("RETRY_BASE_DELAY", default=str(DEFAULT_RETRY_BASE_DELAY)),
        "SKIP_RESET": _first_env("SKIP_RESET", default="false"),
        "IMPORT_CONCURRENCY": _first_env("IMPORT_CONCURRENCY", default="1"),
        "IMPORT_DELAY_MS": _first_env("IMPORT_DELAY_MS", default="0"),
        "IMPORT_OFFSET": _first_env("IMPORT_OFFSET"),
        "IMPORT_LIMIT": _first_env("IMPORT_LIMIT"),
    }


def validate_config(cfg):
    """Fail fast when the Saleor endpoint or token is not configured."""
    if not str(cfg.get("SALEOR_API_URL", "")).strip():
        raise ConfigError("SALEOR_API_URL (or NEXT_PUBLIC_SALEOR_API_URL) is not configured")
    if not str(cfg.get("SALEOR_APP_TOKEN", "")).strip():
        raise ConfigError("SALEOR_APP_TOKEN is not configured")


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in TRUE_VALUES


def parse_int(name: str, value, default: Optional[int] = None, minimum: int = 0) -> Optional[int]:
    """
    Parse an integer setting.

    Args:
        name: Setting name, used in error messages
        value: Raw value (string, int or None)
        default: Returned when value is empty
        minimum: Smallest accepted value

    Returns:
        Parsed integer, or default when the value is empty
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if parsed < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {parsed}")
    return parsed


def parse_float(name: str, value, default: float) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if parsed < 0:
        raise ConfigError(f"{name} must be >= 0, got {parsed}")
    return parsed


def build_run_config(cfg) -> RunConfig:
    """Build the immutable RunConfig from a configuration dictionary."""
    return RunConfig(
        concurrency=parse_int("IMPORT_CONCURRENCY", cfg.get("IMPORT_CONCURRENCY"), default=1, minimum=1),
        delay_ms=parse_int("IMPORT_DELAY_MS", cfg.get("IMPORT_DELAY_MS"), default=0),
        offset=parse_int("IMPORT_OFFSET", cfg.get("IMPORT_OFFSET")),
        limit=parse_int("IMPORT_LIMIT", cfg.get("IMPORT_LIMIT")),
        skip_reset=parse_bool(cfg.get("SKIP_RESET")),
    )


def setup_logging(log_path: str = "", level: int = logging.INFO):
    """
    Configure logging to console and, optionally, to a file.

    Args:
        log_path: Path to log file (empty for console only)
        level: Console logging level (typically INFO)
    """
    try:
        for h in logging.root.handlers[:]:
            logging.root.removeHandler(h)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        )
        logging.root.addHandler(console_handler)

        if log_path:
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s")
            )
            logging.root.addHandler(file_handler)

        logging.root.setLevel(logging.DEBUG)
        # requests/urllib3 are chatty at DEBUG
        logging.getLogger("urllib3").setLevel(logging.WARNING)

        install_global_exception_logging()
    except Exception as e:
        print(f"Failed to setup logging: {e}", file=sys.stderr)
        raise


def install_global_exception_logging():
    """Log all unhandled exceptions to the log file."""
    def _log_excepthook(exctype, value, tb):
        logging.critical(
            "Unhandled exception",
            exc_info=(exctype, value, tb)
        )
        sys.__excepthook__(exctype, value, tb)

    sys.excepthook = _log_excepthook


def log_and_status(status_fn, msg: str, level: str = "info"):
    """
    Log a message and forward it to an optional status callback.

    Args:
        status_fn: Function receiving status lines, or None
        msg: Message for log file and console
        level: Log level - "info", "warning", or "error"
    """
    if level == "error":
        logging.error(msg)
    elif level == "warning":
        logging.warning(msg)
    else:
        logging.info(msg)

    if status_fn is not None:
        try:
            status_fn(msg)
        except Exception as e:
            logging.warning(f"status_fn raised while logging message: {e}", exc_info=True)
